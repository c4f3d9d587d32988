"""
Error taxonomy for the request-orchestration layer.

Every error a caller can observe carries a stable ``category`` string and an
HTTP status so the RPC layer can map it without inspecting messages.
"""


class GatewayError(Exception):
    """Base class for user-visible gateway failures."""
    category = "internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthorized(GatewayError):
    """Credential missing, invalid or not resolvable to a user."""
    category = "unauthorized"
    status_code = 401


class InvalidAction(GatewayError):
    """Unknown action name or malformed payload."""
    category = "invalid_action"
    status_code = 400


class QuotaExceeded(GatewayError):
    """The user's daily generation quota is used up."""
    category = "quota_exceeded"
    status_code = 429


class RequestRateLimited(GatewayError):
    """The caller sent too many generation requests in a sliding window."""
    category = "request_rate_limited"
    status_code = 429

    def __init__(self, message: str, retry_after: int = 1):
        super().__init__(message)
        self.retry_after = retry_after


class SafetyViolation(GatewayError):
    """Generated content failed the safety filter in block mode."""
    category = "safety_violation"
    status_code = 422


class DeadlineExceeded(GatewayError):
    """The request did not finish within the invocation deadline."""
    category = "deadline_exceeded"
    status_code = 504


class UpstreamError(GatewayError):
    """The generative provider failed and no attempt succeeded."""
    category = "upstream_error"
    status_code = 502

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts


class UpstreamRateLimited(UpstreamError):
    """Provider kept rejecting calls with a rate limit."""
    category = "upstream_rate_limited"
    status_code = 429


class UpstreamOverloaded(UpstreamError):
    """Provider kept reporting itself unavailable or overloaded."""
    category = "upstream_overloaded"
    status_code = 503


class UpstreamFatal(UpstreamError):
    """Provider failure that retrying cannot fix."""
    category = "upstream_fatal"
    status_code = 502
