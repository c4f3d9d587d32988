"""
Bearer-token auth provider.

Verifies HS256 JWTs such as those issued by Supabase and resolves them to the
``sub`` claim.
"""

import logging
import os
from typing import Optional, Protocol

import jwt

from ..core.errors import Unauthorized

logger = logging.getLogger(__name__)


class AuthProvider(Protocol):
    """Interface the orchestrator consumes."""

    async def resolve_identity(self, credential: str) -> str:
        ...


class JWTAuthProvider:
    """Resolves bearer JWTs to stable user ids.

    Args:
        secret_key: Shared signing secret; falls back to ``LUMINA_JWT_SECRET``
        algorithm: Signing algorithm
        audience: Expected ``aud`` claim; not checked when None

    Raises:
        ValueError: If no secret is configured
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: str = "HS256",
        audience: Optional[str] = None,
    ):
        self.secret_key = secret_key or os.getenv("LUMINA_JWT_SECRET")
        if not self.secret_key:
            raise ValueError("secret_key is required (or set LUMINA_JWT_SECRET)")
        self.algorithm = algorithm
        self.audience = audience

    async def resolve_identity(self, credential: str) -> str:
        """Verify ``credential`` and return its subject.

        Args:
            credential: Raw token, with or without a ``Bearer `` prefix

        Returns:
            The user id from the ``sub`` claim

        Raises:
            Unauthorized: If the token is missing, invalid, expired or has no subject
        """
        token = (credential or "").strip()
        if token.lower().startswith("bearer "):
            token = token[7:].strip()
        if not token:
            raise Unauthorized("Unauthorized: Please log in.")

        options = {"require": ["sub"], "verify_aud": self.audience is not None}
        try:
            claims = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                options=options,
            )
        except jwt.ExpiredSignatureError:
            raise Unauthorized("Unauthorized: Session expired, please log in again.")
        except jwt.InvalidTokenError as e:
            logger.info("auth: rejected token (%s)", e)
            raise Unauthorized("Unauthorized: Please log in.")

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise Unauthorized("Unauthorized: Please log in.")
        return subject
