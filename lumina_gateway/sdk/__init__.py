"""
SDK for Lumina Gateway.

Clients for the external collaborators: the generative provider and the
auth provider.
"""

from .auth import AuthProvider, JWTAuthProvider
from .provider import GenerativeProvider, OpenAIProvider

__all__ = ["AuthProvider", "GenerativeProvider", "JWTAuthProvider", "OpenAIProvider"]
