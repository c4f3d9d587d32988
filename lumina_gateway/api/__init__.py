"""
HTTP surface for Lumina Gateway.
"""

from .server import create_app

__all__ = ["create_app"]
