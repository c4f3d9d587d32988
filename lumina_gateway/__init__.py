"""
Lumina Gateway.

Request orchestration between clients and a generative content provider:
retry, quota, caching and content safety.
"""

__version__ = "0.1.0"
