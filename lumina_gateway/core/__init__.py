"""
Core modules for Lumina Gateway.

This package contains the request orchestrator and the policies it composes:
retry, content safety, quota accounting and response caching.
"""
