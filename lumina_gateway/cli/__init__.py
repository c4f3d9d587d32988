"""
Command-line interface for Lumina Gateway.
"""
