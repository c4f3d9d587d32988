"""
Configuration loading for Lumina Gateway.
"""
