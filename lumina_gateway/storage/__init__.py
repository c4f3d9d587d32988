"""
SQLite backing store for quota counters and cached content.
"""
