"""
Shared helpers for Google Photos Sync: constants and filesystem utilities.
"""
