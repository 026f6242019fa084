"""
Gateway HTTP API.
"""
