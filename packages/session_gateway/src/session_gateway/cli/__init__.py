"""
Gateway CLI.
"""
