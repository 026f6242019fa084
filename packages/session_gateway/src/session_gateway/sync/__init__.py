"""
Roster sync.
"""

from session_gateway.sync.engine import SyncEngine, SyncReport

__all__ = ["SyncEngine", "SyncReport"]
