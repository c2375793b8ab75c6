"""
Reconciliation sync between the portal endpoints and the sink tables.
"""

from .engine import CycleInProgressError, SyncEngine, UnknownTableError, cycle_lock

__all__ = [
    "SyncEngine",
    "CycleInProgressError",
    "UnknownTableError",
    "cycle_lock",
]
