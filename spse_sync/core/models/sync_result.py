"""
Results returned by sync cycles.
"""

from enum import Enum

from pydantic import BaseModel, Field


class SyncState(str, Enum):
    """States one sync cycle moves through."""

    IDLE = "idle"
    TOKEN_ACQUIRED = "token_acquired"
    ITEMS_FETCHED = "items_fetched"
    NORMALIZING = "normalizing"
    UPSERTING = "upserting"
    RECONCILING = "reconciling"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class SyncResult(BaseModel):
    """
    Outcome of one sync cycle for one table.

    A cycle that did not commit reports zero stored and retired records,
    whatever it managed inside the transaction.
    """

    table: str
    endpoint: str = ""
    success: bool = False
    state: SyncState = SyncState.IDLE
    message: str = ""
    records_found: int = Field(0, ge=0)
    records_stored: int = Field(0, ge=0)
    records_failed: int = Field(0, ge=0)
    records_retired: int = Field(0, ge=0)
    duration_seconds: float = Field(0.0, ge=0.0)

    class Config:
        json_schema_extra = {
            "example": {
                "table": "perencanaan",
                "endpoint": "/sumedangkab/dt/perencanaan",
                "success": True,
                "state": "committed",
                "message": "Stored 118 of 120 records, retired 3",
                "records_found": 120,
                "records_stored": 118,
                "records_failed": 2,
                "records_retired": 3,
                "duration_seconds": 4.21,
            }
        }


class SyncAllResult(BaseModel):
    """Aggregate of running every registered table once."""

    results: dict[str, SyncResult] = Field(default_factory=dict)
    total_success: int = 0
    total_tables: int = 0

    @property
    def success(self) -> bool:
        return self.total_tables > 0 and self.total_success == self.total_tables
