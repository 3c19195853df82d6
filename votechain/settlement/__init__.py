"""
Room settlement pipeline.

Aggregate evidence, score it with the oracle, reconcile the oracle's
identifiers, pick the winner, anchor it on the ledger and finalize the room.
"""

from .errors import (
    SettlementError,
    Unauthorized,
    Forbidden,
    NotFound,
    OracleUnavailable,
    NoScores,
    LedgerFailure,
    AlreadyFinalized,
)
from .models import SettlementResult
from .orchestrator import SettlementOrchestrator

__all__ = [
    "SettlementError",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "OracleUnavailable",
    "NoScores",
    "LedgerFailure",
    "AlreadyFinalized",
    "SettlementResult",
    "SettlementOrchestrator",
]
