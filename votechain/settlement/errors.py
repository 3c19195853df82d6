"""
Settlement error taxonomy.

Every error a caller can observe carries a stable `kind` and a human
message, and serializes to {"kind", "message"}.
"""

from typing import Dict


class SettlementError(Exception):
    """Base class for settlement failures surfaced to the caller."""

    kind = "SettlementError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class Unauthorized(SettlementError):
    """Missing or unresolvable bearer credential."""
    kind = "Unauthorized"


class Forbidden(SettlementError):
    """Caller is not the room owner."""
    kind = "Forbidden"


class NotFound(SettlementError):
    """Room, candidates or winner missing."""
    kind = "NotFound"


class OracleUnavailable(SettlementError):
    """Scoring oracle could not be reached or answered with an HTTP error."""
    kind = "OracleUnavailable"


class NoScores(SettlementError):
    """No score survived reconciliation."""
    kind = "NoScores"


class LedgerFailure(SettlementError):
    """Ledger commit failed. Never escapes the committer."""
    kind = "LedgerFailure"


class AlreadyFinalized(SettlementError):
    """Room already has a winner; nothing was changed."""
    kind = "AlreadyFinalized"
