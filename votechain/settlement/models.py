"""
Value types that flow through the settlement pipeline.

Oracle output is modelled as untrusted (OracleScores / Unparseable) until the
reconciler turns it into ValidatedScores. Nothing downstream of the
reconciler accepts the raw types.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Tuple, Union

ORIGIN_ORACLE = "oracle"
ORIGIN_FALLBACK = "fallback"


@dataclass(frozen=True)
class EvidenceBundle:
    """Everything the oracle sees about one candidate."""
    candidate_id: str
    name: str
    description: Optional[str]
    vote_count: int
    evaluations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ScoreEntry:
    candidate_id: str
    score: int
    reasoning: str

    def to_dict(self) -> Dict:
        return {
            "candidateId": self.candidate_id,
            "score": self.score,
            "reasoning": self.reasoning,
        }


@dataclass(frozen=True)
class OracleScores:
    """Parsed but unvalidated oracle answer; candidate ids are not trusted."""
    entries: Tuple[ScoreEntry, ...]


@dataclass(frozen=True)
class Unparseable:
    """Oracle answered, but nothing machine-readable could be extracted."""
    reason: str


OracleResult = Union[OracleScores, Unparseable]


@dataclass(frozen=True)
class ValidatedScores:
    """
    Scores keyed by real candidate ids, in evidence-bundle order.

    Built only by reconciler.reconcile(). `origin` tags whether the oracle's
    scores were kept or replaced wholesale by the vote-count fallback.
    """
    entries: Tuple[ScoreEntry, ...]
    origin: str = ORIGIN_ORACLE
    unresolved: Tuple[str, ...] = ()
    unscored: Tuple[str, ...] = ()

    @property
    def is_fallback(self) -> bool:
        return self.origin == ORIGIN_FALLBACK


@dataclass(frozen=True)
class LedgerReceipt:
    """Outcome of one ledger commit attempt."""
    transaction_id: str
    network: str
    status: str  # confirmed | pending | simulated | failed
    timestamp: datetime
    error: Optional[str] = None
    explorer_url: Optional[str] = None

    def to_dict(self) -> Dict:
        data = {
            "transactionId": self.transaction_id,
            "network": self.network,
            "status": self.status,
        }
        if self.explorer_url:
            data["explorerUrl"] = self.explorer_url
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class SettlementResult:
    room_id: str
    winner_id: str
    winner: ScoreEntry
    ledger: LedgerReceipt
    scoring: str = ORIGIN_ORACLE
    scores: Tuple[ScoreEntry, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict:
        return {
            "winner": self.winner.to_dict(),
            "ledger": self.ledger.to_dict(),
        }
