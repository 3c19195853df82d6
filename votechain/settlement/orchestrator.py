"""
Settlement Orchestrator.

Responsibilities:
- Authorize the caller as room owner.
- Run aggregate -> score -> reconcile -> resolve without writing anything.
- Claim the room by writing scores and the winner in one commit
  (unique winners.room_id), then anchor on the ledger, record the ledger
  outcome and mark the room finalized.

Non-Responsibilities:
- No deadline policy; callers decide when settlement may run.
- No scoring logic of its own.

Invariant:
At most one attempt per room gets past the winner claim. Failures before the
claim leave no rows behind; failures after it are completed by
resume_settlement, never by re-running the pipeline.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..config import Settings
from ..logger import get_logger
from ..storage import LedgerRecordAlreadyRecorded, SettlementStore, WinnerAlreadyRecorded
from .aggregator import build_evidence
from .errors import AlreadyFinalized, Forbidden, NotFound, SettlementError, Unauthorized
from .ledger import LedgerCommitter
from .models import (
    ORIGIN_FALLBACK,
    ORIGIN_ORACLE,
    LedgerReceipt,
    ScoreEntry,
    SettlementResult,
)
from .oracle import OracleClient
from .reconciler import FALLBACK_REASONING, reconcile
from .resolver import resolve_winner

logger = get_logger()


def _receipt_from_record(record: Dict[str, Any]) -> LedgerReceipt:
    return LedgerReceipt(
        transaction_id=record["transaction_id"],
        network=record["network"],
        status=record["status"],
        timestamp=record["block_timestamp"],
        error=record.get("error"),
    )


class SettlementOrchestrator:
    """Entry point for settling rooms."""

    def __init__(self, store: SettlementStore, oracle: OracleClient, ledger: LedgerCommitter):
        self.store = store
        self.oracle = oracle
        self.ledger = ledger

    @classmethod
    def from_settings(cls, settings: Settings) -> "SettlementOrchestrator":
        return cls(
            store=SettlementStore(settings.db_path),
            oracle=OracleClient.from_settings(settings),
            ledger=LedgerCommitter.from_settings(settings),
        )

    def _authorize(self, room_id: str, caller_id: Optional[str]) -> Dict[str, Any]:
        if not caller_id:
            raise Unauthorized("Unauthorized")
        room = self.store.get_room(room_id)
        if room is None:
            raise NotFound("Room not found")
        if room["owner_id"] != caller_id:
            logger.warning("Caller is not room owner", room_id=room_id, user_id=caller_id)
            raise Forbidden("Only room owner can finalize")
        return room

    def finalize_room(self, room_id: str, caller_id: Optional[str]) -> SettlementResult:
        """
        Settle a room exactly once.

        Args:
            room_id: Room to settle
            caller_id: Authenticated user id, or None

        Returns:
            SettlementResult with the winner and ledger trust status

        Raises:
            Unauthorized, Forbidden, NotFound, OracleUnavailable, NoScores,
            AlreadyFinalized
        """
        logger.record_settlement_attempt()
        try:
            return self._finalize(room_id, caller_id)
        except SettlementError as e:
            logger.record_settlement_rejected(e.kind)
            logger.info("Settlement rejected", room_id=room_id, kind=e.kind, reason=e.message)
            raise

    def _finalize(self, room_id: str, caller_id: Optional[str]) -> SettlementResult:
        room = self._authorize(room_id, caller_id)
        logger.info("Finalizing room", room_id=room_id, user_id=caller_id)

        if room["status"] == "finalized" or self.store.get_winner(room_id):
            raise AlreadyFinalized("Room has already been finalized")

        bundles = build_evidence(self.store, room_id)

        logger.record_oracle_call()
        result = self.oracle.score(room["evaluation_criteria"], bundles)

        scores = reconcile(result, bundles)
        if scores.is_fallback:
            logger.record_fallback()

        winner = resolve_winner(scores)
        logger.info("Winner resolved", room_id=room_id, candidate_id=winner.candidate_id,
                    score=winner.score, origin=scores.origin)

        try:
            winner_row = self.store.record_winner(
                room_id,
                winner.candidate_id,
                winner.score,
                [{"candidate_id": s.candidate_id, "score": s.score, "reasoning": s.reasoning}
                 for s in scores.entries],
            )
        except WinnerAlreadyRecorded:
            raise AlreadyFinalized("Room was finalized by a concurrent request")

        return self._complete(room_id, winner_row, winner, scores.origin, scores.entries)

    def _complete(self, room_id, winner_row, winner: ScoreEntry, origin: str, entries) -> SettlementResult:
        """Ledger commit, ledger record and status transition for a claimed room."""
        receipt = self.ledger.commit(
            room_id=room_id,
            winner_id=winner_row["id"],
            candidate_id=winner.candidate_id,
            final_score=winner.score,
            timestamp=datetime.now(timezone.utc),
        )
        logger.record_ledger_status(receipt.status)

        try:
            self.store.insert_ledger_record(
                winner_id=winner_row["id"],
                transaction_id=receipt.transaction_id,
                network=receipt.network,
                status=receipt.status,
                block_timestamp=receipt.timestamp,
                error=receipt.error,
            )
        except LedgerRecordAlreadyRecorded:
            existing = self.store.get_ledger_record(winner_row["id"])
            logger.warning("Ledger record already present, keeping it", room_id=room_id,
                           transaction_id=existing["transaction_id"])
            receipt = _receipt_from_record(existing)

        if self.store.mark_finalized(room_id):
            logger.record_settlement_finalized()
        logger.info("Room finalized", room_id=room_id, ledger_status=receipt.status,
                    transaction_id=receipt.transaction_id)

        return SettlementResult(
            room_id=room_id,
            winner_id=winner_row["id"],
            winner=winner,
            ledger=receipt,
            scoring=origin,
            scores=tuple(entries),
        )

    def _stored_winner_entry(self, room_id: str, winner_row: Dict[str, Any]) -> ScoreEntry:
        reasoning = ""
        for s in self.store.list_scores(room_id):
            if s["candidate_id"] == winner_row["candidate_id"] and s["score"] == winner_row["final_score"]:
                reasoning = s["reasoning"]
        return ScoreEntry(winner_row["candidate_id"], winner_row["final_score"], reasoning)

    def resume_settlement(self, room_id: str, caller_id: Optional[str]) -> SettlementResult:
        """
        Finish a settlement whose winner is recorded but whose ledger record
        or finalized status is missing. Does not call the oracle.

        Raises:
            Unauthorized, Forbidden, NotFound, AlreadyFinalized
        """
        room = self._authorize(room_id, caller_id)
        winner_row = self.store.get_winner(room_id)
        if winner_row is None:
            raise NotFound("Room has no recorded winner")

        record = self.store.get_ledger_record(winner_row["id"])
        if record is not None and room["status"] == "finalized":
            raise AlreadyFinalized("Room has already been finalized")

        entry = self._stored_winner_entry(room_id, winner_row)
        stored = tuple(
            ScoreEntry(s["candidate_id"], s["score"], s["reasoning"])
            for s in self.store.list_scores(room_id)
        )
        origin = ORIGIN_FALLBACK if entry.reasoning == FALLBACK_REASONING else ORIGIN_ORACLE
        logger.info("Resuming settlement", room_id=room_id, has_ledger_record=record is not None)

        if record is None:
            return self._complete(room_id, winner_row, entry, origin, stored)

        if self.store.mark_finalized(room_id):
            logger.record_settlement_finalized()
        return SettlementResult(
            room_id=room_id,
            winner_id=winner_row["id"],
            winner=entry,
            ledger=_receipt_from_record(record),
            scoring=origin,
            scores=stored,
        )

    def get_settlement(self, room_id: str) -> Optional[SettlementResult]:
        """Read back a persisted settlement, or None if the room has no winner."""
        winner_row = self.store.get_winner(room_id)
        if winner_row is None:
            return None
        record = self.store.get_ledger_record(winner_row["id"])
        if record is None:
            return None
        entry = self._stored_winner_entry(room_id, winner_row)
        return SettlementResult(
            room_id=room_id,
            winner_id=winner_row["id"],
            winner=entry,
            ledger=_receipt_from_record(record),
            scoring=ORIGIN_FALLBACK if entry.reasoning == FALLBACK_REASONING else ORIGIN_ORACLE,
            scores=tuple(
                ScoreEntry(s["candidate_id"], s["score"], s["reasoning"])
                for s in self.store.list_scores(room_id)
            ),
        )
