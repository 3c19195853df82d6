"""
Settlement store.

Responsibilities:
- Row-level CRUD over rooms, candidates, votes, evaluations and settlement tables.
- The single-writer winner claim (unique winners.room_id).

Non-Responsibilities:
- No scoring.
- No authorization.
- No ledger access.

Invariant:
Repositories must not encode domain decisions.
"""

import hashlib
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, literal_column, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from .database import (
    LEDGER_STATUSES,
    AccessToken,
    AIScore,
    BlockchainRecord,
    Candidate,
    Evaluation,
    Room,
    Vote,
    Winner,
    get_engine,
)


class WinnerAlreadyRecorded(Exception):
    """Another writer already claimed this room's winner row."""
    pass


class LedgerRecordAlreadyRecorded(Exception):
    """The winner already has a ledger record."""
    pass


def _row_to_dict(row) -> Dict[str, Any]:
    return {c.name: getattr(row, c.name) for c in row.__table__.columns}


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SettlementStore:
    """CRUD access to the VoteChain SQLite database."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._engine = get_engine(db_path)
        self._Session = sessionmaker(bind=self._engine)

    def close(self) -> None:
        self._engine.dispose()

    # Reads

    def get_room(self, room_id: str) -> Optional[Dict[str, Any]]:
        with self._Session() as session:
            room = session.get(Room, room_id)
            return _row_to_dict(room) if room else None

    def list_candidates(self, room_id: str) -> List[Dict[str, Any]]:
        """Candidates of a room in insertion order."""
        with self._Session() as session:
            rows = (
                session.query(Candidate)
                .filter_by(room_id=room_id)
                .order_by(literal_column("candidates.rowid"))
                .all()
            )
            return [_row_to_dict(r) for r in rows]

    def count_votes(self, candidate_ids: Iterable[str]) -> Dict[str, int]:
        ids = list(candidate_ids)
        counts = {cid: 0 for cid in ids}
        if not ids:
            return counts
        with self._Session() as session:
            rows = (
                session.query(Vote.candidate_id, func.count(Vote.id))
                .filter(Vote.candidate_id.in_(ids))
                .group_by(Vote.candidate_id)
                .all()
            )
        for candidate_id, count in rows:
            counts[candidate_id] = count
        return counts

    def list_evaluations(self, candidate_ids: Iterable[str]) -> Dict[str, List[str]]:
        """Feedback texts per candidate, in storage order."""
        ids = list(candidate_ids)
        feedback: Dict[str, List[str]] = {cid: [] for cid in ids}
        if not ids:
            return feedback
        with self._Session() as session:
            rows = (
                session.query(Evaluation.candidate_id, Evaluation.feedback)
                .filter(Evaluation.candidate_id.in_(ids))
                .order_by(literal_column("evaluations.rowid"))
                .all()
            )
        for candidate_id, text in rows:
            feedback[candidate_id].append(text)
        return feedback

    def get_winner(self, room_id: str) -> Optional[Dict[str, Any]]:
        with self._Session() as session:
            winner = session.query(Winner).filter_by(room_id=room_id).first()
            return _row_to_dict(winner) if winner else None

    def get_ledger_record(self, winner_id: str) -> Optional[Dict[str, Any]]:
        with self._Session() as session:
            record = session.query(BlockchainRecord).filter_by(winner_id=winner_id).first()
            return _row_to_dict(record) if record else None

    def list_scores(self, room_id: str) -> List[Dict[str, Any]]:
        with self._Session() as session:
            rows = (
                session.query(AIScore)
                .join(Candidate, Candidate.id == AIScore.candidate_id)
                .filter(Candidate.room_id == room_id)
                .order_by(literal_column("ai_scores.rowid"))
                .all()
            )
            return [_row_to_dict(r) for r in rows]

    def user_for_token(self, token: str) -> Optional[str]:
        with self._Session() as session:
            row = session.get(AccessToken, hash_token(token))
            return row.user_id if row else None

    # Settlement writes

    def record_winner(
        self,
        room_id: str,
        candidate_id: str,
        final_score: int,
        scores: Iterable[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Persist the per-candidate scores and the winner row in one commit.

        Args:
            room_id: Room being settled
            candidate_id: Winning candidate
            final_score: Winning score
            scores: Dicts with candidate_id, score, reasoning

        Returns:
            The created winner row

        Raises:
            WinnerAlreadyRecorded: If the room already has a winner
        """
        with self._Session() as session:
            for s in scores:
                session.add(AIScore(
                    candidate_id=s["candidate_id"],
                    score=s["score"],
                    reasoning=s["reasoning"],
                ))
            winner = Winner(room_id=room_id, candidate_id=candidate_id, final_score=final_score)
            session.add(winner)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise WinnerAlreadyRecorded(room_id) from e
            return _row_to_dict(winner)

    def insert_ledger_record(
        self,
        winner_id: str,
        transaction_id: str,
        network: str,
        status: str,
        block_timestamp: datetime,
        error: Optional[str] = None,
    ) -> Dict[str, Any]:
        if status not in LEDGER_STATUSES:
            raise ValueError(f"Unknown ledger status: {status}")
        with self._Session() as session:
            record = BlockchainRecord(
                winner_id=winner_id,
                transaction_id=transaction_id,
                network=network,
                status=status,
                block_timestamp=block_timestamp,
                error=error,
            )
            session.add(record)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise LedgerRecordAlreadyRecorded(winner_id) from e
            return _row_to_dict(record)

    def mark_finalized(self, room_id: str) -> bool:
        """
        Conditionally move a room to finalized.

        Returns:
            True if this call performed the transition
        """
        with self._Session() as session:
            result = session.execute(
                update(Room)
                .where(Room.id == room_id, Room.status != "finalized")
                .values(status="finalized")
            )
            session.commit()
            return result.rowcount == 1

    # Room management (outside the settlement core)

    def create_room(
        self,
        owner_id: str,
        name: str,
        evaluation_criteria: str,
        description: Optional[str] = None,
        voting_deadline: Optional[datetime] = None,
        status: str = "active",
        room_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self._Session() as session:
            room = Room(
                owner_id=owner_id,
                name=name,
                description=description,
                evaluation_criteria=evaluation_criteria,
                voting_deadline=voting_deadline,
                status=status,
            )
            if room_id:
                room.id = room_id
            session.add(room)
            session.commit()
            return _row_to_dict(room)

    def add_candidate(
        self,
        room_id: str,
        name: str,
        description: Optional[str] = None,
        candidate_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        with self._Session() as session:
            candidate = Candidate(room_id=room_id, name=name, description=description)
            if candidate_id:
                candidate.id = candidate_id
            session.add(candidate)
            session.commit()
            return _row_to_dict(candidate)

    def add_vote(self, candidate_id: str, user_id: str) -> bool:
        """Record a vote. Returns False if the user already voted for the candidate."""
        with self._Session() as session:
            session.add(Vote(candidate_id=candidate_id, user_id=user_id))
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
            return True

    def upsert_evaluation(self, candidate_id: str, user_id: str, feedback: str) -> None:
        """Save feedback; a later submission by the same user replaces the earlier one."""
        with self._Session() as session:
            existing = (
                session.query(Evaluation)
                .filter_by(candidate_id=candidate_id, user_id=user_id)
                .first()
            )
            if existing:
                existing.feedback = feedback
            else:
                session.add(Evaluation(candidate_id=candidate_id, user_id=user_id, feedback=feedback))
            session.commit()

    def save_token(self, token: str, user_id: str) -> None:
        with self._Session() as session:
            session.add(AccessToken(token_hash=hash_token(token), user_id=user_id))
            session.commit()
