"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for rooms, ballots and settlement records.
"""

import uuid
from datetime import datetime
from pathlib import Path
from sqlalchemy import (
    create_engine,
    Column,
    String,
    Text,
    Integer,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

ROOM_STATUSES = ("draft", "active", "voting_ended", "finalized")
LEDGER_STATUSES = ("confirmed", "pending", "simulated", "failed")


def new_id() -> str:
    return str(uuid.uuid4())


class Room(Base):
    """Voting room model."""

    __tablename__ = "rooms"

    id = Column(String, primary_key=True, default=new_id)
    owner_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text)
    evaluation_criteria = Column(Text, nullable=False, default="")
    voting_deadline = Column(DateTime)
    status = Column(String, nullable=False, default="draft")  # see ROOM_STATUSES
    invite_code = Column(String, unique=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class Candidate(Base):
    """Candidate model."""

    __tablename__ = "candidates"

    id = Column(String, primary_key=True, default=new_id)
    room_id = Column(String, ForeignKey("rooms.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class Vote(Base):
    """Vote model: presence only, one per user per candidate."""

    __tablename__ = "votes"
    __table_args__ = (UniqueConstraint("candidate_id", "user_id"),)

    id = Column(String, primary_key=True, default=new_id)
    candidate_id = Column(String, ForeignKey("candidates.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class Evaluation(Base):
    """Free-text evaluation model, one per user per candidate."""

    __tablename__ = "evaluations"
    __table_args__ = (UniqueConstraint("candidate_id", "user_id"),)

    id = Column(String, primary_key=True, default=new_id)
    candidate_id = Column(String, ForeignKey("candidates.id"), nullable=False, index=True)
    user_id = Column(String, nullable=False)
    feedback = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class AIScore(Base):
    """Append-only oracle (or fallback) score for a candidate."""

    __tablename__ = "ai_scores"

    id = Column(String, primary_key=True, default=new_id)
    candidate_id = Column(String, ForeignKey("candidates.id"), nullable=False, index=True)
    score = Column(Integer, nullable=False)
    reasoning = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class Winner(Base):
    """Settled winner. The unique room_id is the single-writer guard."""

    __tablename__ = "winners"

    id = Column(String, primary_key=True, default=new_id)
    room_id = Column(String, ForeignKey("rooms.id"), nullable=False, unique=True)
    candidate_id = Column(String, ForeignKey("candidates.id"), nullable=False)
    final_score = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class BlockchainRecord(Base):
    """Ledger commit outcome for a winner."""

    __tablename__ = "blockchain_records"

    id = Column(String, primary_key=True, default=new_id)
    winner_id = Column(String, ForeignKey("winners.id"), nullable=False, unique=True)
    transaction_id = Column(String, nullable=False)
    network = Column(String, nullable=False)
    status = Column(String, nullable=False)  # see LEDGER_STATUSES
    block_timestamp = Column(DateTime, nullable=False)
    error = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class AccessToken(Base):
    """Hashed bearer token mapped to a user identity."""

    __tablename__ = "access_tokens"

    token_hash = Column(String, primary_key=True)
    user_id = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


def get_engine(db_path: Path):
    """
    Create an engine for the SQLite database file.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy engine
    """
    return create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(db_path)
    Base.metadata.create_all(engine)
    engine.dispose()
