"""
Evidence Aggregation.

Responsibilities:
- Read a room's candidates, vote counts and evaluation texts.
- Emit exactly one EvidenceBundle per candidate, in candidate order.

Non-Responsibilities:
- No scoring.
- No writes.

Invariant:
Bundles are built from fresh reads on every call; nothing is cached.
"""

from typing import List

from ..logger import get_logger
from ..storage import SettlementStore
from .errors import NotFound
from .models import EvidenceBundle

logger = get_logger()


def build_evidence(store: SettlementStore, room_id: str) -> List[EvidenceBundle]:
    """
    Aggregate votes and evaluations for every candidate of a room.

    Args:
        store: Data store
        room_id: Room to aggregate

    Returns:
        One bundle per candidate, in candidate storage order

    Raises:
        NotFound: If the room has no candidates
    """
    candidates = store.list_candidates(room_id)
    if not candidates:
        raise NotFound("No candidates found")

    ids = [c["id"] for c in candidates]
    votes = store.count_votes(ids)
    feedback = store.list_evaluations(ids)

    bundles = [
        EvidenceBundle(
            candidate_id=c["id"],
            name=c["name"],
            description=c.get("description"),
            vote_count=votes.get(c["id"], 0),
            evaluations=tuple(feedback.get(c["id"], [])),
        )
        for c in candidates
    ]

    logger.debug(
        "Evidence aggregated",
        room_id=room_id,
        candidates=len(bundles),
        votes=sum(b.vote_count for b in bundles),
        evaluations=sum(len(b.evaluations) for b in bundles),
    )
    return bundles
