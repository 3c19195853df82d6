"""
Identity Reconciliation.

Responsibilities:
- Map oracle-reported candidate ids back to real candidate ids
  (exact id, unique truncated id, then name match).
- Drop entries that cannot be mapped; keep the last entry per candidate.
- Replace the whole score set with vote-count fallback scores when the
  oracle output is unparseable or nothing maps.

Non-Responsibilities:
- No winner selection.
- No persistence.

Invariant:
Every returned entry refers to a candidate of the room, at most once,
in evidence-bundle order.
"""

from typing import Dict, List, Optional, Sequence

from ..logger import get_logger
from ..normalize import looks_like_id_fragment, names_overlap, normalize_name
from .models import (
    ORIGIN_FALLBACK,
    ORIGIN_ORACLE,
    EvidenceBundle,
    OracleResult,
    ScoreEntry,
    Unparseable,
    ValidatedScores,
)

logger = get_logger()

FALLBACK_REASONING = "fallback: vote-count based"


def fallback_score(vote_count: int) -> int:
    return min(100, vote_count * 15 + 50)


def fallback_scores(bundles: Sequence[EvidenceBundle]) -> ValidatedScores:
    """Deterministic scores from vote counts, one per candidate."""
    entries = tuple(
        ScoreEntry(
            candidate_id=b.candidate_id,
            score=fallback_score(b.vote_count),
            reasoning=FALLBACK_REASONING,
        )
        for b in bundles
    )
    return ValidatedScores(entries=entries, origin=ORIGIN_FALLBACK)


def match_by_name(raw: str, bundles: Sequence[EvidenceBundle]) -> Optional[str]:
    """
    Find the candidate whose name the oracle echoed.

    Exact (case-insensitive) name equality wins; otherwise the one candidate
    whose name is contained in, or contains, the raw value. More than one
    containment match is ambiguous and maps to nothing.
    """
    wanted = normalize_name(raw)
    if not wanted:
        return None

    for b in bundles:
        if normalize_name(b.name) == wanted:
            return b.candidate_id

    hits = [b for b in bundles if names_overlap(raw, b.name)]
    if len(hits) > 1:
        logger.warning("Ambiguous candidate name", raw=raw, matches=[b.candidate_id for b in hits])
        return None
    return hits[0].candidate_id if hits else None


def resolve_candidate_id(raw: str, bundles: Sequence[EvidenceBundle]) -> Optional[str]:
    """Map one oracle-reported id to a real candidate id, or None."""
    for b in bundles:
        if b.candidate_id == raw:
            return b.candidate_id

    if looks_like_id_fragment(raw):
        prefix = raw.strip().lower()
        hits = [b for b in bundles if b.candidate_id.lower().startswith(prefix)]
        if len(hits) == 1:
            return hits[0].candidate_id

    return match_by_name(raw, bundles)


def reconcile(result: OracleResult, bundles: Sequence[EvidenceBundle]) -> ValidatedScores:
    """
    Validate oracle scores against the room's candidates.

    Args:
        result: Parsed oracle output (or Unparseable)
        bundles: Authoritative candidate evidence, in room order

    Returns:
        ValidatedScores, tagged oracle or fallback
    """
    if isinstance(result, Unparseable):
        logger.warning("Using fallback scores", reason=result.reason)
        return fallback_scores(bundles)

    accepted: Dict[str, ScoreEntry] = {}
    unresolved: List[str] = []
    for entry in result.entries:
        candidate_id = resolve_candidate_id(entry.candidate_id, bundles)
        if candidate_id is None:
            logger.warning("Unresolved oracle candidate id", candidate_id=entry.candidate_id)
            unresolved.append(entry.candidate_id)
            continue
        if candidate_id != entry.candidate_id:
            logger.info("Mapped oracle candidate id", raw=entry.candidate_id, candidate_id=candidate_id)
        # Later entries for the same candidate replace earlier ones
        accepted[candidate_id] = ScoreEntry(candidate_id, entry.score, entry.reasoning)

    if not accepted:
        logger.warning("No oracle score mapped to a candidate, using fallback scores", unresolved=len(unresolved))
        fallback = fallback_scores(bundles)
        return ValidatedScores(entries=fallback.entries, origin=ORIGIN_FALLBACK, unresolved=tuple(unresolved))

    ordered = tuple(accepted[b.candidate_id] for b in bundles if b.candidate_id in accepted)
    unscored = tuple(b.candidate_id for b in bundles if b.candidate_id not in accepted)
    if unscored:
        logger.warning("Oracle left candidates unscored", unscored=list(unscored))

    return ValidatedScores(
        entries=ordered,
        origin=ORIGIN_ORACLE,
        unresolved=tuple(unresolved),
        unscored=unscored,
    )
