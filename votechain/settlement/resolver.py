"""
Winner Resolution.

Responsibilities:
- Pick the highest-scoring entry from validated scores.

Non-Responsibilities:
- No id validation.
- No persistence.

Invariant:
This module must be deterministic given the same inputs: among entries
sharing the top score, the first in evidence-bundle order wins.
"""

from .errors import NoScores
from .models import ScoreEntry, ValidatedScores


def resolve_winner(scores: ValidatedScores) -> ScoreEntry:
    """
    Select the winning score entry.

    Raises:
        NoScores: If there is nothing to choose from
    """
    if not scores.entries:
        raise NoScores("No valid scores to determine winner")

    winner = scores.entries[0]
    for entry in scores.entries[1:]:
        if entry.score > winner.score:
            winner = entry
    return winner
