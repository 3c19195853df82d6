from datetime import datetime
from typing import Any, Dict, List

from .database import ROOM_STATUSES

REQUIRED_STR_FIELDS = ["owner_id", "name", "evaluation_criteria"]
OPTIONAL_STR_FIELDS = ["id", "description", "status", "voting_deadline"]


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def _valid_timestamp(v: str) -> bool:
    try:
        datetime.fromisoformat(v)
        return True
    except ValueError:
        return False


def _validate_candidate(i: int, cand: Any) -> List[str]:
    prefix = f"candidates[{i}]"
    if not isinstance(cand, dict):
        return [f"{prefix} must be an object"]

    errors: List[str] = []
    if not _is_non_empty_str(cand.get("name")):
        errors.append(f"{prefix}.name must be a non-empty string")
    if "description" in cand and cand["description"] is not None and not isinstance(cand["description"], str):
        errors.append(f"{prefix}.description must be a string if provided")

    votes = cand.get("votes", [])
    if not isinstance(votes, list) or not all(_is_non_empty_str(v) for v in votes):
        errors.append(f"{prefix}.votes must be a list of user ids")

    evaluations = cand.get("evaluations", [])
    if not isinstance(evaluations, list):
        errors.append(f"{prefix}.evaluations must be a list")
    else:
        for j, ev in enumerate(evaluations):
            if not isinstance(ev, dict) or not _is_non_empty_str(ev.get("user_id")) \
                    or not _is_non_empty_str(ev.get("feedback")):
                errors.append(f"{prefix}.evaluations[{j}] needs user_id and feedback strings")
    return errors


def validate_room_document(data: Dict[str, Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Checks the room import format used by `votechain import-room`.
    """
    if not isinstance(data, dict):
        return ["Room document must be a JSON object"]

    errors: List[str] = []

    for f in REQUIRED_STR_FIELDS:
        if f not in data:
            errors.append(f"Missing required field: {f}")
        elif not _is_non_empty_str(data[f]):
            errors.append(f"Field '{f}' must be a non-empty string")

    for f in OPTIONAL_STR_FIELDS:
        if f in data and data[f] is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    if isinstance(data.get("status"), str) and data["status"] not in ROOM_STATUSES:
        errors.append(f"Field 'status' must be one of: {', '.join(ROOM_STATUSES)}")

    if isinstance(data.get("voting_deadline"), str) and not _valid_timestamp(data["voting_deadline"]):
        errors.append("Field 'voting_deadline' must be an ISO-8601 timestamp")

    candidates = data.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        errors.append("Field 'candidates' must be a non-empty list")
    else:
        for i, cand in enumerate(candidates):
            errors.extend(_validate_candidate(i, cand))

    return errors
