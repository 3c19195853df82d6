"""
Scoring Oracle Client.

Responsibilities:
- Send criteria plus evidence bundles to an OpenAI-compatible chat
  completions endpoint, forcing the submit_scores tool.
- Parse the tool call (or, failing that, the first JSON object in the text)
  into best-effort score entries, clamping scores into [0, 100].

Non-Responsibilities:
- No candidate id validation (see reconciler).
- No fallback scoring.

Invariant:
Transport failures raise OracleUnavailable; a readable but useless answer
returns Unparseable instead of raising.
"""

import json
import math
from typing import Any, Dict, List, Optional, Sequence

import requests

from ..config import Settings
from ..logger import get_logger
from ..retry import (
    RetryError,
    RetryableStatusError,
    exponential_backoff,
    should_retry_http_status,
)
from .errors import OracleUnavailable
from .models import EvidenceBundle, OracleResult, OracleScores, ScoreEntry, Unparseable

logger = get_logger()

SYSTEM_PROMPT = (
    "You are an impartial AI judge. Evaluate candidates and return scores "
    "using the provided function."
)

SUBMIT_SCORES_TOOL = {
    "type": "function",
    "function": {
        "name": "submit_scores",
        "description": "Submit the final scores for all candidates",
        "parameters": {
            "type": "object",
            "properties": {
                "scores": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "candidate_id": {"type": "string", "description": "The exact UUID of the candidate"},
                            "score": {"type": "integer", "description": "Score from 0 to 100"},
                            "reasoning": {"type": "string", "description": "Brief explanation for the score"},
                        },
                        "required": ["candidate_id", "score", "reasoning"],
                    },
                }
            },
            "required": ["scores"],
        },
    },
}

MIN_SCORE = 0
MAX_SCORE = 100


def _format_candidate(index: int, bundle: EvidenceBundle) -> str:
    if bundle.evaluations:
        evals = "\n".join(f"  {i}. {text}" for i, text in enumerate(bundle.evaluations, 1))
    else:
        evals = "  No evaluations submitted"
    return (
        f"[Candidate #{index}] {bundle.name}\n"
        f"- UUID: {bundle.candidate_id}\n"
        f"- Description: {bundle.description or 'No description'}\n"
        f"- Vote Count: {bundle.vote_count}\n"
        f"- Community Evaluations:\n{evals}"
    )


def build_prompt(criteria: str, bundles: Sequence[EvidenceBundle]) -> str:
    """Render the user message carrying criteria and evidence."""
    candidates = "\n---\n".join(_format_candidate(i, b) for i, b in enumerate(bundles, 1))
    return (
        "Evaluate these candidates for a voting competition.\n\n"
        "EVALUATION CRITERIA (defined by room owner):\n"
        f"{criteria}\n\n"
        "CANDIDATES TO EVALUATE:\n"
        f"{candidates}\n\n"
        "Score each candidate from 0 to 100 based on:\n"
        "- How well they meet the stated criteria\n"
        "- The quality and sentiment of community evaluations\n"
        "- Vote count as a signal of community preference\n\n"
        "IMPORTANT: Use the exact UUID provided for each candidate."
    )


def build_request(model: str, criteria: str, bundles: Sequence[EvidenceBundle]) -> Dict[str, Any]:
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(criteria, bundles)},
        ],
        "tools": [SUBMIT_SCORES_TOOL],
        "tool_choice": {"type": "function", "function": {"name": "submit_scores"}},
    }


def clamp_score(value: Any) -> Optional[int]:
    """
    Coerce an oracle score to an integer in [0, 100].

    Returns None when the value is not a finite number.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value = int(round(value))
    return max(MIN_SCORE, min(MAX_SCORE, value))


def extract_first_json_object(text: str) -> Optional[Any]:
    """
    Find the first balanced {...} block in free text that parses as JSON.

    Braces inside JSON strings are ignored while balancing.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for pos in range(start, len(text)):
            ch = text[pos]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    try:
                        return json.loads(text[start:pos + 1])
                    except json.JSONDecodeError:
                        break
        start = text.find("{", start + 1)
    return None


def _entries_from_payload(payload: Any) -> Optional[List[ScoreEntry]]:
    if isinstance(payload, dict):
        items = payload.get("scores")
    elif isinstance(payload, list):
        items = payload
    else:
        return None
    if not isinstance(items, list):
        return None

    entries = []
    for item in items:
        if not isinstance(item, dict):
            continue
        raw_id = item.get("candidate_id", item.get("candidateId"))
        if raw_id is None:
            continue
        score = clamp_score(item.get("score"))
        if score is None:
            logger.warning("Dropping oracle score with non-numeric value", candidate_id=str(raw_id), score=item.get("score"))
            continue
        reasoning = item.get("reasoning")
        entries.append(ScoreEntry(
            candidate_id=str(raw_id).strip(),
            score=score,
            reasoning=reasoning if isinstance(reasoning, str) else "",
        ))
    return entries


def parse_completion(data: Any) -> OracleResult:
    """
    Turn a chat completion body into oracle scores.

    Prefers the first tool call's arguments; falls back to the first JSON
    object found in the message content.
    """
    try:
        message = data["choices"][0]["message"]
    except (KeyError, IndexError, TypeError):
        return Unparseable("no message in completion")
    if not isinstance(message, dict):
        return Unparseable("no message in completion")

    candidates = []
    tool_calls = message.get("tool_calls")
    if not isinstance(tool_calls, list):
        tool_calls = []
    for call in tool_calls:
        function = call.get("function") if isinstance(call, dict) else None
        arguments = function.get("arguments") if isinstance(function, dict) else None
        if isinstance(arguments, str):
            try:
                candidates.append(json.loads(arguments))
            except json.JSONDecodeError:
                logger.warning("Tool call arguments are not valid JSON")
        elif isinstance(arguments, (dict, list)):
            candidates.append(arguments)
        break

    content = message.get("content")
    if isinstance(content, str) and content:
        found = extract_first_json_object(content)
        if found is not None:
            candidates.append(found)

    for payload in candidates:
        entries = _entries_from_payload(payload)
        if entries:
            return OracleScores(entries=tuple(entries))

    if not candidates:
        return Unparseable("no tool call or JSON content in response")
    return Unparseable("no usable score entries in response")


class OracleClient:
    """HTTP client for the scoring oracle."""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str],
        model: str,
        timeout: float = 60.0,
        max_retries: int = 2,
        retry_delay: float = 1.0,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    @classmethod
    def from_settings(cls, settings: Settings) -> "OracleClient":
        return cls(
            api_url=settings.oracle_url,
            api_key=settings.oracle_api_key,
            model=settings.oracle_model,
            timeout=settings.oracle_timeout,
            max_retries=settings.oracle_max_retries,
        )

    def _post(self, payload: Dict[str, Any]) -> requests.Response:
        resp = requests.post(
            self.api_url,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json=payload,
            timeout=self.timeout,
        )
        if should_retry_http_status(resp.status_code):
            raise RetryableStatusError(resp.status_code, resp.text)
        return resp

    def _on_retry(self, attempt: int, error: Exception, delay: float):
        logger.warning("Oracle request failed, retrying", attempt=attempt, delay=delay, error=str(error))

    def score(self, criteria: str, bundles: Sequence[EvidenceBundle]) -> OracleResult:
        """
        Ask the oracle to score every candidate.

        Args:
            criteria: Room evaluation criteria
            bundles: Evidence, one per candidate

        Returns:
            OracleScores with unvalidated entries, or Unparseable

        Raises:
            OracleUnavailable: On missing key, network failure or HTTP error
        """
        if not self.api_key:
            raise OracleUnavailable("Oracle API key is not configured")

        payload = build_request(self.model, criteria, bundles)
        post = exponential_backoff(
            max_retries=self.max_retries,
            base_delay=self.retry_delay,
            exceptions=(
                requests.exceptions.Timeout,
                requests.exceptions.ConnectionError,
                RetryableStatusError,
            ),
            on_retry=self._on_retry,
        )(self._post)

        try:
            resp = post(payload)
        except RetryError as e:
            logger.error("Oracle unreachable", error=str(e.__cause__ or e))
            raise OracleUnavailable(f"AI evaluation failed: {e.__cause__ or e}") from e
        except requests.exceptions.RequestException as e:
            logger.error("Oracle request error", error=str(e))
            raise OracleUnavailable(f"AI evaluation failed: {e}") from e

        if not resp.ok:
            logger.error("Oracle API error", status=resp.status_code, body=resp.text[:500])
            raise OracleUnavailable(f"AI evaluation failed (HTTP {resp.status_code})")

        try:
            data = resp.json()
        except ValueError:
            return Unparseable("response body is not JSON")

        result = parse_completion(data)
        if isinstance(result, Unparseable):
            logger.warning("Oracle response unparseable", reason=result.reason)
        else:
            logger.info("Oracle scores received", entries=len(result.entries))
        return result
