"""HTTP client for the LLM lesson recommender.

The recommender is an OpenAI-compatible chat-completions endpoint. It
receives a structured learner context and answers with a JSON array of
`{lesson_id, reason, priority}` items, possibly wrapped in a markdown
code fence. Any transport or gateway failure is raised as
`RecommenderUnavailable` so callers can degrade to an empty list.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

import requests

from ..config import settings

log = logging.getLogger("microlearn.recommender")

SYSTEM_PROMPT = (
    "You are a learning advisor for a professional micro-learning platform. "
    "Recommend 3-5 lessons from the available list that best fit the learner's role, "
    "assessed skill levels and progress. Prefer lessons at or slightly above the assessed "
    "level of each category and mix categories. Reply with a JSON array only: "
    '[{"lesson_id": "...", "reason": "one sentence", "priority": 1}].'
)

_FENCED = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_ARRAY = re.compile(r"\[[\s\S]*\]")


class RecommenderUnavailable(Exception):
    """The gateway could not produce an answer.

    `status_code` is the gateway HTTP status when there was one (429 for
    rate limiting, 402 for exhausted credits).
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def user_message(self) -> str:
        if self.status_code == 429:
            return "Rate limit exceeded. Please try again later."
        if self.status_code == 402:
            return "AI service requires credits. Please contact support."
        return "Recommendations are temporarily unavailable."


def build_user_prompt(context: Dict[str, Any]) -> str:
    return (
        "Learner context and available lessons:\n"
        + json.dumps(context, indent=2, default=str)
        + "\n\nReturn 3-5 recommendations as a JSON array."
    )


def request_completion(context: Dict[str, Any], session: Optional[requests.Session] = None) -> str:
    """POST the context to the gateway and return the assistant message text."""
    if not settings.RECOMMENDER_API_KEY:
        raise RecommenderUnavailable("RECOMMENDER_API_KEY is not configured")
    http = session or requests
    payload = {
        "model": settings.RECOMMENDER_MODEL,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_prompt(context)},
        ],
        "temperature": 0.7,
    }
    headers = {
        "Authorization": f"Bearer {settings.RECOMMENDER_API_KEY}",
        "Content-Type": "application/json",
    }
    try:
        resp = http.post(
            settings.RECOMMENDER_URL,
            json=payload,
            headers=headers,
            timeout=settings.RECOMMENDER_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        raise RecommenderUnavailable(f"gateway request failed: {exc}") from exc
    if resp.status_code != 200:
        log.error("recommender gateway error %s: %s", resp.status_code, resp.text[:200])
        raise RecommenderUnavailable(f"gateway error: {resp.status_code}", status_code=resp.status_code)
    try:
        data = resp.json()
        return data["choices"][0]["message"]["content"] or ""
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise RecommenderUnavailable("malformed gateway response") from exc


def extract_recommendations(text: str) -> List[Dict[str, Any]]:
    """Pull the JSON array out of a model reply.

    Accepts a bare array, an array inside a ```json fence, or an array
    embedded in prose. Raises ValueError when nothing parseable is found.
    """
    match = _FENCED.search(text) or _ARRAY.search(text)
    raw = match.group(1) if match and match.re is _FENCED else (match.group(0) if match else text)
    parsed = json.loads(raw.strip())
    if not isinstance(parsed, list):
        raise ValueError("recommendations must be a JSON array")
    return [item for item in parsed if isinstance(item, dict)]
