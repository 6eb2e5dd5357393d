"""Extraction of trailing suggestion/action markers from model output.

Raw text streams to the operator as-is; once the answer is complete the
full text is scanned once for ``<!-- suggestions: [...] -->`` and
``<!-- action: {...} -->`` markers. Malformed markers are ignored.
"""

import json
import re

from pydantic import ValidationError

from app.core.logging import get_logger
from app.core.schemas_ai import FollowupAction

logger = get_logger(__name__)

MAX_SUGGESTIONS = 3

SUGGESTIONS_PATTERN = re.compile(r"<!--\s*suggestions:\s*(\[[\s\S]*?\])\s*-->")
ACTION_PATTERN = re.compile(r"<!--\s*action:\s*(\{[^}]*?\})\s*-->")


def _parse_suggestions(raw: str) -> list[str]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Ignoring malformed suggestions marker")
        return []
    if not isinstance(parsed, list):
        return []
    return [s.strip() for s in parsed if isinstance(s, str) and s.strip()]


def _parse_action(raw: str) -> FollowupAction | None:
    try:
        return FollowupAction.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError):
        logger.debug("Ignoring malformed action marker")
        return None


def extract_markers(text: str) -> tuple[str, list[str], list[FollowupAction]]:
    """
    Split model output into display text and structured follow-ups.

    Args:
        text: Full concatenated model output

    Returns:
        (text with markers removed, up to 3 suggestions, actions)
    """
    suggestions: list[str] = []
    for match in SUGGESTIONS_PATTERN.finditer(text):
        suggestions.extend(_parse_suggestions(match.group(1)))

    actions: list[FollowupAction] = []
    for match in ACTION_PATTERN.finditer(text):
        action = _parse_action(match.group(1))
        if action and action not in actions:
            actions.append(action)

    clean = ACTION_PATTERN.sub("", SUGGESTIONS_PATTERN.sub("", text)).rstrip()
    return clean, suggestions[:MAX_SUGGESTIONS], actions
