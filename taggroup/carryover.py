"""Best-effort extraction of reusable values from free-text model output."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

VariableExtractor = Callable[[str], Dict[str, str]]

_FENCED_JSON = re.compile(r"```(?:json)?\s*\n(.*?)\n\s*```", re.DOTALL)
_KEY_VALUE_LINE = re.compile(
    r"^\s*(?:[-*+]\s+)?\**([A-Za-z_][A-Za-z0-9_]*)\**\s*[:=](?!//)\s*(.+?)\s*$"
)


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


def _parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    candidates = [text.strip()]
    fenced = _FENCED_JSON.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (ValueError, RecursionError):
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def extract_carry_over_variables(raw_output: Optional[str]) -> Dict[str, str]:
    """Return variables found in ``raw_output``.

    A JSON object (bare or in a fenced ``json`` block) contributes its
    top-level keys. Otherwise every ``key: value`` or ``key = value`` line
    contributes one entry, later lines overriding earlier ones. Output that
    matches neither shape yields an empty mapping.
    """
    if not raw_output:
        return {}

    parsed = _parse_json_object(raw_output)
    if parsed is not None:
        return {str(key): _as_text(value) for key, value in parsed.items()}

    variables: Dict[str, str] = {}
    for line in raw_output.splitlines():
        match = _KEY_VALUE_LINE.match(line)
        if match:
            variables[match.group(1)] = _strip_quotes(match.group(2))
    logger.debug(f"Extracted {len(variables)} carry-over variables")
    return variables
