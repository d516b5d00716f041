"""
JSON repair for model-produced tool arguments.

Small models often emit tool arguments as a JSON-encoded string rather than
an object, and that string is frequently slightly malformed: Python literals,
single quotes, trailing commas, or a missing closing brace when output was
cut short. parse_json_arguments() tries a strict parse first and falls back
to a deterministic repair pass.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def repair_json(json_str: str) -> str:
    """
    Attempt to repair malformed JSON.

    Handles:
    1. Trailing content after the first complete object
    2. Python literals (None, True, False)
    3. Single-quoted keys and values
    4. Trailing commas before } or ]
    5. Unclosed braces/brackets from truncation

    Args:
        json_str: Malformed JSON string

    Returns:
        Repaired JSON string (may still be invalid in edge cases)
    """
    original = json_str

    # Step 1: Truncate after the first complete object
    depth = 0
    for i, c in enumerate(json_str):
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                json_str = json_str[: i + 1]
                break

    # Step 2: Python-style values
    json_str = re.sub(r"\bNone\b", "null", json_str)
    json_str = re.sub(r"\bTrue\b", "true", json_str)
    json_str = re.sub(r"\bFalse\b", "false", json_str)

    # Step 3: Single quotes used as delimiters
    json_str = re.sub(r"(?<=[{,:\[])\s*'([^']*?)'\s*(?=[},:\]])", r'"\1"', json_str)
    json_str = re.sub(r"'(\w+)':", r'"\1":', json_str)

    # Step 4: Trailing commas
    json_str = re.sub(r",\s*}", "}", json_str)
    json_str = re.sub(r",\s*]", "]", json_str)

    # Step 5: Close what truncation left open
    open_braces = json_str.count("{") - json_str.count("}")
    open_brackets = json_str.count("[") - json_str.count("]")
    if open_braces > 0 or open_brackets > 0:
        json_str += "]" * max(open_brackets, 0) + "}" * max(open_braces, 0)

    if json_str != original:
        logger.debug("Applied JSON repairs to tool arguments")

    return json_str


def parse_json_arguments(raw: Any) -> Optional[Dict[str, Any]]:
    """
    Normalize tool-call arguments to a dict.

    Args:
        raw: A dict, a JSON-encoded string, or anything else

    Returns:
        The arguments dict, or None when they cannot be read as an object
    """
    if isinstance(raw, dict):
        return raw
    if raw is None or raw == "":
        return {}
    if not isinstance(raw, str):
        return None

    for candidate in (raw, repair_json(raw.strip())):
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
        return None

    logger.warning(f"Unreadable tool arguments: {raw[:80]!r}")
    return None
