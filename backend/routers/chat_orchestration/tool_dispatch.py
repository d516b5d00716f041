"""
Tool call normalization.

Model responses carry tool calls in several shapes:
- message.tool_calls[].function.{name, arguments}
- message.tool_calls[].{name, arguments}
- message.function_call.{name, arguments}
- inline in the text: <tool_call>{...}</tool_call>, a bare {"name": ..., "arguments": ...}
  object, or plain "navigate_to_screen reports/bed-usage" / "change_theme dark"

Everything is converted here to ToolCall(name, arguments) with name in
ALLOWED_TOOLS; unknown names are dropped.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from services.json_repair import parse_json_arguments
from tools.registry import NAV, THEME

logger = logging.getLogger(__name__)

ALLOWED_TOOLS = (NAV, THEME)

TOOL_ALIASES: Dict[str, str] = {
    "nav": NAV,
    "navigate": NAV,
    "navigate_to_screen": NAV,
    "navigation": NAV,
    "open_screen": NAV,
    "go_to": NAV,
    "goto": NAV,
    "theme": THEME,
    "change_theme": THEME,
    "toggle_theme": THEME,
    "set_theme": THEME,
    "switch_theme": THEME,
}

_HERMES_PATTERN = re.compile(r"<tool_call>\s*(\{.*?\})\s*</tool_call>", re.DOTALL | re.IGNORECASE)
_INLINE_NAME_PATTERN = re.compile(r'\{\s*["\']name["\']\s*:\s*["\'](\w+)["\']', re.DOTALL)
_PLAIN_NAV_PATTERN = re.compile(r"navigate_to_screen\s+/?(?:app/)?([^\s]+)", re.IGNORECASE)
_PLAIN_THEME_PATTERN = re.compile(r"change_theme\s+(dark|light|toggle)", re.IGNORECASE)


@dataclass(frozen=True)
class ToolCall:
    """Canonical tool call. All downstream code sees only this shape."""

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "arguments": dict(self.arguments)}


def canonical_tool_name(name: Any) -> Optional[str]:
    """Map a wire tool name to nav/theme, or None if not allowed."""
    if not isinstance(name, str):
        return None
    return TOOL_ALIASES.get(name.strip().lower())


def _to_tool_call(name: Any, arguments: Any) -> Optional[ToolCall]:
    canonical = canonical_tool_name(name)
    if canonical is None:
        logger.info(f"Discarded tool call with unknown name: {name!r}")
        return None
    args = parse_json_arguments(arguments)
    if args is None:
        logger.info(f"Discarded {canonical} call with unreadable arguments")
        return None
    return ToolCall(canonical, args)


def normalize_tool_calls(message: Dict[str, Any]) -> List[ToolCall]:
    """Extract canonical tool calls from one response message dict.

    Args:
        message: The "message" object of a stream frame

    Returns:
        Tool calls in wire order (may be empty)
    """
    calls: List[ToolCall] = []
    if not isinstance(message, dict):
        return calls

    raw_calls = message.get("tool_calls") or []
    if isinstance(raw_calls, dict):
        raw_calls = [raw_calls]
    for raw in raw_calls if isinstance(raw_calls, list) else []:
        if not isinstance(raw, dict):
            continue
        fn = raw.get("function") if isinstance(raw.get("function"), dict) else raw
        call = _to_tool_call(fn.get("name"), fn.get("arguments", fn.get("parameters")))
        if call:
            calls.append(call)

    function_call = message.get("function_call")
    if isinstance(function_call, dict):
        call = _to_tool_call(function_call.get("name"), function_call.get("arguments"))
        if call:
            calls.append(call)

    return calls


def _extract_json_object(content: str, start: int) -> Optional[Dict]:
    """Parse the brace-balanced JSON object beginning at content[start]."""
    depth = 0
    for i in range(start, len(content)):
        c = content[i]
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                try:
                    parsed = json.loads(content[start : i + 1])
                except json.JSONDecodeError:
                    return None
                return parsed if isinstance(parsed, dict) else None
    return None


def extract_inline_tool_call(text: str) -> Optional[ToolCall]:
    """Fallback extraction of a tool call written into the text itself."""
    if not text:
        return None

    match = _HERMES_PATTERN.search(text)
    if match:
        parsed = _extract_json_object(match.group(1), 0)
        if parsed and "name" in parsed:
            call = _to_tool_call(parsed["name"], parsed.get("arguments", parsed.get("parameters")))
            if call:
                return call

    match = _INLINE_NAME_PATTERN.search(text)
    if match:
        parsed = _extract_json_object(text, match.start())
        if parsed and "name" in parsed:
            call = _to_tool_call(parsed["name"], parsed.get("arguments", parsed.get("parameters")))
            if call:
                return call

    match = _PLAIN_NAV_PATTERN.search(text)
    if match:
        return ToolCall(NAV, {"key": match.group(1).strip().rstrip(".,;")})

    match = _PLAIN_THEME_PATTERN.search(text)
    if match:
        return ToolCall(THEME, {"mode": match.group(1).lower()})

    return None
