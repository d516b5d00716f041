"""
Theme tool - Switches the portal between light and dark.

ThemeService only exposes a toggle, so a requested mode is applied by
toggling only when the current state differs. Calls repeated within the
cooldown window report the current mode without touching the theme; two
theme calls fired back to back therefore change it once.
"""

import logging
import time
from typing import Any, Callable, Optional

from errors import ToolError, ValidationError, handle_async_tool_errors, success_response
from routers.chat_prompts import get_message

from .registry import THEME, ToolDefinition

logger = logging.getLogger(__name__)

DARK = "dark"
LIGHT = "light"
TOGGLE = "toggle"

MODE_ALIASES = {
    "dark": DARK,
    "toi": DARK,
    "tối": DARK,
    "night": DARK,
    "light": LIGHT,
    "sang": LIGHT,
    "sáng": LIGHT,
    "day": LIGHT,
    "toggle": TOGGLE,
    "doi": TOGGLE,
    "đổi": TOGGLE,
    "chuyen": TOGGLE,
    "chuyển": TOGGLE,
    "switch": TOGGLE,
}


class ThemeTool:
    """
    Usage:
        theme_tool = ThemeTool(theme_service, cooldown_s=1.0)
        registry.register(theme_tool.definition())
    """

    def __init__(self, theme: Any, cooldown_s: float = 1.0, clock: Callable[[], float] = time.monotonic):
        self._theme = theme
        self.cooldown_s = cooldown_s
        self._clock = clock
        self._last_change: Optional[float] = None

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=THEME,
            description="Đổi giao diện sáng/tối của hệ thống.",
            parameters={"mode": {"type": "string", "enum": [LIGHT, DARK, TOGGLE]}},
            required_params=["mode"],
            executor=self.execute,
            arg_aliases={"theme": "mode"},
            failure_message="theme_failed",
        )

    def current_mode(self) -> str:
        return DARK if self._theme.is_dark_theme() else LIGHT

    @handle_async_tool_errors(THEME, logger)
    async def execute(self, mode: str = TOGGLE, language: str = "vi") -> dict:
        """Apply mode (dark, light, toggle or a localized equivalent)."""
        now = self._clock()
        current = self.current_mode()

        if self._last_change is not None and now - self._last_change < self.cooldown_s:
            logger.info(f"Theme change within cooldown, keeping {current}")
            return success_response(mode=current, changed=False, message=get_message(f"theme_{current}", language))

        target = MODE_ALIASES.get((mode or TOGGLE).strip().lower())
        if target is None:
            raise ValidationError(f"Unknown theme mode: {mode}", parameter="mode", error_type="type")

        changed = target == TOGGLE or target != current
        if changed:
            try:
                self._theme.toggle_theme()
            except Exception as e:
                raise ToolError("Theme service failed", details=str(e), tool=THEME, mode=target) from e
        self._last_change = now

        new_mode = self.current_mode()
        logger.info(f"Theme {current} -> {new_mode}")
        return success_response(mode=new_mode, changed=changed, message=get_message(f"theme_{new_mode}", language))
