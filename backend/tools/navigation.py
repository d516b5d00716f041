"""
Navigation tool - Opens a portal screen.

The target key is resolved through the RouteCatalog, so the model can only
open screens the current user is allowed to see. Navigation runs after a
short debounce so duplicate calls arriving in quick succession trigger one
router transition; the in-flight flag is cleared once the router has settled.
"""

import asyncio
import logging
from typing import Any, Optional

from errors import ExternalServiceError, NotFoundError, handle_async_tool_errors, log_error, success_response
from routers.chat_prompts import get_message

from .registry import NAV, ToolDefinition

logger = logging.getLogger(__name__)

# Screen whose confirmation mentions the password form
SETTINGS_KEY = "settings"


def _path_of(url: str) -> str:
    path = (url or "").split("?", 1)[0].split("#", 1)[0]
    return path.rstrip("/") or "/"


class NavigationTool:
    """
    Usage:
        nav = NavigationTool(router, catalog, debounce_s=0.8, settle_s=0.5)
        registry.register(nav.definition())
    """

    def __init__(self, router: Any, catalog: Any, debounce_s: float = 0.8, settle_s: float = 0.5):
        self._router = router
        self._catalog = catalog
        self.debounce_s = debounce_s
        self.settle_s = settle_s
        self._navigating = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_navigating(self) -> bool:
        return self._navigating

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=NAV,
            description="Mở một màn hình trong hệ thống. key là mã màn hình trong danh sách ROUTES.",
            parameters={"key": {"type": "string", "description": "Mã màn hình, ví dụ reports/bed-usage"}},
            required_params=["key"],
            executor=self.execute,
            arg_aliases={"path": "key", "screen": "key", "url": "key", "route": "key"},
            choices=self._catalog.route_keys,
            failure_message="nav_failed",
        )

    @handle_async_tool_errors(NAV, logger)
    async def execute(self, key: str = "", language: str = "vi") -> dict:
        """Resolve key and schedule the router transition."""
        route = self._catalog.resolve(key)
        if route is None:
            raise NotFoundError("Unknown or forbidden screen", resource_type="route", resource_id=key)

        if _path_of(self._router.url) == _path_of(route.full_url):
            return success_response(
                key=route.key,
                url=route.full_url,
                navigated=False,
                message=get_message("nav_already_here", language, title=route.title),
            )

        message_key = "nav_opening_settings" if route.key == SETTINGS_KEY else "nav_opening"
        message = get_message(message_key, language, title=route.title)

        if self._navigating:
            logger.debug(f"Navigation already pending, ignoring {route.key}")
            return success_response(key=route.key, url=route.full_url, navigated=False, message=message)

        self._navigating = True
        self._task = asyncio.create_task(self._navigate(route.full_url))
        return success_response(key=route.key, url=route.full_url, navigated=True, message=message)

    async def _navigate(self, url: str) -> None:
        try:
            await asyncio.sleep(self.debounce_s)
            ok = await self._router.navigate_by_url(url)
            if not ok:
                log_error(logger, ExternalServiceError("Router rejected navigation", service="router", url=url),
                          context=NAV, include_traceback=False)
            else:
                logger.info(f"Navigated to {url}")
            await asyncio.sleep(self.settle_s)
        except asyncio.CancelledError:
            logger.debug(f"Navigation to {url} cancelled")
            raise
        except Exception as e:
            log_error(logger, e, context=NAV)
        finally:
            self._navigating = False
            self._task = None

    async def wait_idle(self) -> None:
        """Wait for a scheduled navigation to finish."""
        task = self._task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._navigating = False
