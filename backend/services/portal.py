"""
Portal collaborators - Auth, theme and router seams.

The orchestrator only talks to these Protocols. The in-memory classes below
back the standalone server and the test-suite.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

logger = logging.getLogger(__name__)

AuthListener = Callable[[str], None]

LOGIN = "login"
LOGOUT = "logout"


@dataclass
class User:
    full_name: str
    roles: List[str] = field(default_factory=list)
    permissions: List[str] = field(default_factory=list)


class AuthService(Protocol):
    def is_logged_in(self) -> bool: ...

    def current_user(self) -> Optional[User]: ...

    def get_access_token(self) -> Optional[str]: ...

    def subscribe(self, listener: AuthListener) -> Callable[[], None]: ...


class ThemeService(Protocol):
    def is_dark_theme(self) -> bool: ...

    def toggle_theme(self) -> None: ...


class Router(Protocol):
    url: str
    config: Sequence[Dict[str, Any]]

    async def navigate_by_url(self, url: str) -> bool: ...


# =============================================================================
# In-memory implementations
# =============================================================================


class InMemoryAuthService:
    """Auth state with login/logout events."""

    def __init__(self, user: Optional[User] = None, token: Optional[str] = None):
        self._user = user
        self._token = token
        self._listeners: List[AuthListener] = []

    def is_logged_in(self) -> bool:
        return self._user is not None

    def current_user(self) -> Optional[User]:
        return self._user

    def get_access_token(self) -> Optional[str]:
        return self._token if self._user else None

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: str) -> None:
        for listener in list(self._listeners):
            listener(event)

    def login(self, user: User, token: Optional[str] = None) -> None:
        self._user = user
        self._token = token
        logger.info(f"User logged in: {user.full_name}")
        self._emit(LOGIN)

    def logout(self) -> None:
        self._user = None
        self._token = None
        logger.info("User logged out")
        self._emit(LOGOUT)


class InMemoryThemeService:
    def __init__(self, dark: bool = False):
        self._dark = dark
        self.toggle_count = 0

    def is_dark_theme(self) -> bool:
        return self._dark

    def toggle_theme(self) -> None:
        self._dark = not self._dark
        self.toggle_count += 1


class InMemoryRouter:
    """Records navigations; every known-looking URL succeeds."""

    def __init__(self, config: Optional[Sequence[Dict[str, Any]]] = None, url: str = "/app/home"):
        self.config = list(config if config is not None else DEFAULT_ROUTES)
        self.url = url
        self.history: List[str] = []

    async def navigate_by_url(self, url: str) -> bool:
        self.history.append(url)
        self.url = url
        return True


# =============================================================================
# Default route tree
# =============================================================================

DEFAULT_ROUTES: List[Dict[str, Any]] = [
    {"path": "", "redirect_to": "app"},
    {"path": "login", "data": {"title": "Đăng nhập"}},
    {
        "path": "app",
        "children": [
            {"path": "", "redirect_to": "home"},
            {"path": "home", "data": {"title": "Trang chủ"}},
            {"path": "settings", "data": {"title": "Cài đặt"}},
            {
                "path": "equipment",
                "data": {"permission": "QLThietBi"},
                "children": [
                    {"path": "catalog", "data": {"title": "Danh sách thiết bị", "permission": "QLThietBi.DanhSach"}},
                    {"path": "dashboard", "data": {"title": "Dashboard thiết bị", "permission": "QLThietBi.Dashboard"}},
                ],
            },
            {
                "path": "reports",
                "data": {"permission": "BaoCao"},
                "children": [
                    {"path": "bed-usage", "data": {"title": "Báo cáo giường", "permission": "BaoCao.Giuong"}},
                    {
                        "path": "examination-overview",
                        "data": {"title": "Báo cáo khám chữa bệnh", "permission": "BaoCao.KhamBenh"},
                    },
                    {
                        "path": "missing-medical-records",
                        "data": {"title": "Báo cáo HSBA chưa hoàn tất", "permission": "BaoCao.HSBA"},
                    },
                    {"path": "cls-level3", "data": {"title": "Hoạt động CLS Tầng 3", "permission": "BaoCao.CLS"}},
                    {"path": "cls-level6", "data": {"title": "Hoạt động CLS Tầng 6", "permission": "BaoCao.CLS"}},
                    {"path": "specialty-cls", "data": {"title": "Thống kê CLS chuyên khoa", "permission": "BaoCao.CLS"}},
                ],
            },
        ],
    },
    {"path": "**", "redirect_to": "app"},
]
