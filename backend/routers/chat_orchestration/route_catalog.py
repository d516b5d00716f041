"""
Route Catalog - Screens the current user may open.

Walks the portal's route tree depth-first and keeps the nodes that have a
display title and pass the permission check:
- no permission required and the bare path is public (home, settings, ...)
- or some user permission starts with the required permission

A node whose required permission is missing hides its whole subtree.
Redirect and wildcard entries are skipped. The result is memoized and
rebuilt on invalidate(), on TTL expiry, and whenever the user's permission
list changes.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .handlers.normalizer import normalize

logger = logging.getLogger(__name__)

PUBLIC_PATHS = frozenset({"home", "settings", "profile", "app", ""})

# Static descriptions and synonyms per route key
SCREEN_CONFIG: Dict[str, Dict[str, Any]] = {
    "home": {
        "description": "Trang chính, thống kê tổng quan",
        "keywords": ["home", "trang chủ", "chính", "dashboard", "tổng quan"],
    },
    "settings": {
        "description": "Cài đặt tài khoản, đổi mật khẩu",
        "keywords": [
            "settings", "cài đặt", "tài khoản", "account", "mật khẩu", "password",
            "đổi mật khẩu", "change password", "thông tin", "cá nhân", "profile", "hồ sơ cá nhân",
        ],
    },
    "equipment/catalog": {
        "description": "Danh sách thiết bị, in QR, biên bản bàn giao",
        "keywords": ["thiết bị", "máy móc", "catalog", "danh sách", "qr", "bàn giao"],
    },
    "equipment/dashboard": {
        "description": "Dashboard thiết bị, biểu đồ tình trạng",
        "keywords": ["thiết bị", "dashboard", "biểu đồ", "tình trạng"],
    },
    "reports/bed-usage": {
        "description": "Công suất giường bệnh theo khoa",
        "keywords": ["giường", "bed", "công suất", "khoa"],
    },
    "reports/examination-overview": {
        "description": "Tổng quan khám chữa bệnh, BHYT/Viện phí",
        "keywords": ["khám", "examination", "bhyt", "viện phí", "doanh thu"],
    },
    "reports/missing-medical-records": {
        "description": "Bác sĩ chưa hoàn tất hồ sơ bệnh án",
        "keywords": ["hsba", "hồ sơ bệnh án", "bác sĩ", "medical records", "thiếu"],
    },
    "reports/cls-level3": {
        "description": "Hoạt động CLS Tầng 3",
        "keywords": ["cls", "tầng 3", "lầu 3", "level 3", "level3", "cận lâm sàng"],
    },
    "reports/cls-level6": {
        "description": "Hoạt động CLS Tầng 6",
        "keywords": ["cls", "tầng 6", "lầu 6", "level 6", "level6", "cận lâm sàng"],
    },
    "reports/specialty-cls": {
        "description": "Thống kê CLS theo chuyên khoa",
        "keywords": ["cls", "chuyên khoa", "specialty", "thống kê"],
    },
}


@dataclass(frozen=True)
class RouteInfo:
    """One screen the current user can navigate to."""

    title: str
    full_url: str
    key: str
    keywords: Tuple[str, ...] = ()
    description: Optional[str] = None

    def search_fields(self) -> List[str]:
        """Normalized text fields used for fuzzy matching."""
        fields = [
            self.key.replace("/", " ").replace("-", " "),
            normalize(self.title),
            normalize(self.description or ""),
        ]
        fields.extend(normalize(k) for k in self.keywords)
        return [f for f in fields if f]


def clean_key(key: str) -> str:
    """Strip a leading slash, the app/ root and a trailing slash."""
    cleaned = (key or "").strip().lower().lstrip("/")
    if cleaned.startswith("app/"):
        cleaned = cleaned[len("app/"):]
    return cleaned.rstrip("/")


def _contains_phrase(field: str, phrase: str) -> bool:
    """True when phrase occurs in field as a run of whole words."""
    return f" {phrase} " in f" {field} "


@dataclass
class _CacheEntry:
    routes: List[RouteInfo]
    built_at: float
    permissions_hash: int
    by_key: Dict[str, RouteInfo] = field(default_factory=dict)


class RouteCatalog:
    """
    Permission-filtered, memoized view of the route tree.

    Usage:
        catalog = RouteCatalog(router.config, auth)
        route = catalog.resolve("reports/bed-usage")
        matches = catalog.find_matches("bao cao")
    """

    def __init__(
        self,
        route_table: Sequence[Dict[str, Any]],
        auth: Any,
        screen_config: Optional[Dict[str, Dict[str, Any]]] = None,
        ttl_s: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._route_table = route_table
        self._auth = auth
        self._screen_config = SCREEN_CONFIG if screen_config is None else screen_config
        self._ttl_s = ttl_s
        self._clock = clock
        self._cache: Optional[_CacheEntry] = None

    # -------------------------------------------------------------------------
    # Cache
    # -------------------------------------------------------------------------

    def _permissions(self) -> List[str]:
        if not self._auth.is_logged_in():
            return []
        user = self._auth.current_user()
        return list(user.permissions) if user else []

    def _permissions_hash(self) -> int:
        return hash((self._auth.is_logged_in(), tuple(sorted(self._permissions()))))

    def invalidate(self) -> None:
        """Drop the cached route list. The next read rebuilds it."""
        if self._cache is not None:
            logger.debug("Route cache invalidated")
        self._cache = None

    def get_routes(self) -> List[RouteInfo]:
        """Routes visible to the current user (memoized)."""
        now = self._clock()
        perm_hash = self._permissions_hash()
        cache = self._cache
        if cache is not None:
            if now - cache.built_at >= self._ttl_s:
                logger.debug("Route cache expired")
            elif cache.permissions_hash != perm_hash:
                logger.info("Permissions changed, rebuilding route cache")
            else:
                return list(cache.routes)

        routes = self._scan(self._route_table, "", self._permissions())
        self._cache = _CacheEntry(
            routes=routes,
            built_at=now,
            permissions_hash=perm_hash,
            by_key={r.key: r for r in routes},
        )
        logger.info(f"Route catalog built: {len(routes)} visible routes")
        return list(routes)

    # -------------------------------------------------------------------------
    # Scan
    # -------------------------------------------------------------------------

    @staticmethod
    def _has_permission(required: str, permissions: List[str]) -> bool:
        return any(p.startswith(required) for p in permissions)

    def _scan(self, nodes: Sequence[Dict[str, Any]], parent_path: str, permissions: List[str]) -> List[RouteInfo]:
        results: List[RouteInfo] = []
        for node in nodes:
            path = node.get("path") or ""
            if node.get("redirect_to") or node.get("redirectTo") or path == "**":
                continue

            full_path = f"{parent_path}/{path}" if parent_path else f"/{path}"
            full_path = full_path.rstrip("/") or "/"
            key = clean_key(full_path)

            data = node.get("data") or {}
            required = data.get("permission")
            if required and not self._has_permission(required, permissions):
                continue

            title = data.get("title")
            if title and (required or path in PUBLIC_PATHS):
                extra = self._screen_config.get(key, {})
                results.append(
                    RouteInfo(
                        title=title,
                        full_url=full_path,
                        key=key,
                        keywords=tuple(extra.get("keywords", ())),
                        description=extra.get("description"),
                    )
                )

            children = node.get("children")
            if children:
                results.extend(self._scan(children, "" if full_path == "/" else full_path, permissions))
        return results

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def route_keys(self) -> List[str]:
        return [r.key for r in self.get_routes()]

    def vocabulary(self) -> List[str]:
        """Titles and keywords of visible routes (for the density check)."""
        words: List[str] = []
        for route in self.get_routes():
            words.append(route.title)
            words.extend(route.keywords)
        return words

    def resolve(self, key: str) -> Optional[RouteInfo]:
        """
        Resolve a route key, URL or loose name.

        Order: exact key or URL, cleaned key (leading slash and app/ root
        stripped), then fuzzy containment in key/url/title/keywords.
        """
        if not key:
            return None
        routes = self.get_routes()
        by_key = self._cache.by_key if self._cache else {r.key: r for r in routes}

        if key in by_key:
            return by_key[key]
        for route in routes:
            if route.full_url == key:
                return route

        cleaned = clean_key(key)
        if cleaned in by_key:
            return by_key[cleaned]

        needle = normalize(cleaned.replace("-", " ").replace("/", " "))
        if not needle:
            return None
        for route in routes:
            if needle in normalize(route.full_url.replace("-", " ").replace("/", " ")):
                return route
            if any(needle in f for f in route.search_fields()):
                return route
        return None

    def find_matches(self, query: str) -> List[RouteInfo]:
        """
        Routes matching a navigation query, best first.

        Routes containing the query phrase as whole words win; otherwise
        routes with the highest number of matching query words are returned.
        Words longer than 3 characters also match inside a longer word.
        """
        words = [w for w in normalize(query).split(" ") if len(w) > 1]
        if not words:
            return []
        phrase = " ".join(words)
        routes = self.get_routes()

        phrase_hits = [r for r in routes if any(_contains_phrase(f, phrase) for f in r.search_fields())]
        if phrase_hits:
            return phrase_hits

        scored: List[Tuple[int, RouteInfo]] = []
        for route in routes:
            tokens = {t for f in route.search_fields() for t in f.split(" ")}
            score = sum(
                1 for w in words
                if w in tokens or (len(w) > 3 and any(w in t for t in tokens))
            )
            if score:
                scored.append((score, route))
        if not scored:
            return []
        best = max(score for score, _ in scored)
        return [route for score, route in scored if score == best]
