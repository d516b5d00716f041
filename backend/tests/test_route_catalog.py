"""
Tests for the permission-filtered route catalog.
"""

from routers.chat_orchestration.route_catalog import RouteCatalog, clean_key
from services.portal import DEFAULT_ROUTES, InMemoryAuthService, User

from conftest import ALL_PERMISSIONS


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def _catalog(permissions=None, logged_in=True, **kwargs):
    user = User(full_name="Test", permissions=list(permissions or [])) if logged_in else None
    auth = InMemoryAuthService(user)
    return RouteCatalog(DEFAULT_ROUTES, auth, **kwargs), auth


class TestCleanKey:
    """Test key normalization."""

    def test_strips_root_and_slashes(self):
        """Leading slash, app/ root and trailing slash are removed."""
        assert clean_key("/app/reports/bed-usage/") == "reports/bed-usage"
        assert clean_key("app/home") == "home"
        assert clean_key("Settings") == "settings"
        assert clean_key("") == ""


class TestRouteScan:
    """Test which routes are visible."""

    def test_full_permissions(self):
        """Every titled screen is listed with its cleaned key."""
        catalog, _ = _catalog(ALL_PERMISSIONS)
        keys = catalog.route_keys()
        assert keys == [
            "home",
            "settings",
            "equipment/catalog",
            "equipment/dashboard",
            "reports/bed-usage",
            "reports/examination-overview",
            "reports/missing-medical-records",
            "reports/cls-level3",
            "reports/cls-level6",
            "reports/specialty-cls",
        ]

    def test_public_routes_without_permissions(self):
        """Users without permissions still see public screens."""
        catalog, _ = _catalog([])
        assert catalog.route_keys() == ["home", "settings"]

    def test_login_and_redirects_excluded(self):
        """Titled but non-public top-level routes and redirects are skipped."""
        catalog, _ = _catalog(ALL_PERMISSIONS)
        urls = [r.full_url for r in catalog.get_routes()]
        assert "/login" not in urls
        assert all("**" not in u for u in urls)

    def test_prefix_permission_match(self):
        """A child permission satisfies the parent's prefix check."""
        catalog, _ = _catalog(["BaoCao.Giuong"])
        assert catalog.route_keys() == ["home", "settings", "reports/bed-usage"]

    def test_denied_parent_hides_subtree(self):
        """Children are not visited when the parent permission is missing."""
        catalog, _ = _catalog(["QLThietBi.DanhSach"])
        keys = catalog.route_keys()
        assert "equipment/catalog" in keys
        assert "equipment/dashboard" not in keys
        assert not any(k.startswith("reports/") for k in keys)

    def test_screen_config_attached(self):
        """Descriptions and keywords come from the screen config."""
        catalog, _ = _catalog(ALL_PERMISSIONS)
        route = catalog.resolve("reports/bed-usage")
        assert route.full_url == "/app/reports/bed-usage"
        assert route.title == "Báo cáo giường"
        assert "giường" in route.keywords
        assert route.description


class TestRouteCache:
    """Test memoization and invalidation."""

    def test_cached_between_calls(self):
        """A second read does not rescan."""
        clock = FakeClock()
        catalog, _ = _catalog(ALL_PERMISSIONS, clock=clock)
        first = catalog.get_routes()
        catalog._route_table = []
        assert catalog.get_routes() == first

    def test_ttl_expiry(self):
        """Expired caches are rebuilt."""
        clock = FakeClock()
        catalog, _ = _catalog(ALL_PERMISSIONS, ttl_s=10, clock=clock)
        catalog.get_routes()
        catalog._route_table = []
        clock.now = 11
        assert catalog.get_routes() == []

    def test_invalidate(self):
        """invalidate() forces a rebuild."""
        catalog, _ = _catalog(ALL_PERMISSIONS)
        catalog.get_routes()
        catalog._route_table = []
        catalog.invalidate()
        assert catalog.get_routes() == []

    def test_permission_change_rebuilds(self):
        """Changed permissions are picked up without invalidate()."""
        catalog, auth = _catalog(["BaoCao.Giuong"])
        assert "reports/cls-level3" not in catalog.route_keys()
        auth.current_user().permissions.append("BaoCao.CLS")
        assert "reports/cls-level3" in catalog.route_keys()

    def test_logout_hides_protected_routes(self):
        """Logged-out users only see public routes."""
        catalog, auth = _catalog(ALL_PERMISSIONS)
        assert len(catalog.route_keys()) == 10
        auth.logout()
        assert catalog.route_keys() == ["home", "settings"]


class TestLookup:
    """Test resolve() and find_matches()."""

    def setup_method(self):
        self.catalog, _ = _catalog(ALL_PERMISSIONS)

    def test_resolve_exact_key(self):
        """Exact keys resolve directly."""
        assert self.catalog.resolve("settings").key == "settings"

    def test_resolve_url(self):
        """Full URLs and app-rooted keys resolve."""
        assert self.catalog.resolve("/app/reports/cls-level6").key == "reports/cls-level6"
        assert self.catalog.resolve("app/equipment/catalog").key == "equipment/catalog"

    def test_resolve_fuzzy(self):
        """Loose names match titles and keywords."""
        assert self.catalog.resolve("giường").key == "reports/bed-usage"
        assert self.catalog.resolve("hsba").key == "reports/missing-medical-records"

    def test_resolve_unknown(self):
        """Unknown keys resolve to None."""
        assert self.catalog.resolve("reports/payroll") is None
        assert self.catalog.resolve("") is None

    def test_resolve_forbidden(self):
        """Screens outside the user's permissions never resolve."""
        catalog, _ = _catalog(["BaoCao.Giuong"])
        assert catalog.resolve("reports/cls-level3") is None

    def test_find_matches_phrase(self):
        """A phrase shared by several titles returns all of them."""
        titles = [r.title for r in self.catalog.find_matches("bao cao")]
        assert titles == ["Báo cáo giường", "Báo cáo khám chữa bệnh", "Báo cáo HSBA chưa hoàn tất"]

    def test_find_matches_single(self):
        """A specific phrase returns one screen."""
        matches = self.catalog.find_matches("bao cao giuong")
        assert [r.key for r in matches] == ["reports/bed-usage"]

    def test_find_matches_word_score(self):
        """Without a phrase hit, the best word score wins."""
        matches = self.catalog.find_matches("giuong khoa")
        assert [r.key for r in matches] == ["reports/bed-usage"]

    def test_find_matches_by_key(self):
        """Route keys are searchable."""
        matches = self.catalog.find_matches("level3")
        assert [r.key for r in matches] == ["reports/cls-level3"]

    def test_find_matches_whole_words(self):
        """Short folded words do not match inside longer words."""
        assert [r.key for r in self.catalog.find_matches("chu")] == ["home"]
        assert [r.key for r in self.catalog.find_matches("trang chu")] == ["home"]

    def test_find_matches_long_word_prefix(self):
        """Words longer than three characters may match inside a longer word."""
        matches = self.catalog.find_matches("giuo")
        assert [r.key for r in matches] == ["reports/bed-usage"]

    def test_find_matches_none(self):
        """No matching word returns an empty list."""
        assert self.catalog.find_matches("payroll") == []
        assert self.catalog.find_matches("") == []

    def test_vocabulary(self):
        """Vocabulary lists titles and keywords of visible routes."""
        words = self.catalog.vocabulary()
        assert "Báo cáo giường" in words
        assert "công suất" in words
