import sys, os, tempfile
from datetime import datetime, timezone
import pytest

# Always force tests to use an isolated SQLite database file under a temp dir.
# Do this before importing any darknova_core modules (especially darknova_core.db).
if "DARKNOVA_DB_URL" not in os.environ and "DARKNOVA_DATABASE_URL" not in os.environ:
    _test_db_dir = tempfile.mkdtemp(prefix="darknova_test_db_")
    os.environ["DARKNOVA_DB_URL"] = f"sqlite:///{os.path.join(_test_db_dir, 'test_darknova.db')}"
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DARKNOVA_STORAGE", "sql")
# Ensure core and api src dirs are on sys.path for imports
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
for _src in (os.path.join(ROOT, 'packages', 'core', 'src'), os.path.join(ROOT, 'apps', 'api', 'src')):
    if _src not in sys.path:
        sys.path.insert(0, _src)

from darknova_core.config import Settings  # noqa: E402
from darknova_core.domain import Role  # noqa: E402
from darknova_core.events import ChangeFeed  # noqa: E402
from darknova_core.init_db import init_db  # noqa: E402
from darknova_core.services import FarmService  # noqa: E402


class Clock:
    """Settable clock handed to the service instead of the wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def sql_settings(tmp_path) -> Settings:
    return Settings(storage="sql", db_url=f"sqlite:///{tmp_path / 'test.db'}", secret_key="test-secret-key")


def local_settings(tmp_path) -> Settings:
    return Settings(storage="local", state_file=str(tmp_path / "state.json"))


@pytest.fixture(params=["sql", "local"])
def repos(request, tmp_path):
    settings = sql_settings(tmp_path) if request.param == "sql" else local_settings(tmp_path)
    r = init_db(create_admin=False, settings=settings)
    yield r
    if r.engine is not None:
        r.engine.dispose()


@pytest.fixture
def clock():
    return Clock(datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def service(repos, clock, feed):
    return FarmService(repos, feed=feed, clock=clock)


@pytest.fixture
def admin(service):
    return service.ensure_seed_admin("admin", "admin-pass")


@pytest.fixture
def farmer(service, admin):
    return service.create_user(admin, "Steve", "steve-pass", Role.FARMER)


@pytest.fixture
def farmer2(service, admin):
    return service.create_user(admin, "Alex", "alex-pass", Role.FARMER)


@pytest.fixture
def viewer(service, admin):
    return service.create_user(admin, "Guest", "guest-pass", Role.VIEWER)
