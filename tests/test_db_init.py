import pytest
from darknova_core.config import ConfigError, Settings
from darknova_core.domain import Role
from darknova_core.init_db import init_db
from darknova_core.db import Base
from darknova_core.repositories import build_repositories
from conftest import local_settings, sql_settings


@pytest.mark.parametrize("make_settings", [sql_settings, local_settings])
def test_init_db_idempotent(tmp_path, make_settings):
    settings = make_settings(tmp_path)
    settings.admin_user, settings.admin_pass = "root", "root-pass"
    # Run twice to ensure no duplicate admin user creation errors.
    init_db(create_admin=True, settings=settings)
    repos = init_db(create_admin=True, settings=settings)
    users = repos.users.list_all()
    assert [(u.username, u.role) for u in users] == [("root", Role.ADMIN)]
    if repos.engine is not None:
        assert "farm_orders" in Base.metadata.tables
        repos.engine.dispose()


def test_unknown_adapter_rejected():
    with pytest.raises(ConfigError):
        build_repositories(Settings(storage="firebase"))
