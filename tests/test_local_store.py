import json
import pytest
from darknova_core.repositories.local import KEY_ABSENCES, KEY_ORDERS, KEY_USERS, LocalStore
from darknova_core.services import FarmService
from darknova_core.init_db import init_db
from conftest import local_settings


@pytest.fixture
def local_service(tmp_path, clock):
    repos = init_db(create_admin=False, settings=local_settings(tmp_path))
    return FarmService(repos, clock=clock)


def test_collections_live_under_fixed_keys(tmp_path, local_service):
    svc = local_service
    admin = svc.ensure_seed_admin("admin", "pw")
    order = svc.create_order(admin, [{"block_id": "wheat", "amount": 3}], "2024-01-01", "2024-01-31")
    svc.create_absence(admin, "2024-03-01", "2024-03-02")

    data = json.loads((tmp_path / "state.json").read_text(encoding="utf-8"))
    assert set(data) >= {KEY_USERS, KEY_ORDERS, KEY_ABSENCES}
    assert data[KEY_ORDERS][0]["id"] == order.id
    assert data[KEY_ORDERS][0]["start_date"] == "2024-01-01"
    # hashes only, never the plaintext password
    assert data[KEY_USERS][0]["password_hash"] != "pw"


def test_progress_is_embedded_in_order(tmp_path, local_service):
    svc = local_service
    admin = svc.ensure_seed_admin("admin", "pw")
    farmer = svc.create_user(admin, "Steve", "pw", "farmer")
    order = svc.create_order(admin, [{"block_id": "wheat", "amount": 3}], "2024-01-01", "2024-01-31")
    svc.accept_order(farmer, order.id)
    svc.update_progress(farmer, order.id, "wheat", 2)

    reopened = FarmService(init_db(create_admin=False, settings=local_settings(tmp_path)))
    stored = reopened.get_order(admin, order.id)
    assert stored.progress[0].completed_items[0].amount == 2


def test_store_read_write_remove(tmp_path):
    store = LocalStore(tmp_path / "nested" / "state.json")
    assert store.read("missing", []) == []
    store.write("k", {"a": 1})
    assert store.read("k") == {"a": 1}
    store.remove("k")
    store.remove("k")
    assert store.read("k") is None
