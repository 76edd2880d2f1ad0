from datetime import date, datetime, timedelta, timezone
import pytest
from darknova_core.domain import OrderStatus, ProgressStatus, Role, Unit, total_ordered
from darknova_core.events import ChangeFeed
from darknova_core.services import FarmService
from darknova_core.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

ONE_ITEM = [{"block_id": "wheat", "amount": 10, "unit": "dk"}]


def _create(service, admin, items=ONE_ITEM, auto_assign=False, notes=None):
    return service.create_order(admin, items, "2024-01-01", "2024-01-31", auto_assign=auto_assign, notes=notes)


def test_full_lifecycle_single_member(service, admin, farmer, clock):
    order = _create(service, admin)
    assert order.status == OrderStatus.OPEN
    assert order.items[0].unit == Unit.DK
    assert order.start_date == date(2024, 1, 1)

    p = service.accept_order(farmer, order.id)
    assert p.status == ProgressStatus.ACCEPTED

    p = service.update_progress(farmer, order.id, "wheat", 10)
    assert p.status == ProgressStatus.IN_PROGRESS

    clock.now = clock.now + timedelta(hours=1)
    p = service.submit_order(farmer, order.id)
    assert p.status == ProgressStatus.SUBMITTED
    assert p.submitted_at == clock.now

    clock.now = clock.now + timedelta(hours=1)
    p = service.confirm_order(admin, order.id, farmer.id)
    assert p.status == ProgressStatus.CONFIRMED
    assert p.confirmed_by == admin.id
    assert p.confirmed_at == clock.now

    stored = service.get_order(admin, order.id)
    assert stored.status == OrderStatus.COMPLETED


def test_replaying_the_sequence_does_not_duplicate_records(service, admin, farmer):
    order = _create(service, admin)
    for _ in range(2):
        service.accept_order(farmer, order.id)
        service.update_progress(farmer, order.id, "wheat", 10)
    for _ in range(2):
        service.submit_order(farmer, order.id)
    for _ in range(2):
        service.confirm_order(admin, order.id, farmer.id)
    stored = service.get_order(admin, order.id)
    assert len(stored.progress) == 1
    assert len(stored.progress[0].completed_items) == 1
    assert stored.progress[0].status == ProgressStatus.CONFIRMED


def test_update_progress_is_idempotent_per_item(service, admin, farmer):
    order = _create(service, admin, items=ONE_ITEM + [{"block_id": "carrot", "amount": 5, "unit": "kisten"}])
    service.accept_order(farmer, order.id)
    service.update_progress(farmer, order.id, "wheat", 4)
    service.update_progress(farmer, order.id, "wheat", 4)
    p = service.get_order(admin, order.id).progress_for(farmer.id)
    entries = [(ci.block_id, ci.amount) for ci in p.completed_items]
    assert entries == [("wheat", 4)]


def test_update_progress_caps_and_reverts(service, admin, farmer):
    order = _create(service, admin)
    service.accept_order(farmer, order.id)
    p = service.update_progress(farmer, order.id, "wheat", 25)
    assert p.completed_items[0].amount == 10
    p = service.update_progress(farmer, order.id, "wheat", 0)
    assert p.status == ProgressStatus.ACCEPTED


def test_update_progress_rejects_bad_input(service, admin, farmer):
    order = _create(service, admin)
    with pytest.raises(NotFoundError):
        service.update_progress(farmer, order.id, "wheat", 1)
    service.accept_order(farmer, order.id)
    with pytest.raises(ValidationError):
        service.update_progress(farmer, order.id, "diamond", 1)
    with pytest.raises(ValidationError):
        service.update_progress(farmer, order.id, "wheat", -1)


def test_submit_is_gated_on_total_completed(service, admin, farmer):
    order = _create(service, admin)
    service.accept_order(farmer, order.id)
    service.update_progress(farmer, order.id, "wheat", 9)
    with pytest.raises(InvalidTransitionError):
        service.submit_order(farmer, order.id)
    service.update_progress(farmer, order.id, "wheat", 10)
    assert service.submit_order(farmer, order.id).status == ProgressStatus.SUBMITTED
    with pytest.raises(InvalidTransitionError):
        service.update_progress(farmer, order.id, "wheat", 3)


def test_confirm_requires_submitted(service, admin, farmer):
    order = _create(service, admin)
    service.accept_order(farmer, order.id)
    with pytest.raises(InvalidTransitionError):
        service.confirm_order(admin, order.id, farmer.id)
    with pytest.raises(NotFoundError):
        service.confirm_order(admin, order.id, "nobody")


def test_auto_assign_creates_one_record_per_farmer(service, admin, farmer, farmer2, viewer):
    order = _create(service, admin, auto_assign=True)
    assert order.status == OrderStatus.IN_PROGRESS
    assert sorted(p.user_id for p in order.progress) == sorted([farmer.id, farmer2.id])
    assert all(p.status == ProgressStatus.ACCEPTED for p in order.progress)


def test_auto_assign_without_farmers_stays_open(service, admin):
    order = _create(service, admin, auto_assign=True)
    assert order.progress == []
    assert order.status == OrderStatus.OPEN


def test_completion_denominator_matches_line_items(service, admin, farmer):
    items = ONE_ITEM + [{"block_id": "carrot", "amount": 6, "unit": "kisten"}]
    order = _create(service, admin, items=items)
    service.accept_order(farmer, order.id)
    service.update_progress(farmer, order.id, "wheat", 10)
    service.update_progress(farmer, order.id, "carrot", 5)
    stored = service.get_order(admin, order.id)
    assert total_ordered(stored) == 16
    with pytest.raises(InvalidTransitionError):
        service.submit_order(farmer, order.id)


def test_create_order_validation(service, admin):
    with pytest.raises(ValidationError):
        service.create_order(admin, [], "2024-01-01", "2024-01-31")
    with pytest.raises(ValidationError):
        service.create_order(admin, [{"block_id": "", "amount": 1}], "2024-01-01", "2024-01-31")
    with pytest.raises(ValidationError):
        service.create_order(admin, [{"block_id": "wheat", "amount": 0}], "2024-01-01", "2024-01-31")
    with pytest.raises(ValidationError):
        service.create_order(admin, ONE_ITEM, None, "2024-01-31")
    with pytest.raises(ValidationError):
        service.create_order(admin, ONE_ITEM, "2024-02-01", "2024-01-31")
    with pytest.raises(ValidationError):
        service.create_order(admin, [{"block_id": "wheat", "amount": 1, "unit": "stacks"}], "2024-01-01", "2024-01-31")


def test_role_policy(service, admin, farmer, viewer):
    with pytest.raises(PermissionDeniedError):
        _create(service, farmer)
    order = _create(service, admin)
    with pytest.raises(PermissionDeniedError):
        service.accept_order(viewer, order.id)
    with pytest.raises(PermissionDeniedError):
        service.accept_order(admin, order.id)
    with pytest.raises(PermissionDeniedError):
        service.accept_order(farmer, order.id, user_id=admin.id)
    with pytest.raises(PermissionDeniedError):
        service.delete_order(farmer, order.id)
    with pytest.raises(PermissionDeniedError):
        service.list_orders(None)


def test_delete_order_removes_progress(service, admin, farmer):
    order = _create(service, admin)
    service.accept_order(farmer, order.id)
    service.update_progress(farmer, order.id, "wheat", 3)
    service.delete_order(admin, order.id)
    assert service.list_orders(admin) == []
    with pytest.raises(NotFoundError):
        service.delete_order(admin, order.id)


def test_completed_order_cannot_be_accepted(service, admin, farmer, farmer2):
    order = _create(service, admin)
    service.accept_order(farmer, order.id)
    service.update_progress(farmer, order.id, "wheat", 10)
    service.submit_order(farmer, order.id)
    service.confirm_order(admin, order.id, farmer.id)
    with pytest.raises(InvalidTransitionError):
        service.accept_order(farmer2, order.id)


def test_service_publishes_on_the_feed_it_was_given(repos):
    feed = ChangeFeed()
    assert len(feed) == 0
    assert FarmService(repos, feed=feed).feed is feed


def test_mutations_publish_change_events(service, admin, farmer, feed):
    seen = []
    feed.subscribe(seen.append)
    order = _create(service, admin)
    service.accept_order(farmer, order.id)
    tables = [e.table for e in seen]
    assert "farm_orders" in tables
    assert "user_order_progress" in tables


def test_dashboard_counts(service, admin, farmer, clock):
    order = _create(service, admin)
    _create(service, admin, notes="second")
    service.accept_order(farmer, order.id)
    service.update_progress(farmer, order.id, "wheat", 10)
    service.submit_order(farmer, order.id)
    service.create_absence(farmer, "2024-03-01", "2024-03-05")

    summary = service.dashboard(admin)
    assert summary["total_orders"] == 2
    assert summary["open_orders"] == 1
    assert summary["total_farmers"] == 1
    assert summary["pending_absences"] == 1
    assert summary["pending_confirmations"] == 1

    mine = service.dashboard(farmer)
    assert mine["my_submitted"] == 1
    assert mine["available"] == 1
    assert "total_orders" not in mine

    clock.now = datetime(2024, 2, 2, tzinfo=timezone.utc)
    assert service.dashboard(farmer)["overdue"] == 2


def test_orders_survive_creator_and_member_deletion(service, admin, farmer):
    other_admin = service.create_user(admin, "Boss", "boss-pass", Role.ADMIN)
    order = _create(service, other_admin)
    service.accept_order(farmer, order.id)
    service.delete_user(admin, farmer.id)
    service.delete_user(admin, other_admin.id)
    orders = service.list_orders(admin)
    assert orders[0].progress[0].user_id == farmer.id
    assert service.username_for(orders[0].created_by) == "Unbekannt"


def test_deleted_member_does_not_hold_order_open(service, admin, farmer, farmer2):
    order = _create(service, admin, auto_assign=True)
    service.delete_user(admin, farmer2.id)
    service.update_progress(farmer, order.id, "wheat", 10)
    service.submit_order(farmer, order.id)
    service.confirm_order(admin, order.id, farmer.id)

    stored = service.get_order(admin, order.id)
    assert stored.status == OrderStatus.COMPLETED
    # the orphaned record itself is kept
    assert stored.progress_for(farmer2.id).status == ProgressStatus.ACCEPTED


def test_deleting_only_member_reopens_order(service, admin, farmer):
    order = _create(service, admin)
    service.accept_order(farmer, order.id)
    assert service.get_order(admin, order.id).status == OrderStatus.IN_PROGRESS
    service.delete_user(admin, farmer.id)
    assert service.get_order(admin, order.id).status == OrderStatus.OPEN
