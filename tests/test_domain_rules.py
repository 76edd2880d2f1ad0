from datetime import date, datetime, timezone
import pytest
from darknova_core.domain import (
    OVERDUE,
    PROGRESS_STATUS_LABELS,
    UNKNOWN_USER_LABEL,
    CompletedItem,
    Order,
    OrderItem,
    OrderStatus,
    Progress,
    ProgressStatus,
    Role,
    Unit,
    User,
    available_orders,
    can_submit,
    completion_percent,
    derive_status,
    display_status,
    display_username,
    is_overdue,
    orders_for_user,
    pending_confirmations,
    rollup_order_status,
    status_label,
    total_ordered,
    upsert_completed,
)

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _order(*amounts, progress=None, status=OrderStatus.OPEN, deadline=date(2024, 1, 31)):
    return Order(
        id="o1",
        items=[OrderItem(block_id=f"b{i}", amount=a, unit=Unit.DK) for i, a in enumerate(amounts)],
        start_date=date(2024, 1, 1),
        deadline=deadline,
        created_by="admin",
        created_at=NOW,
        status=status,
        progress=progress or [],
    )


@pytest.mark.parametrize(
    "ordered,completed,expected",
    [
        (10, 0, ProgressStatus.ACCEPTED),
        (10, 1, ProgressStatus.IN_PROGRESS),
        (10, 10, ProgressStatus.IN_PROGRESS),
        (0, 0, ProgressStatus.ACCEPTED),
    ],
)
def test_derive_status_table(ordered, completed, expected):
    assert derive_status(ordered, completed) == expected


def test_total_ordered_sums_across_units():
    order = _order(10, 5)
    order.items[1].unit = Unit.KISTEN
    assert total_ordered(order) == 15


def test_completion_percent_rounds_and_handles_missing_progress():
    p = Progress(user_id="u1", completed_items=[CompletedItem("b0", 1)])
    order = _order(3, progress=[p])
    assert completion_percent(order, p) == 33
    assert completion_percent(order, None) == 0
    assert completion_percent(_order(), p) == 0


def test_upsert_completed_keeps_one_entry_per_block():
    p = Progress(user_id="u1")
    upsert_completed(p, "b0", 4)
    upsert_completed(p, "b0", 4)
    upsert_completed(p, "b0", 6)
    assert [(ci.block_id, ci.amount) for ci in p.completed_items] == [("b0", 6)]


def test_can_submit_requires_full_amount_and_working_status():
    p = Progress(user_id="u1", status=ProgressStatus.IN_PROGRESS, completed_items=[CompletedItem("b0", 9)])
    order = _order(10, progress=[p])
    assert not can_submit(order, p)
    p.completed_items[0].amount = 10
    assert can_submit(order, p)
    p.status = ProgressStatus.SUBMITTED
    assert not can_submit(order, p)


def test_rollup_order_status():
    assert rollup_order_status(_order(1)) == OrderStatus.OPEN
    a = Progress(user_id="a", status=ProgressStatus.CONFIRMED)
    b = Progress(user_id="b", status=ProgressStatus.SUBMITTED)
    assert rollup_order_status(_order(1, progress=[a, b])) == OrderStatus.IN_PROGRESS
    b.status = ProgressStatus.CONFIRMED
    assert rollup_order_status(_order(1, progress=[a, b])) == OrderStatus.COMPLETED


def test_overdue_is_presentation_only():
    order = _order(1, deadline=date(2024, 1, 31))
    assert not is_overdue(order, date(2024, 1, 31))
    assert is_overdue(order, date(2024, 2, 1))
    assert display_status(order, date(2024, 2, 1)) == OVERDUE
    assert order.status == OrderStatus.OPEN
    order.status = OrderStatus.COMPLETED
    assert not is_overdue(order, date(2024, 2, 1))


def test_filters_by_member():
    mine = Progress(user_id="u1", status=ProgressStatus.SUBMITTED)
    claimed = _order(1, progress=[mine])
    free = _order(1)
    free.id = "o2"
    done = _order(1, status=OrderStatus.COMPLETED)
    done.id = "o3"
    orders = [claimed, free, done]
    assert [o.id for o in available_orders(orders, "u1")] == ["o2"]
    assert [o.id for o in orders_for_user(orders, "u1", (ProgressStatus.SUBMITTED,))] == ["o1"]
    assert pending_confirmations(orders) == [(claimed, mine)]


def test_display_username_falls_back_for_dangling_reference():
    users = [User(id="u1", username="Steve", role=Role.FARMER, created_at=NOW)]
    assert display_username(users, "u1") == "Steve"
    assert display_username(users, "gone") == UNKNOWN_USER_LABEL
    assert display_username(users, None) == UNKNOWN_USER_LABEL


def test_status_label_falls_back_to_raw_code():
    assert status_label(ProgressStatus.SUBMITTED, PROGRESS_STATUS_LABELS) == "Abgegeben"
    assert status_label("archived", PROGRESS_STATUS_LABELS) == "archived"


def test_rollup_skips_unfinished_records_of_removed_members():
    done = Progress(user_id="a", status=ProgressStatus.CONFIRMED)
    orphan = Progress(user_id="gone", status=ProgressStatus.ACCEPTED)
    order = _order(1, progress=[done, orphan])
    assert rollup_order_status(order) == OrderStatus.IN_PROGRESS
    assert rollup_order_status(order, member_ids=["a"]) == OrderStatus.COMPLETED
    assert rollup_order_status(_order(1, progress=[orphan]), member_ids=["a"]) == OrderStatus.OPEN
    # confirmed work of a removed member still counts
    assert rollup_order_status(_order(1, progress=[done]), member_ids=[]) == OrderStatus.COMPLETED
