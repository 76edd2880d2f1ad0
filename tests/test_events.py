from darknova_core.events import ChangeEvent, ChangeFeed


def test_publish_reaches_subscribers_until_unsubscribed():
    feed = ChangeFeed()
    seen = []
    unsubscribe = feed.subscribe(seen.append)
    feed.publish("farm_orders", "insert", "o1")
    unsubscribe()
    feed.publish("farm_orders", "delete", "o1")
    assert seen == [ChangeEvent("farm_orders", "insert", "o1")]
    assert len(feed) == 0


def test_failing_listener_is_dropped():
    feed = ChangeFeed()
    seen = []

    def broken(event):
        raise RuntimeError("gone")

    feed.subscribe(broken)
    feed.subscribe(seen.append)
    feed.publish("profiles", "insert", "u1")
    assert len(feed) == 1
    feed.publish("profiles", "delete", "u1")
    assert [e.action for e in seen] == ["insert", "delete"]


def test_event_payload():
    assert ChangeEvent("absence_requests", "update", "a1").as_dict() == {
        "type": "change",
        "table": "absence_requests",
        "action": "update",
        "id": "a1",
    }
