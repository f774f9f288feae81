from __future__ import annotations

from contact_importer.events import CONTACTS_IMPORTED, EventBus
from contact_importer.models import ContactsImported


def test_publish_reaches_subscribers_until_unsubscribed() -> None:
    bus = EventBus()
    received = []
    unsubscribe = bus.subscribe(CONTACTS_IMPORTED, received.append)
    payload = ContactsImported(success_count=40, failure_count=2, workspace_id="ws_1")

    assert bus.publish(CONTACTS_IMPORTED, payload) == 1
    unsubscribe()
    unsubscribe()
    assert bus.publish(CONTACTS_IMPORTED, payload) == 0

    assert received == [payload]


def test_failing_handler_does_not_block_others(caplog) -> None:
    bus = EventBus()
    received = []

    def broken(_payload) -> None:
        raise RuntimeError("listener crashed")

    bus.subscribe(CONTACTS_IMPORTED, broken)
    bus.subscribe(CONTACTS_IMPORTED, received.append)

    assert bus.publish(CONTACTS_IMPORTED, "payload") == 2
    assert received == ["payload"]
    assert "listener crashed" in caplog.text
