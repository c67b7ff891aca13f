from sitemirror.crawler.events import EventBus
from sitemirror.crawler.types import EventType


def test_publish_reaches_every_listener_even_when_one_fails():
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("listener went away")

    bus.subscribe(broken)
    bus.subscribe(received.append)

    event = bus.publish(EventType.PROGRESS, processed=1, total=3)

    assert received == [event]
    assert event.to_json()["data"] == {"processed": 1, "total": 3}


def test_unsubscribe_and_publish_without_listeners():
    bus = EventBus()
    received = []
    unsubscribe = bus.subscribe(received.append)

    bus.status("Scraping: https://site.test/")
    unsubscribe()
    unsubscribe()
    bus.status("ignored")

    assert [event.data["message"] for event in received] == ["Scraping: https://site.test/"]
    assert received[0].type == EventType.STATUS
