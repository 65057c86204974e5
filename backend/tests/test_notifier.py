import asyncio
from datetime import datetime, timezone

from surveypulse.routers.stream import encode_sse, sse_stream
from surveypulse.services.notifier import (
    ChangeEvent, ChangeNotifier, SocketSubscriber, StreamSubscriber, Subscriber,
)

TS = datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc)
CHANGE = ChangeEvent(survey_id="s1", company_id="c1", timestamp=TS)


def _drain(sub):
    out = []
    while not sub.queue.empty():
        out.append(sub.queue.get_nowait())
    return out


def test_notify_shapes_event_per_transport():
    notifier = ChangeNotifier()
    sse = notifier.add(StreamSubscriber())
    ws = notifier.add(SocketSubscriber())

    assert notifier.notify(CHANGE) == 2
    assert _drain(sse) == [("response:created", {
        "surveyId": "s1", "companyId": "c1",
        "timestamp": "2024-01-01T12:30:00.000Z",
        "summary": {"submitted": 1},
    })]
    assert _drain(ws) == [("server:response", {
        "companyId": "c1", "surveyId": "s1", "timestamp": "2024-01-01T12:30:00.000Z",
    })]


def test_each_notify_is_delivered_exactly_once():
    notifier = ChangeNotifier()
    sub = notifier.add(StreamSubscriber())
    notifier.notify(CHANGE)
    notifier.notify(ChangeEvent("s1", "c1", TS))
    assert len(_drain(sub)) == 2


def test_full_queue_only_affects_that_subscriber():
    notifier = ChangeNotifier()
    slow = notifier.add(StreamSubscriber(maxsize=1))
    fast = notifier.add(StreamSubscriber())

    notifier.notify(CHANGE)
    assert notifier.notify(CHANGE) == 1
    assert len(_drain(slow)) == 1
    assert len(_drain(fast)) == 2


class _Exploding(Subscriber):
    kind = "test"

    def render_change(self, change):
        raise RuntimeError("connection gone")


def test_failing_subscriber_does_not_stop_others():
    notifier = ChangeNotifier()
    notifier.add(_Exploding())
    ok = notifier.add(SocketSubscriber())
    assert notifier.notify(CHANGE) == 1
    assert len(_drain(ok)) == 1


def test_removed_subscriber_gets_nothing_more():
    notifier = ChangeNotifier()
    sub = notifier.add(StreamSubscriber())
    notifier.remove(sub)
    assert len(notifier) == 0
    assert notifier.notify(CHANGE) == 0
    assert _drain(sub) == [None]
    # removing twice is harmless
    notifier.remove(sub)


def test_publish_can_exclude_sender_and_filter_transport():
    notifier = ChangeNotifier()
    a = notifier.add(SocketSubscriber())
    b = notifier.add(SocketSubscriber())
    s = notifier.add(StreamSubscriber())

    assert notifier.publish("server:broadcast", {"x": 1}, exclude=a, kind="ws") == 1
    assert _drain(a) == []
    assert _drain(b) == [("server:broadcast", {"x": 1})]
    assert _drain(s) == []


def test_close_all_empties_registry():
    notifier = ChangeNotifier()
    subs = [notifier.add(StreamSubscriber()) for _ in range(3)]
    notifier.close_all()
    assert len(notifier) == 0
    assert all(s.closed for s in subs)


def test_encode_sse():
    assert encode_sse("response:created", {"a": 1}) == 'event: response:created\ndata: {"a": 1}\n\n'


def test_sse_stream_registers_and_emits_changes():
    async def main():
        notifier = ChangeNotifier()

        async def never():
            return False

        gen = sse_stream(notifier, never, keepalive=5)
        first = await gen.__anext__()
        registered = len(notifier)
        notifier.notify(CHANGE)
        second = await gen.__anext__()
        await gen.aclose()
        return first, registered, second, len(notifier)

    first, registered, second, after = asyncio.run(main())
    assert first == ":connected\n\n"
    assert registered == 1
    assert second.startswith("event: response:created\ndata: ")
    assert '"summary": {"submitted": 1}' in second
    assert after == 0


def test_sse_stream_keepalive_then_stops_when_client_leaves():
    async def main():
        notifier = ChangeNotifier()
        checks = iter([False, True])

        async def is_disconnected():
            return next(checks)

        chunks = [chunk async for chunk in sse_stream(notifier, is_disconnected, keepalive=0.01)]
        return chunks, len(notifier)

    chunks, after = asyncio.run(main())
    assert chunks == [":connected\n\n", ":keepalive\n\n"]
    assert after == 0


def test_sse_stream_ends_on_server_close():
    async def main():
        notifier = ChangeNotifier()

        async def never():
            return False

        gen = sse_stream(notifier, never, keepalive=5)
        await gen.__anext__()
        notifier.close_all()
        return [chunk async for chunk in gen]

    assert asyncio.run(main()) == []
