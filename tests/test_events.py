from uuid import uuid4

from blinker import Signal

from studycore.events import EventChannel, SessionEvent, SessionEventType


def make_event(event_type=SessionEventType.ANSWERED, **payload) -> SessionEvent:
    return SessionEvent(type=event_type, session_id=uuid4(), payload=payload)


def test_every_subscriber_receives_event():
    channel = EventChannel()
    calls = []
    channel.subscribe(lambda event: calls.append(("first", event.type)))
    channel.subscribe(lambda event: calls.append(("second", event.type)))

    channel.emit(make_event())

    assert sorted(calls) == [
        ("first", SessionEventType.ANSWERED),
        ("second", SessionEventType.ANSWERED),
    ]


def test_one_signal_per_event_type():
    channel = EventChannel()
    signals = {channel.signal(event_type) for event_type in SessionEventType}

    assert len(signals) == len(SessionEventType)
    assert all(isinstance(sig, Signal) for sig in signals)
    assert channel.signal("answered") is channel.signal(SessionEventType.ANSWERED)


def test_channels_do_not_share_receivers():
    first, second = EventChannel(), EventChannel()
    received = []
    first.subscribe(received.append)

    second.emit(make_event())

    assert received == []


def test_subscribe_to_selected_event_types():
    channel = EventChannel()
    received = []
    channel.subscribe(received.append, event_types=[SessionEventType.SKIPPED])

    channel.emit(make_event(SessionEventType.ANSWERED))
    channel.emit(make_event(SessionEventType.SKIPPED, card_id="c1"))

    assert [event.type for event in received] == [SessionEventType.SKIPPED]


def test_blinker_style_receiver():
    channel = EventChannel()
    received = []

    @channel.signal(SessionEventType.COMPLETED).connect
    def on_completed(sender, event):
        received.append((sender, event.payload))

    channel.emit(make_event(SessionEventType.COMPLETED, score=80))

    assert received == [(channel, {"score": 80})]


def test_unsubscribe_callable():
    channel = EventChannel()
    received = []
    unsubscribe = channel.subscribe(received.append)
    assert len(channel) == 1

    unsubscribe()
    channel.emit(make_event())

    assert received == []
    assert len(channel) == 0
    assert not channel.signal(SessionEventType.ANSWERED).receivers


def test_failing_listener_does_not_stop_others(caplog):
    channel = EventChannel()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    channel.subscribe(broken)
    channel.subscribe(received.append)
    channel.emit(make_event(SessionEventType.SKIPPED, card_id="c1"))

    assert len(received) == 1
    assert received[0].payload == {"card_id": "c1"}
    assert "failed handling 'skipped'" in caplog.text


def test_failing_blinker_receiver_is_isolated(caplog):
    channel = EventChannel()
    received = []

    def broken(sender, event):
        raise RuntimeError("boom")

    channel.signal(SessionEventType.RESET).connect(broken)
    channel.subscribe(received.append)
    channel.emit(make_event(SessionEventType.RESET))

    assert len(received) == 1
    assert "failed handling 'reset'" in caplog.text


def test_unsubscribe_unknown_listener_is_ignored():
    channel = EventChannel()
    channel.unsubscribe(print)
    assert len(channel) == 0
