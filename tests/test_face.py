import pytest

from imagg.face import (
    Data,
    Face,
    Interest,
    Nack,
    NackReason,
    Name,
    NameComponent,
    Signal,
)


@pytest.mark.parametrize("number", [0, 1, 255, 256, 65535, 65536, 2**40])
def test_segment_component_round_trip(number):
    component = NameComponent.from_segment(number)
    assert component.is_segment()
    assert component.to_segment() == number


def test_segment_uses_shortest_encoding():
    assert NameComponent.from_segment(256).value == b"\x01\x00"


def test_segment_uri_form():
    assert NameComponent.from_segment(5).to_uri() == "seg=5"


def test_version_component_is_not_segment():
    component = NameComponent.from_version(7)
    assert component.is_version()
    assert not component.is_segment()
    with pytest.raises(ValueError):
        component.to_segment()


def test_generic_component_to_segment_raises():
    with pytest.raises(ValueError):
        NameComponent("abc").to_segment()


def test_negative_segment_raises():
    with pytest.raises(ValueError):
        NameComponent.from_segment(-1)


def test_empty_name():
    name = Name.from_uri("/")
    assert len(name) == 0
    assert name.to_uri() == "/"


def test_append_returns_new_name():
    base = Name.from_uri("/a")
    longer = base.append("b").append_segment(2)
    assert len(base) == 1
    assert len(longer) == 3
    assert longer[-1].to_segment() == 2
    assert longer[:2] == Name.from_uri("/a/b")


def test_name_equality_and_hash():
    first = Name.from_uri("/a/seg=1")
    second = Name(["a"]).append_segment(1)
    assert first == second
    assert len({first, second}) == 1


def test_refresh_nonce_changes_nonce():
    interest = Interest(Name.from_uri("/a"))
    old = interest.nonce
    interest.refresh_nonce()
    assert interest.nonce != old
    assert 0 <= interest.nonce < 2**32


def test_negative_lifetime_rejected():
    with pytest.raises(ValueError):
        Interest(Name.from_uri("/a"), lifetime=-1.0)


def test_signal_calls_handlers_in_order_and_disconnects():
    signal = Signal()
    calls = []
    signal.connect(lambda v: calls.append(("first", v)))
    disconnect = signal.connect(lambda v: calls.append(("second", v)))
    signal.emit(1)
    disconnect()
    signal.emit(2)
    assert calls == [("first", 1), ("second", 1), ("first", 2)]


def test_schedule_runs_in_time_order():
    face = Face()
    order = []
    face.schedule(0.5, lambda: order.append("late"))
    face.schedule(0.1, lambda: order.append("early"))
    face.post(lambda: order.append("now"))
    face.process_events()
    assert order == ["now", "early", "late"]
    assert face.now == 0.5


def test_cancelled_event_does_not_run():
    face = Face()
    calls = []
    handle = face.schedule(0.2, lambda: calls.append(1))
    assert handle
    handle.cancel()
    assert not handle
    face.process_events()
    assert calls == []


def test_negative_delay_rejected():
    with pytest.raises(ValueError):
        Face().schedule(-0.1, lambda: None)


def test_express_interest_delivers_data():
    name = Name.from_uri("/a/seg=0")
    face = Face(responder=lambda i: Data(i.name, content=b"xyz"))
    received = []
    face.express_interest(Interest(name), lambda i, d: received.append(d.content))
    face.process_events()
    assert received == [b"xyz"]


def test_express_interest_delivers_nack():
    face = Face(responder=lambda i: Nack(i, NackReason.NO_ROUTE))
    nacks = []
    face.express_interest(Interest(Name.from_uri("/a")), lambda i, d: None,
                          lambda i, n: nacks.append(n.reason))
    face.process_events()
    assert nacks == [NackReason.NO_ROUTE]


def test_express_interest_times_out_after_lifetime():
    face = Face()
    timeouts = []
    interest = Interest(Name.from_uri("/a"), lifetime=2.5)
    face.express_interest(interest, lambda i, d: None, None, lambda i: timeouts.append(i))
    face.process_events()
    assert timeouts == [interest]
    assert face.now == interest.lifetime


def test_cancelled_pending_interest_is_not_answered():
    face = Face(responder=lambda i: Data(i.name))
    received = []
    pending = face.express_interest(Interest(Name.from_uri("/a")), lambda i, d: received.append(d))
    pending.cancel()
    face.process_events()
    assert received == []
    assert not pending


def test_responder_of_wrong_type_raises():
    face = Face(responder=lambda i: "bogus")
    with pytest.raises(TypeError):
        face.express_interest(Interest(Name.from_uri("/a")), lambda i, d: None)


def test_callback_errors_propagate():
    face = Face()

    def boom():
        raise RuntimeError("boom")

    face.post(boom)
    with pytest.raises(RuntimeError, match="boom"):
        face.process_events()