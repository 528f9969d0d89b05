import pytest

from ecsim.clock import EventClock


def test_actions_fire_in_due_order_and_ties_keep_schedule_order():
    clock = EventClock()
    trace = []

    def record(label: str) -> None:
        trace.append((label, clock.now))

    clock.schedule_in(0.3, record, "late")
    clock.schedule_in(0.1, record, "first")
    clock.schedule_in(0.1, record, "second")

    assert clock.advance(0.2) == 2
    assert [label for label, _ in trace] == ["first", "second"]
    assert trace[0][1] == pytest.approx(0.1)
    assert clock.now == pytest.approx(0.2)

    assert clock.advance(1.0) == 1
    assert trace[-1] == ("late", pytest.approx(0.3))
    assert clock.now == pytest.approx(1.2)


def test_actions_can_reschedule_themselves():
    clock = EventClock()
    fired = []

    def repeat() -> None:
        fired.append(clock.now)
        clock.schedule_in(1.0, repeat)

    clock.schedule_in(1.0, repeat)
    clock.advance(3.5)
    assert fired == [pytest.approx(1.0), pytest.approx(2.0), pytest.approx(3.0)]
    assert clock.pending == ["repeat"]


def test_clear_and_negative_inputs():
    clock = EventClock()
    clock.schedule_in(1.0, lambda: None, label="noop")
    clock.clear()
    assert clock.advance(5.0) == 0
    with pytest.raises(ValueError):
        clock.advance(-1.0)
    with pytest.raises(ValueError):
        clock.schedule_in(-0.5, lambda: None)


@pytest.mark.parametrize("elapsed", [float("nan"), float("inf")])
def test_advance_rejects_non_finite_time(elapsed):
    clock = EventClock()
    with pytest.raises(ValueError):
        clock.advance(elapsed)
    assert clock.now == 0.0
