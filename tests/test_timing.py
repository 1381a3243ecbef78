import pytest

from derby_sim.engine.timing import CompensatedAccumulator, Timer


def test_timer_expires_at_zero():
    timer = Timer(-1.5)
    assert not timer.expired
    timer.t += 1.0
    assert not timer.expired
    timer.t += 0.5
    assert timer.expired


@pytest.mark.parametrize(
    "base, delta",
    [
        (24.0, 0.35),
        (24.0, 0.2),
        (0.1, 0.45),
        (0.3, -0.15),
        (1e-3, 24.0),
        (24.4, 0.0001),
    ],
)
def test_accumulator_returns_to_base_after_cancelling_pair(base, delta):
    acc = CompensatedAccumulator()
    acc.add(base)
    acc.add(delta)
    acc.add(-delta)
    assert acc.value == base


def test_accumulator_tracks_mixed_sum():
    acc = CompensatedAccumulator()
    values = [0.1] * 10 + [-0.3, 0.2]
    for value in values:
        acc.add(value)
    assert acc.value == pytest.approx(0.9, abs=1e-15)
