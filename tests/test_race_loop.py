import asyncio

import numpy as np
import pytest

from horsepicks.engine import (
    Entrant,
    InvalidTransition,
    RaceClock,
    RacePhase,
    RaceState,
    TelemetryCollector,
    find_winner,
    start_race,
    tick,
)
from horsepicks.engine.race_loop import advance_positions, force_finish


def _field(odds=(1.5, 2.5, 3.4)):
    return [
        Entrant(entrant_id=idx, name=f"Horse {idx}", odds=o, speed=4.5 - o)
        for idx, o in enumerate(odds, start=1)
    ]


def test_start_race_moves_idle_to_running():
    state = start_race(RaceState.idle(3))
    assert state.phase is RacePhase.RUNNING
    assert state.positions == (0.0, 0.0, 0.0)
    assert state.winner_index is None
    with pytest.raises(InvalidTransition):
        start_race(state)


def test_tick_requires_running_race():
    with pytest.raises(InvalidTransition):
        tick(RaceState.idle(3), _field(), np.random.default_rng(0))


def test_advance_positions_caps_at_finish_line():
    positions = advance_positions((99.5, 10.0), (3.0, 1.0), (0.9, 0.5), finish_line=100.0)
    assert positions == (100.0, 10.5)


def test_find_winner_prefers_lowest_id_on_shared_tick():
    assert find_winner((100.0, 100.0, 50.0)) == 0
    assert find_winner((50.0, 100.0, 100.0)) == 1
    assert find_winner((99.9, 12.0, 0.0)) is None


def test_full_race_positions_monotonic_and_single_winner():
    entrants = _field()
    telemetry = TelemetryCollector()
    finishes = []
    clock = RaceClock(entrants, rng=np.random.default_rng(5), tick_interval=0,
                      telemetry=telemetry, on_finish=finishes.append)

    final = clock.run_until_finished(start_race(RaceState.idle(len(entrants))))

    assert final.phase is RacePhase.FINISHED
    assert len(finishes) == 1
    assert finishes[0] == final
    assert final.positions[final.winner_index] >= 100.0
    assert final.winner_index == find_winner(final.positions)

    frames = telemetry.export()
    assert len(frames) == final.tick_count
    previous = [0.0] * len(entrants)
    for frame in frames:
        current = [e.pos for e in frame.entrants]
        assert all(c >= p for c, p in zip(current, previous))
        assert all(c <= 100.0 for c in current)
        previous = current
    assert all(frame.winner_id is None for frame in frames[:-1])
    assert frames[-1].winner_id == entrants[final.winner_index].entrant_id


def test_tick_after_finish_is_rejected():
    entrants = _field()
    clock = RaceClock(entrants, rng=np.random.default_rng(1), tick_interval=0)
    final = clock.run_until_finished(start_race(RaceState.idle(3)))
    with pytest.raises(InvalidTransition):
        tick(final, entrants, np.random.default_rng(2))


def test_async_clock_runs_to_finish():
    entrants = _field()
    finishes = []
    clock = RaceClock(entrants, rng=np.random.default_rng(9), tick_interval=0, on_finish=finishes.append)
    final = asyncio.run(clock.run(start_race(RaceState.idle(3))))
    assert final.phase is RacePhase.FINISHED
    assert len(finishes) == 1


def test_cancelled_clock_stops_ticking():
    entrants = _field()
    clock = RaceClock(entrants, rng=np.random.default_rng(9), tick_interval=0)
    clock.cancel()
    state = start_race(RaceState.idle(3))
    assert clock.run_until_finished(state) == state
    assert asyncio.run(clock.run(state)) == state


def test_max_ticks_forces_the_leader_home():
    entrants = _field()
    clock = RaceClock(entrants, rng=np.random.default_rng(4), tick_interval=0, max_ticks=1)
    final = clock.run_until_finished(start_race(RaceState.idle(3)))
    assert final.phase is RacePhase.FINISHED
    assert final.tick_count == 1
    assert final.positions[final.winner_index] == 100.0


def test_force_finish_requires_running_race():
    with pytest.raises(InvalidTransition):
        force_finish(RaceState.idle(3))
