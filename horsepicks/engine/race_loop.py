from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Sequence, Tuple

import numpy as np

from horsepicks.config import get_config

from .data_models import Entrant, RacePhase, RaceState
from .telemetry import TelemetryCollector, TelemetryEntrantFrame, TelemetryFrame

logger = logging.getLogger(__name__)

FINISH_LINE = float(get_config("race.finish_line", 100))
TICK_INTERVAL = float(get_config("race.tick_interval_ms", 100)) / 1000.0
MAX_TICKS = int(get_config("race.max_ticks", 10000))


class InvalidTransition(RuntimeError):
    """Raised when a race is asked to move to a phase it cannot reach."""


def start_race(state: RaceState) -> RaceState:
    """Idle -> Running. Positions restart at the gate."""
    if state.phase is not RacePhase.IDLE:
        raise InvalidTransition(f"Cannot start a race that is {state.phase.value}.")
    return RaceState(
        phase=RacePhase.RUNNING,
        positions=tuple(0.0 for _ in state.positions),
        winner_index=None,
        tick_count=0,
    )


def advance_positions(
    positions: Sequence[float],
    speeds: Sequence[float],
    draws: Sequence[float],
    finish_line: float = FINISH_LINE,
) -> Tuple[float, ...]:
    """Moves every entrant by `draw * speed`, capped at the finish line."""
    current = np.asarray(positions, dtype=float)
    moved = current + np.asarray(draws, dtype=float) * np.asarray(speeds, dtype=float)
    # Never step backwards, never overshoot the line.
    moved = np.minimum(np.maximum(moved, current), finish_line)
    return tuple(float(p) for p in moved)


def find_winner(positions: Sequence[float], finish_line: float = FINISH_LINE) -> Optional[int]:
    """
    Index of the first entrant, in id order, at or past the line.
    Several entrants crossing on the same tick resolve to the lowest id.
    """
    for idx, pos in enumerate(positions):
        if pos >= finish_line:
            return idx
    return None


def tick(
    state: RaceState,
    entrants: Sequence[Entrant],
    rng: np.random.Generator,
    finish_line: float = FINISH_LINE,
) -> RaceState:
    """One clock step: Running -> Running, or Running -> Finished once someone crosses."""
    if state.phase is not RacePhase.RUNNING:
        raise InvalidTransition(f"Cannot tick a race that is {state.phase.value}.")
    if len(entrants) != len(state.positions):
        raise ValueError("Entrant list does not match the race positions.")

    draws = rng.random(len(entrants))
    positions = advance_positions(state.positions, [e.speed for e in entrants], draws, finish_line)
    winner_index = find_winner(positions, finish_line)
    phase = RacePhase.FINISHED if winner_index is not None else RacePhase.RUNNING
    return state.evolve(
        phase=phase,
        positions=positions,
        winner_index=winner_index,
        tick_count=state.tick_count + 1,
    )


def force_finish(state: RaceState, finish_line: float = FINISH_LINE) -> RaceState:
    """Pushes the current leader over the line. Safety valve for runaway races."""
    if state.phase is not RacePhase.RUNNING:
        raise InvalidTransition(f"Cannot force-finish a race that is {state.phase.value}.")
    leader = max(range(len(state.positions)), key=lambda i: (state.positions[i], -i))
    positions = list(state.positions)
    positions[leader] = finish_line
    return state.evolve(phase=RacePhase.FINISHED, positions=tuple(positions), winner_index=leader)


class RaceClock:
    """
    Drives `tick` on a fixed period until a winner is found.

    The clock owns no settlement logic: `on_finish` is called exactly once,
    on the tick that crosses the line, and ticking stops on that same tick.
    """

    def __init__(
        self,
        entrants: Sequence[Entrant],
        rng: Optional[np.random.Generator] = None,
        tick_interval: float = TICK_INTERVAL,
        telemetry: Optional[TelemetryCollector] = None,
        on_tick: Optional[Callable[[RaceState], None]] = None,
        on_finish: Optional[Callable[[RaceState], None]] = None,
        max_ticks: int = MAX_TICKS,
        finish_line: float = FINISH_LINE,
    ) -> None:
        self.entrants = list(entrants)
        self.rng = rng if rng is not None else np.random.default_rng()
        self.tick_interval = tick_interval
        self.telemetry = telemetry
        self.on_tick = on_tick
        self.on_finish = on_finish
        self.max_ticks = max_ticks
        self.finish_line = finish_line
        self._cancelled = False
        self._finish_reported = False

    def cancel(self) -> None:
        self._cancelled = True

    def step(self, state: RaceState) -> RaceState:
        new_state = tick(state, self.entrants, self.rng, self.finish_line)
        if new_state.running and new_state.tick_count >= self.max_ticks:
            logger.warning("Race exceeded max ticks (%s). Force finishing.", self.max_ticks)
            new_state = force_finish(new_state, self.finish_line)
        self._record(state, new_state)
        if self.on_tick:
            self.on_tick(new_state)
        if new_state.phase is RacePhase.FINISHED:
            self._report_finish(new_state)
        return new_state

    def run_until_finished(self, state: RaceState) -> RaceState:
        """Runs the whole race synchronously, without waiting between ticks."""
        while state.running and not self._cancelled:
            state = self.step(state)
        return state

    async def run(self, state: RaceState) -> RaceState:
        """Runs the race on the event loop, sleeping `tick_interval` between ticks."""
        while state.running and not self._cancelled:
            await asyncio.sleep(self.tick_interval)
            if self._cancelled:
                break
            state = self.step(state)
        return state

    def _report_finish(self, state: RaceState) -> None:
        if self._finish_reported:
            return
        self._finish_reported = True
        winner = self.entrants[state.winner_index]
        logger.info("%s wins after %s ticks.", winner.name, state.tick_count)
        if self.on_finish:
            self.on_finish(state)

    def _record(self, previous: RaceState, current: RaceState) -> None:
        if self.telemetry is None:
            return
        leader = max(range(len(current.positions)), key=lambda i: (current.positions[i], -i))
        frame = TelemetryFrame(
            tick=current.tick_count,
            phase=current.phase.value,
            leader_id=self.entrants[leader].entrant_id,
            winner_id=(
                self.entrants[current.winner_index].entrant_id
                if current.winner_index is not None else None
            ),
            entrants=[
                TelemetryEntrantFrame(
                    entrant_id=entrant.entrant_id,
                    name=entrant.name,
                    pos=current.positions[idx],
                    distance_delta=current.positions[idx] - previous.positions[idx],
                )
                for idx, entrant in enumerate(self.entrants)
            ],
        )
        self.telemetry.record_frame(frame)
