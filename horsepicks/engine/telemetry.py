from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence


@dataclass
class TelemetryEntrantFrame:
    entrant_id: int
    name: str
    pos: float
    distance_delta: float


@dataclass
class TelemetryFrame:
    tick: int
    phase: str
    leader_id: int
    winner_id: Optional[int] = None
    entrants: List[TelemetryEntrantFrame] = field(default_factory=list)


class TelemetryCollector:
    def __init__(self) -> None:
        self.frames: List[TelemetryFrame] = []

    def record_frame(self, frame: TelemetryFrame) -> None:
        self.frames.append(frame)

    def export(self) -> Sequence[TelemetryFrame]:
        return tuple(self.frames)

    def clear(self) -> None:
        self.frames.clear()
