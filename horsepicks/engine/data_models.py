from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple


class RacePhase(Enum):
    """Lifecycle of one race, from an armed field to a settled wager."""

    IDLE = "idle"
    RUNNING = "running"
    FINISHED = "finished"
    SETTLED = "settled"


@dataclass(frozen=True)
class Entrant:
    entrant_id: int
    name: str
    odds: float
    speed: float

    @property
    def icon(self) -> str:
        return f"/images/{self.name.lower().replace(' ', '-')}.png"


@dataclass(frozen=True)
class RaceState:
    """
    Immutable snapshot of a race. Transitions build a new instance; positions
    are kept in entrant id order.
    """

    phase: RacePhase
    positions: Tuple[float, ...]
    winner_index: Optional[int] = None
    tick_count: int = 0

    @classmethod
    def idle(cls, field_size: int) -> "RaceState":
        return cls(phase=RacePhase.IDLE, positions=tuple(0.0 for _ in range(field_size)))

    @property
    def running(self) -> bool:
        return self.phase is RacePhase.RUNNING

    def evolve(self, **changes) -> "RaceState":
        return replace(self, **changes)


@dataclass(frozen=True)
class Wager:
    entrant_id: int
    stake: Decimal
    multiplier: Decimal = Decimal("1.0")


@dataclass(frozen=True)
class SettlementRecord:
    won: bool
    payout: Decimal
    profit: Decimal


@dataclass
class Account:
    player_id: str
    balance: Decimal
    username: str = ""
    total_games: int = 0
    total_wins: int = 0
    total_losses: int = 0
    total_profit: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, object]:
        return {
            "player_id": self.player_id,
            "username": self.username,
            "balance": self.balance,
            "total_games": self.total_games,
            "total_wins": self.total_wins,
            "total_losses": self.total_losses,
            "total_profit": self.total_profit,
        }


@dataclass
class EntrantStats:
    name: str
    total_games: int = 0
    total_wins: int = 0
    total_losses: int = 0
    total_payout: Decimal = Decimal("0")

    @property
    def win_rate(self) -> float:
        if self.total_games <= 0:
            return 0.0
        return self.total_wins / self.total_games


@dataclass(frozen=True)
class MatchRecord:
    """One settled wager, appended to a player's match history."""

    player_id: str
    entrant_id: int
    entrant_name: str
    winner_name: str
    stake: Decimal
    odds: float
    multiplier: Decimal
    field_size: int
    won: bool
    payout: Decimal
    profit: Decimal
    settled_at: datetime
