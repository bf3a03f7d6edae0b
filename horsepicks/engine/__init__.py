"""
Race engine package for the pick-a-winner game.

The package is split into data models, the field generator, and the tick
based race loop. Higher level orchestration code (sessions, settlement)
composes these pieces.
"""

from .data_models import (  # noqa: F401
    Account,
    Entrant,
    EntrantStats,
    MatchRecord,
    RacePhase,
    RaceState,
    SettlementRecord,
    Wager,
)
from .field import generate_field, payout_multiplier  # noqa: F401
from .telemetry import TelemetryCollector, TelemetryEntrantFrame, TelemetryFrame  # noqa: F401
from .race_loop import InvalidTransition, RaceClock, find_winner, start_race, tick  # noqa: F401

__all__ = [
    "Account",
    "Entrant",
    "EntrantStats",
    "MatchRecord",
    "RacePhase",
    "RaceState",
    "SettlementRecord",
    "Wager",
    "generate_field",
    "payout_multiplier",
    "TelemetryCollector",
    "TelemetryEntrantFrame",
    "TelemetryFrame",
    "InvalidTransition",
    "RaceClock",
    "find_winner",
    "start_race",
    "tick",
]
