from __future__ import annotations

import logging
from decimal import Decimal
from typing import Dict, Iterable, Optional, Sequence

import pandas as pd

from horsepicks.engine import Entrant, EntrantStats, SettlementRecord

logger = logging.getLogger(__name__)

REPORT_COLUMNS = ["name", "total_games", "total_wins", "total_losses", "total_payout", "win_rate"]


def load_entrant_stats(store, names: Sequence[str]) -> Dict[str, EntrantStats]:
    """
    Returns stats for every requested name. A name with no stored record, or
    a store that cannot be read, yields a zeroed record rather than an error.
    """
    try:
        stored = store.load_entrant_stats(list(names)) if store is not None else {}
    except Exception as e:
        logger.error("Could not load entrant stats; starting from zero: %s", e)
        stored = {}
    return {name: stored.get(name) or EntrantStats(name=name) for name in names}


def entrant_stat_deltas(entrants: Iterable[Entrant], winner: Entrant, payout: Decimal) -> Dict[str, Dict[str, object]]:
    """
    Per-entrant counter increments for one finished race. Every entrant plays
    a game; the winner books a win plus the wager's payout, the rest a loss.
    """
    deltas = {}
    for entrant in entrants:
        won = entrant.name == winner.name
        deltas[entrant.name] = {
            "total_games": 1,
            "total_wins": 1 if won else 0,
            "total_losses": 0 if won else 1,
            "total_payout": payout if won else Decimal("0.00"),
        }
    return deltas


def account_deltas(record: SettlementRecord) -> Dict[str, object]:
    """Account increments applied at settlement. The stake was debited at race start."""
    return {
        "balance": record.payout if record.won else Decimal("0.00"),
        "total_games": 1,
        "total_wins": 1 if record.won else 0,
        "total_losses": 0 if record.won else 1,
        "total_profit": record.profit,
    }


def apply_entrant_deltas(stats: Dict[str, EntrantStats], deltas: Dict[str, Dict[str, object]]) -> None:
    for name, delta in deltas.items():
        entry = stats.setdefault(name, EntrantStats(name=name))
        entry.total_games += int(delta["total_games"])
        entry.total_wins += int(delta["total_wins"])
        entry.total_losses += int(delta["total_losses"])
        entry.total_payout += Decimal(str(delta["total_payout"]))


def build_stats_report(stats: Dict[str, EntrantStats], names: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Tabulates entrant stats for display, best win rate first. `names`
    restricts and orders the rows (e.g. to the current field).
    """
    selected = names if names is not None else list(stats.keys())
    rows = []
    for name in selected:
        entry = stats.get(name) or EntrantStats(name=name)
        rows.append({
            "name": name,
            "total_games": entry.total_games,
            "total_wins": entry.total_wins,
            "total_losses": entry.total_losses,
            "total_payout": float(entry.total_payout),
            "win_rate": round(entry.win_rate, 4),
        })
    df = pd.DataFrame(rows, columns=REPORT_COLUMNS)
    if df.empty:
        return df
    return df.sort_values(by=["win_rate", "total_payout", "name"], ascending=[False, False, True]).reset_index(drop=True)
