from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from horsepicks.database import queries
from horsepicks.database.connection import database_configured
from horsepicks.engine import Account, EntrantStats, MatchRecord

logger = logging.getLogger(__name__)


class GameStore(ABC):
    """Key-value persistence consumed by the settlement and stats code."""

    @abstractmethod
    def load_account(self, player_id: str) -> Optional[Account]:
        raise NotImplementedError

    @abstractmethod
    def create_account(self, account: Account) -> bool:
        raise NotImplementedError

    @abstractmethod
    def persist_account_delta(self, player_id: str, deltas: Dict[str, Any]) -> bool:
        raise NotImplementedError

    @abstractmethod
    def set_username(self, player_id: str, username: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def load_entrant_stats(self, names: Sequence[str]) -> Dict[str, EntrantStats]:
        raise NotImplementedError

    @abstractmethod
    def persist_entrant_stats_delta(self, name: str, deltas: Dict[str, Any]) -> bool:
        raise NotImplementedError

    @abstractmethod
    def append_match_record(self, record: MatchRecord) -> bool:
        raise NotImplementedError

    @abstractmethod
    def get_match_history(self, player_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        raise NotImplementedError


class PostgresStore(GameStore):
    def load_account(self, player_id: str) -> Optional[Account]:
        row = queries.get_account(player_id)
        if not row:
            return None
        return Account(**row)

    def create_account(self, account: Account) -> bool:
        return queries.create_account(account.player_id, account.balance, account.username)

    def persist_account_delta(self, player_id: str, deltas: Dict[str, Any]) -> bool:
        return queries.persist_account_delta(player_id, deltas)

    def set_username(self, player_id: str, username: str) -> bool:
        return queries.set_username(player_id, username)

    def load_entrant_stats(self, names: Sequence[str]) -> Dict[str, EntrantStats]:
        rows = queries.get_entrant_stats(names)
        return {name: EntrantStats(name=name, **row) for name, row in rows.items()}

    def persist_entrant_stats_delta(self, name: str, deltas: Dict[str, Any]) -> bool:
        return queries.persist_entrant_stats_delta(name, deltas)

    def append_match_record(self, record: MatchRecord) -> bool:
        return queries.append_match_record(record)

    def get_match_history(self, player_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        return queries.get_match_history(player_id, limit)


class MemoryStore(GameStore):
    """
    Process-local store used when no database is configured. Everything is
    lost on exit, but races, balances and stats behave the same.
    """

    def __init__(self) -> None:
        self.accounts: Dict[str, Account] = {}
        self.entrant_stats: Dict[str, EntrantStats] = {}
        self.matches: List[MatchRecord] = []

    def load_account(self, player_id: str) -> Optional[Account]:
        account = self.accounts.get(player_id)
        if account is None:
            return None
        return Account(**account.to_dict())

    def create_account(self, account: Account) -> bool:
        self.accounts.setdefault(account.player_id, Account(**account.to_dict()))
        return True

    def persist_account_delta(self, player_id: str, deltas: Dict[str, Any]) -> bool:
        account = self.accounts.get(player_id)
        if account is None:
            logger.warning("No account for player %s; delta not applied.", player_id)
            return False
        account.balance += Decimal(str(deltas.get("balance", 0)))
        account.total_games += int(deltas.get("total_games", 0))
        account.total_wins += int(deltas.get("total_wins", 0))
        account.total_losses += int(deltas.get("total_losses", 0))
        account.total_profit += Decimal(str(deltas.get("total_profit", 0)))
        return True

    def set_username(self, player_id: str, username: str) -> bool:
        account = self.accounts.get(player_id)
        if account is None:
            return False
        account.username = username
        return True

    def load_entrant_stats(self, names: Sequence[str]) -> Dict[str, EntrantStats]:
        return {
            name: EntrantStats(
                name=name,
                total_games=stats.total_games,
                total_wins=stats.total_wins,
                total_losses=stats.total_losses,
                total_payout=stats.total_payout,
            )
            for name, stats in self.entrant_stats.items()
            if name in names
        }

    def persist_entrant_stats_delta(self, name: str, deltas: Dict[str, Any]) -> bool:
        stats = self.entrant_stats.setdefault(name, EntrantStats(name=name))
        stats.total_games += int(deltas.get("total_games", 0))
        stats.total_wins += int(deltas.get("total_wins", 0))
        stats.total_losses += int(deltas.get("total_losses", 0))
        stats.total_payout += Decimal(str(deltas.get("total_payout", 0)))
        return True

    def append_match_record(self, record: MatchRecord) -> bool:
        self.matches.append(record)
        return True

    def get_match_history(self, player_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        if limit <= 0:
            return []
        mine = [m for m in self.matches if m.player_id == player_id]
        mine.sort(key=lambda m: m.settled_at, reverse=True)
        return [
            {
                "entrant_name": m.entrant_name,
                "winner_name": m.winner_name,
                "stake": m.stake,
                "odds": Decimal(str(m.odds)),
                "multiplier": m.multiplier,
                "field_size": m.field_size,
                "won": m.won,
                "payout": m.payout,
                "profit": m.profit,
                "settled_at": m.settled_at,
            }
            for m in mine[:limit]
        ]


def create_store(store_name: Optional[str] = None) -> GameStore:
    """
    Picks the persistence backend. With no explicit choice, PostgreSQL is used
    when credentials are configured and the in-memory store otherwise.
    """
    if store_name is None:
        store_name = "postgres" if database_configured() else "memory"
    store_name = store_name.lower().strip()
    if store_name == "memory":
        logger.info("Using in-memory store; nothing will be persisted.")
        return MemoryStore()
    if store_name == "postgres":
        return PostgresStore()
    raise ValueError(f"Unknown store: {store_name}")
