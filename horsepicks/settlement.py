from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from horsepicks import stats_service
from horsepicks.betting_service import compute_settlement, find_entrant, to_money
from horsepicks.config import get_config
from horsepicks.engine import (
    Account,
    Entrant,
    EntrantStats,
    InvalidTransition,
    MatchRecord,
    RacePhase,
    RaceState,
    SettlementRecord,
    Wager,
)

logger = logging.getLogger(__name__)

OUTBOX_MAX_ATTEMPTS = int(get_config("persistence.outbox_max_attempts", 3))


@dataclass
class PendingWrite:
    """One store call, replayable by name."""

    operation: str
    args: Tuple[Any, ...]
    attempts: int = 0

    def describe(self) -> str:
        return f"{self.operation}{self.args[:1]}"


class PersistenceOutbox:
    """
    Runs settlement writes against the store and keeps the ones that fail.

    A write fails when the store returns a falsy value or raises. Failed
    writes stay queued until `flush` succeeds or they run out of attempts.
    In-memory state is never rolled back because of a failed write.
    """

    def __init__(self, store, max_attempts: int = OUTBOX_MAX_ATTEMPTS) -> None:
        self.store = store
        self.max_attempts = max(1, max_attempts)
        self._pending: List[PendingWrite] = []
        self._lock = threading.Lock()

    @property
    def pending(self) -> Sequence[PendingWrite]:
        with self._lock:
            return tuple(self._pending)

    def _execute(self, write: PendingWrite) -> bool:
        write.attempts += 1
        try:
            ok = bool(getattr(self.store, write.operation)(*write.args))
        except Exception as e:
            logger.error("Persistence write %s raised: %s", write.describe(), e)
            ok = False
        if ok:
            return True
        if write.attempts >= self.max_attempts:
            logger.error("Dropping %s after %s attempts.", write.describe(), write.attempts)
        else:
            logger.warning("Persistence write %s failed; queued for retry.", write.describe())
            with self._lock:
                self._pending.append(write)
        return False

    def dispatch(self, writes: Sequence[PendingWrite]) -> int:
        """Runs every write once. Returns how many succeeded."""
        return sum(1 for write in writes if self._execute(write))

    async def dispatch_async(self, writes: Sequence[PendingWrite]) -> int:
        """Same as `dispatch`, in order on a worker thread so the event loop keeps ticking."""
        return await asyncio.to_thread(self.dispatch, writes)

    def flush(self) -> int:
        """Retries queued writes once. Returns how many went through."""
        with self._lock:
            queued, self._pending = self._pending, []
        if queued:
            logger.info("Retrying %s queued persistence writes.", len(queued))
        return self.dispatch(queued)


@dataclass(frozen=True)
class SettlementOutcome:
    state: RaceState
    record: SettlementRecord
    match: MatchRecord
    writes: Tuple[PendingWrite, ...]


class SettlementEngine:
    """
    Applies the result of a finished race to the wager, the account and the
    entrant stats. `settle` is the only Finished -> Settled transition; it
    refuses any other phase, so a race can only pay out once.
    """

    def settle(
        self,
        state: RaceState,
        entrants: Sequence[Entrant],
        wager: Wager,
        account: Account,
        entrant_stats: Optional[Dict[str, EntrantStats]] = None,
        now: Optional[datetime] = None,
    ) -> SettlementOutcome:
        if state.phase is RacePhase.SETTLED:
            raise InvalidTransition("Race has already been settled.")
        if state.phase is not RacePhase.FINISHED or state.winner_index is None:
            raise InvalidTransition(f"Cannot settle a race that is {state.phase.value}.")

        selected = find_entrant(entrants, wager.entrant_id)
        if selected is None:
            raise ValueError(f"Wager entrant {wager.entrant_id} is not in this field.")
        winner = entrants[state.winner_index]
        field_size = len(entrants)

        settled_state = state.evolve(phase=RacePhase.SETTLED)
        record = compute_settlement(wager.stake, selected, winner, field_size)

        account_delta = stats_service.account_deltas(record)
        account.balance = to_money(account.balance + account_delta["balance"])
        account.total_games += 1
        account.total_wins += account_delta["total_wins"]
        account.total_losses += account_delta["total_losses"]
        account.total_profit = to_money(account.total_profit + record.profit)

        stat_deltas = stats_service.entrant_stat_deltas(entrants, winner, record.payout)
        if entrant_stats is not None:
            stats_service.apply_entrant_deltas(entrant_stats, stat_deltas)

        match = MatchRecord(
            player_id=account.player_id,
            entrant_id=selected.entrant_id,
            entrant_name=selected.name,
            winner_name=winner.name,
            stake=wager.stake,
            odds=selected.odds,
            multiplier=wager.multiplier,
            field_size=field_size,
            won=record.won,
            payout=record.payout,
            profit=record.profit,
            settled_at=now or datetime.now(timezone.utc),
        )

        writes = [PendingWrite("persist_account_delta", (account.player_id, account_delta))]
        writes.extend(
            PendingWrite("persist_entrant_stats_delta", (name, delta))
            for name, delta in stat_deltas.items()
        )
        writes.append(PendingWrite("append_match_record", (match,)))

        logger.info(
            "Settled: %s won, %s %s (payout %s, profit %s).",
            winner.name, account.player_id, "won" if record.won else "lost", record.payout, record.profit,
        )
        return SettlementOutcome(state=settled_state, record=record, match=match, writes=tuple(writes))
