import asyncio
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Set

import numpy as np
import pandas as pd

from horsepicks import betting_service, stats_service
from horsepicks.config import get_config
from horsepicks.database.store import GameStore, create_store
from horsepicks.engine import (
    Account,
    InvalidTransition,
    RaceClock,
    RacePhase,
    RaceState,
    SettlementRecord,
    TelemetryCollector,
    Wager,
    generate_field,
    payout_multiplier,
    start_race,
)
from horsepicks.engine.race_loop import TICK_INTERVAL
from horsepicks.settlement import PendingWrite, PersistenceOutbox, SettlementEngine

logger = logging.getLogger(__name__)

DEFAULT_FIELD_SIZE = int(get_config("race.default_field_size", 3))
STARTING_BALANCE = Decimal(str(get_config("economy.starting_balance", 10000)))


class RaceSession:
    """
    One player's table: the current field, the pending wager, the race state
    and its clock. The session is the only thing that moves a race between
    phases; it does not allow a second race to start while one is running.
    """
    def __init__(self, player_id: str, store: Optional[GameStore] = None, field_size: int = DEFAULT_FIELD_SIZE,
                 rng: Optional[np.random.Generator] = None, seed: Optional[int] = None,
                 tick_interval: float = TICK_INTERVAL, username: str = ""):
        self.player_id = str(player_id)
        self.store = store if store is not None else create_store()
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.tick_interval = tick_interval
        self.outbox = PersistenceOutbox(self.store)
        self.settlement = SettlementEngine()
        self.telemetry = TelemetryCollector()
        self._persist_tasks: Set[asyncio.Task] = set()
        self._last_persist: Optional[asyncio.Task] = None
        self.on_tick: Optional[Callable[[RaceState], None]] = None
        self.account = self._load_account(username)

        self.field_size = field_size
        self.entrants = []
        self.entrant_stats = {}
        self.state = RaceState.idle(field_size)
        self.selected_entrant_id: Optional[int] = None
        self.stake = Decimal("0")
        self.wager: Optional[Wager] = None
        self.record: Optional[SettlementRecord] = None
        self.clock: Optional[RaceClock] = None

        self._new_field()

    def __repr__(self):
        return f"<RaceSession player={self.player_id} phase={self.state.phase.value} field={self.field_size}>"

    def _load_account(self, username: str) -> Account:
        """Reads the player's account, creating it with the starting balance on first visit."""
        try:
            account = self.store.load_account(self.player_id)
        except Exception as e:
            logger.error("Could not load account %s; playing from a fresh balance: %s", self.player_id, e)
            account = None
        if account is None:
            account = Account(player_id=self.player_id, balance=STARTING_BALANCE, username=username)
            self._persist([PendingWrite("create_account", (Account(**account.to_dict()),))])
        return account

    def _new_field(self) -> None:
        self.entrants = generate_field(self.field_size, rng=self.rng)
        self.state = RaceState.idle(self.field_size)
        self.selected_entrant_id = None
        self.stake = Decimal("0")
        self.wager = None
        self.record = None
        self.telemetry.clear()
        self.entrant_stats = stats_service.load_entrant_stats(self.store, [e.name for e in self.entrants])

    # --- Betting panel ---

    @property
    def multiplier(self) -> Decimal:
        return payout_multiplier(self.field_size)

    def set_field_size(self, field_size: int) -> None:
        """Changing the field size throws away the current field and any pick."""
        if self.state.phase is not RacePhase.IDLE:
            raise InvalidTransition("Field size can only change before the race starts.")
        self.field_size = field_size
        self._new_field()

    def select_entrant(self, entrant_id: int) -> None:
        if self.state.phase is not RacePhase.IDLE:
            raise InvalidTransition("Picks are locked once the race starts.")
        if betting_service.find_entrant(self.entrants, entrant_id) is None:
            raise betting_service.InvalidWager(f"No entrant with id {entrant_id} in this field.")
        self.selected_entrant_id = entrant_id

    def set_stake(self, amount) -> None:
        self.stake = betting_service.normalize_stake(amount)

    def can_start(self) -> bool:
        if self.state.phase is not RacePhase.IDLE:
            return False
        try:
            betting_service.validate_wager(self.entrants, self.selected_entrant_id, self.stake, self.account.balance)
        except betting_service.InvalidWager:
            return False
        return True

    # --- Race lifecycle ---

    def start_race(self, entrant_id: Optional[int] = None, stake=None) -> Wager:
        """
        Idle -> Running. Debits the stake immediately. A rejected wager changes
        nothing: no debit, the race stays Idle and the current pick and stake
        are kept.
        """
        if self.state.phase is not RacePhase.IDLE:
            raise InvalidTransition(f"Cannot start a race that is {self.state.phase.value}.")
        pick = self.selected_entrant_id if entrant_id is None else entrant_id
        amount = self.stake if stake is None else stake

        result = betting_service.place_wager(self.account, self.entrants, pick, amount)
        if not result.success:
            raise betting_service.InvalidWager(result.message)

        self.selected_entrant_id = pick
        self.stake = result.wager.stake
        self.wager = result.wager
        self.state = start_race(self.state)
        self.telemetry.clear()
        self.clock = RaceClock(
            self.entrants,
            rng=self.rng,
            tick_interval=self.tick_interval,
            telemetry=self.telemetry,
            on_tick=self._on_tick,
            on_finish=self._on_finish,
        )
        self._persist([PendingWrite("persist_account_delta", (self.player_id, {"balance": -self.wager.stake}))])
        return self.wager

    def run(self) -> Optional[SettlementRecord]:
        """Runs the started race to the end without pausing between ticks."""
        if self.clock is None or not self.state.running:
            raise InvalidTransition("No race is running.")
        self.clock.run_until_finished(self.state)
        return self.record

    async def run_async(self) -> Optional[SettlementRecord]:
        """Runs the started race on the event loop at the configured tick interval."""
        if self.clock is None or not self.state.running:
            raise InvalidTransition("No race is running.")
        await self.clock.run(self.state)
        return self.record

    def play(self, entrant_id: int, stake) -> Optional[SettlementRecord]:
        self.start_race(entrant_id, stake)
        return self.run()

    def _on_tick(self, state: RaceState) -> None:
        self.state = state
        if self.on_tick:
            self.on_tick(state)

    def _on_finish(self, state: RaceState) -> None:
        self.state = state
        self.settle()

    def settle(self) -> Optional[SettlementRecord]:
        """
        Finished -> Settled. Anything other than a finished race is a no-op,
        which is what keeps a late or repeated call from paying twice.
        """
        if self.state.phase is not RacePhase.FINISHED:
            return None
        outcome = self.settlement.settle(
            self.state, self.entrants, self.wager, self.account, self.entrant_stats,
        )
        self.state = outcome.state
        self.record = outcome.record
        self._persist(outcome.writes)
        return self.record

    def play_again(self) -> None:
        """Finished/Settled -> Idle with a brand new field. Balances are untouched."""
        if self.state.phase in (RacePhase.IDLE, RacePhase.RUNNING):
            raise InvalidTransition(f"Cannot re-arm a race that is {self.state.phase.value}.")
        self.settle()
        if self.clock is not None:
            self.clock.cancel()
            self.clock = None
        self._new_field()

    # --- Persistence ---

    def _persist(self, writes) -> None:
        """
        Hands writes to the outbox. Inside an event loop they run as a
        background task so the race clock is never held up by the store.
        Each batch waits for the one before it; deltas depend on the
        account row existing.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is None:
            self.outbox.dispatch(writes)
            return
        previous = self._last_persist
        if previous is not None and (previous.done() or previous.get_loop() is not loop):
            previous = None
        task = loop.create_task(self._persist_after(previous, list(writes)))
        self._last_persist = task
        self._persist_tasks.add(task)
        task.add_done_callback(self._persist_tasks.discard)

    async def _persist_after(self, previous: Optional[asyncio.Task], writes) -> int:
        if previous is not None:
            await asyncio.wait([previous])
        return await self.outbox.dispatch_async(writes)

    async def drain(self) -> None:
        """Waits for background persistence started from inside the event loop."""
        if self._persist_tasks:
            await asyncio.gather(*list(self._persist_tasks), return_exceptions=True)

    def retry_failed_writes(self) -> int:
        return self.outbox.flush()

    # --- Cashier ---

    def deposit(self, amount) -> Decimal:
        before = self.account.balance
        balance = betting_service.deposit(self.account, amount)
        self._persist([PendingWrite("persist_account_delta", (self.player_id, {"balance": balance - before}))])
        return balance

    def withdraw(self, amount) -> Decimal:
        before = self.account.balance
        balance = betting_service.withdraw(self.account, amount)
        self._persist([PendingWrite("persist_account_delta", (self.player_id, {"balance": balance - before}))])
        return balance

    def set_username(self, username: str) -> None:
        username = (username or "").strip()
        if not username:
            raise ValueError("Username cannot be empty.")
        self.account.username = username
        self._persist([PendingWrite("set_username", (self.player_id, username))])

    # --- Reporting ---

    def stats_report(self) -> pd.DataFrame:
        return stats_service.build_stats_report(self.entrant_stats, [e.name for e in self.entrants])

    def match_history(self, limit: int = 10) -> List[Dict[str, Any]]:
        try:
            return self.store.get_match_history(self.player_id, limit)
        except Exception as e:
            logger.error("Could not read match history for %s: %s", self.player_id, e)
            return []
