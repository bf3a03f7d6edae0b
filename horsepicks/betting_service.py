from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP
from typing import Optional, Sequence

from horsepicks.engine import Account, Entrant, SettlementRecord, Wager, payout_multiplier

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class InvalidWager(ValueError):
    """A wager that cannot start a race: no pick, non-positive stake, or stake over balance."""


class InvalidAmount(ValueError):
    """A deposit or withdrawal that would be rejected by the cashier."""


@dataclass
class BetResult:
    success: bool
    message: str
    locked_odds: Optional[float] = None
    wager: Optional[Wager] = None


def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmount(f"Not a valid amount: {value!r}") from exc


def to_money(value) -> Decimal:
    return _to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def normalize_stake(value) -> Decimal:
    """Stakes are truncated to whole cents, never rounded up."""
    return _to_decimal(value).quantize(CENT, rounding=ROUND_DOWN)


def compute_payout(stake, odds, field_size: int) -> Decimal:
    """Gross return on a winning ticket: stake * odds * field-size multiplier."""
    payout = _to_decimal(stake) * _to_decimal(odds) * payout_multiplier(field_size)
    return to_money(payout)


def compute_settlement(stake, selected: Entrant, winner: Entrant, field_size: int) -> SettlementRecord:
    stake_dec = to_money(stake)
    won = selected.name == winner.name
    if won:
        payout = compute_payout(stake_dec, selected.odds, field_size)
        profit = payout - stake_dec
    else:
        payout = to_money(0)
        profit = -stake_dec
    return SettlementRecord(won=won, payout=payout, profit=profit)


def find_entrant(entrants: Sequence[Entrant], entrant_id: Optional[int]) -> Optional[Entrant]:
    if entrant_id is None:
        return None
    for entrant in entrants:
        if entrant.entrant_id == entrant_id:
            return entrant
    return None


def validate_wager(entrants: Sequence[Entrant], entrant_id: Optional[int], stake, balance) -> Wager:
    """
    Checks a wager against the current field and balance and returns it with
    the field-size multiplier locked in. Raises InvalidWager otherwise.
    """
    if find_entrant(entrants, entrant_id) is None:
        raise InvalidWager("Pick an entrant before starting the race.")
    try:
        stake_dec = normalize_stake(stake)
    except InvalidAmount as exc:
        raise InvalidWager(str(exc)) from exc
    if stake_dec <= 0:
        raise InvalidWager("Bet amount must be greater than zero.")
    if stake_dec > _to_decimal(balance):
        raise InvalidWager("Bet amount exceeds your balance.")
    return Wager(entrant_id=entrant_id, stake=stake_dec, multiplier=payout_multiplier(len(entrants)))


def place_wager(account: Account, entrants: Sequence[Entrant], entrant_id: Optional[int], stake) -> BetResult:
    """
    Validates the wager and debits the stake from the account. The debit is
    final: there is no path that refunds a stake once the race starts.
    """
    try:
        wager = validate_wager(entrants, entrant_id, stake, account.balance)
    except InvalidWager as exc:
        return BetResult(False, str(exc))

    account.balance = to_money(account.balance - wager.stake)
    selected = find_entrant(entrants, entrant_id)
    logger.info(
        "Player %s staked %s on %s at %.2f (x%s).",
        account.player_id, wager.stake, selected.name, selected.odds, wager.multiplier,
    )
    return BetResult(True, "Bet placed successfully.", selected.odds, wager)


def deposit(account: Account, amount) -> Decimal:
    amount_dec = to_money(amount)
    if amount_dec <= 0:
        raise InvalidAmount("Deposit amount must be greater than zero.")
    account.balance = to_money(account.balance + amount_dec)
    return account.balance


def withdraw(account: Account, amount) -> Decimal:
    amount_dec = to_money(amount)
    if amount_dec <= 0:
        raise InvalidAmount("Withdrawal amount must be greater than zero.")
    if amount_dec > account.balance:
        raise InvalidAmount("Withdrawal amount exceeds your balance.")
    account.balance = to_money(account.balance - amount_dec)
    return account.balance
