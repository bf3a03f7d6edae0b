"""
Console front-end: play one or more races against your balance.

Usage:
    python scripts/run_race.py --player alice --field-size 4 --pick 2 --stake 500
    python scripts/run_race.py --player alice --animate

Without --pick the favourite (lowest odds) is backed. With DB_* variables
set (see .env) balances and stats persist to PostgreSQL; otherwise the
session runs in memory.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

# Ensure repo root is on sys.path when script is executed from anywhere
REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if REPO_ROOT not in sys.path:
    sys.path.append(REPO_ROOT)

from horsepicks.betting_service import InvalidWager  # noqa: E402
from horsepicks.database.store import create_store  # noqa: E402
from horsepicks.simulation import RaceSession  # noqa: E402

BAR_WIDTH = 40


def _render(session: RaceSession) -> str:
    lines = []
    for entrant, pos in zip(session.entrants, session.state.positions):
        filled = int(BAR_WIDTH * pos / 100)
        lines.append(f"{entrant.entrant_id}. {entrant.name:<18} |{'=' * filled}{' ' * (BAR_WIDTH - filled)}| {pos:5.1f}")
    return "\n".join(lines)


def _print_field(session: RaceSession) -> None:
    print(f"\nField of {session.field_size} (payout x{session.multiplier}):")
    for entrant in session.entrants:
        print(f"  {entrant.entrant_id}. {entrant.name} (Odds: {entrant.odds:.2f}x)")


def _pick_favourite(session: RaceSession) -> int:
    return min(session.entrants, key=lambda e: (e.odds, e.entrant_id)).entrant_id


async def _animate(session: RaceSession) -> None:
    session.on_tick = lambda _state: print("\033[H\033[J" + _render(session))
    await session.run_async()
    await session.drain()


def main() -> None:
    parser = argparse.ArgumentParser(description="Pick a winner and race for it.")
    parser.add_argument("--player", default="guest", help="Player id whose balance is used.")
    parser.add_argument("--field-size", type=int, default=None, help="Number of entrants (3-6 are tuned).")
    parser.add_argument("--pick", type=int, default=None, help="Entrant id to back (default: the favourite).")
    parser.add_argument("--stake", type=float, default=100.0, help="Stake per race.")
    parser.add_argument("--races", type=int, default=1, help="How many races to play back to back.")
    parser.add_argument("--deposit", type=float, default=None, help="Top up the balance before racing.")
    parser.add_argument("--seed", type=int, default=None, help="Seed for a reproducible session.")
    parser.add_argument("--store", choices=["memory", "postgres"], default=None, help="Force a persistence backend.")
    parser.add_argument("--animate", action="store_true", help="Draw the race tick by tick in real time.")
    parser.add_argument("--verbose", action="store_true", help="Show engine logs.")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    session = RaceSession(args.player, store=create_store(args.store), seed=args.seed)
    if args.field_size:
        session.set_field_size(args.field_size)
    if args.deposit:
        session.deposit(args.deposit)
    print(f"Balance: ${session.account.balance:,.2f}")

    for race_number in range(1, args.races + 1):
        _print_field(session)
        pick = args.pick if args.pick is not None else _pick_favourite(session)
        try:
            session.start_race(pick, args.stake)
        except InvalidWager as err:
            print(f"Race {race_number} not started: {err}")
            break

        if args.animate:
            asyncio.run(_animate(session))
        else:
            session.run()
            print(_render(session))

        winner = session.entrants[session.state.winner_index]
        record = session.record
        print(f"\nWinner: {winner.name}")
        if record.won:
            print(f"You won ${record.payout:,.2f}! (profit ${record.profit:,.2f})")
        else:
            print("Better luck next time!")
        print(f"Balance: ${session.account.balance:,.2f}")

        session.play_again()

    failed = session.retry_failed_writes()
    if session.outbox.pending:
        print(f"Warning: {len(session.outbox.pending)} writes could not be saved ({failed} recovered).")

    report = session.stats_report()
    if not report.empty:
        print("\nEntrant stats for the next field:")
        print(report.to_string(index=False))


if __name__ == "__main__":
    main()
