import unittest
from decimal import Decimal

from horsepicks import betting_service
from horsepicks.betting_service import InvalidAmount, InvalidWager
from horsepicks.engine import Account, Entrant


def _field(count=4):
    odds = [2.5, 3.0, 1.8, 2.2, 3.3, 1.6][:count]
    return [Entrant(entrant_id=i, name=f"Horse {i}", odds=o, speed=4.5 - o) for i, o in enumerate(odds, start=1)]


class PayoutTests(unittest.TestCase):
    def test_three_horse_field_pays_plain_odds(self):
        self.assertEqual(betting_service.compute_payout(100, 2.0, 3), Decimal("200.00"))

    def test_five_horse_field_applies_multiplier(self):
        self.assertEqual(betting_service.compute_payout(100, 2.0, 5), Decimal("300.00"))

    def test_winning_settlement_profit(self):
        entrants = _field(4)
        record = betting_service.compute_settlement(Decimal("500"), entrants[0], entrants[0], 4)
        self.assertTrue(record.won)
        self.assertEqual(record.payout, Decimal("1500.00"))
        self.assertEqual(record.profit, Decimal("1000.00"))

    def test_losing_settlement_profit(self):
        entrants = _field(4)
        record = betting_service.compute_settlement(Decimal("500"), entrants[0], entrants[1], 4)
        self.assertFalse(record.won)
        self.assertEqual(record.payout, Decimal("0.00"))
        self.assertEqual(record.profit, Decimal("-500.00"))

    def test_profit_identity_holds(self):
        for size in (3, 4, 5, 6):
            entrants = _field(size)
            for stake in ("0.01", "12.34", "999.99"):
                for winner in entrants:
                    record = betting_service.compute_settlement(Decimal(stake), entrants[0], winner, size)
                    if record.won:
                        self.assertEqual(record.profit, record.payout - Decimal(stake))
                    else:
                        self.assertEqual(record.profit, -Decimal(stake))


class PlaceWagerTests(unittest.TestCase):
    def setUp(self):
        self.entrants = _field(4)
        self.account = Account(player_id="p1", balance=Decimal("10000.00"))

    def test_valid_wager_debits_stake_and_locks_multiplier(self):
        result = betting_service.place_wager(self.account, self.entrants, 1, 500)
        self.assertTrue(result.success)
        self.assertEqual(result.locked_odds, 2.5)
        self.assertEqual(result.wager.stake, Decimal("500.00"))
        self.assertEqual(result.wager.multiplier, Decimal("1.2"))
        self.assertEqual(self.account.balance, Decimal("9500.00"))

    def test_stake_over_balance_is_rejected_without_debit(self):
        result = betting_service.place_wager(self.account, self.entrants, 1, "10000.01")
        self.assertFalse(result.success)
        self.assertEqual(self.account.balance, Decimal("10000.00"))

    def test_stake_equal_to_balance_is_allowed(self):
        result = betting_service.place_wager(self.account, self.entrants, 2, 10000)
        self.assertTrue(result.success)
        self.assertEqual(self.account.balance, Decimal("0.00"))

    def test_missing_pick_and_bad_stakes_raise(self):
        with self.assertRaises(InvalidWager):
            betting_service.validate_wager(self.entrants, None, 100, self.account.balance)
        with self.assertRaises(InvalidWager):
            betting_service.validate_wager(self.entrants, 9, 100, self.account.balance)
        with self.assertRaises(InvalidWager):
            betting_service.validate_wager(self.entrants, 1, 0, self.account.balance)
        with self.assertRaises(InvalidWager):
            betting_service.validate_wager(self.entrants, 1, -5, self.account.balance)
        with self.assertRaises(InvalidWager):
            betting_service.validate_wager(self.entrants, 1, "0.004", self.account.balance)
        with self.assertRaises(InvalidWager):
            betting_service.validate_wager(self.entrants, 1, "lots", self.account.balance)

    def test_stake_is_truncated_to_cents(self):
        wager = betting_service.validate_wager(self.entrants, 1, "10.019", self.account.balance)
        self.assertEqual(wager.stake, Decimal("10.01"))


class CashierTests(unittest.TestCase):
    def setUp(self):
        self.account = Account(player_id="p1", balance=Decimal("100.00"))

    def test_deposit_and_withdraw(self):
        self.assertEqual(betting_service.deposit(self.account, "50.5"), Decimal("150.50"))
        self.assertEqual(betting_service.withdraw(self.account, 150.5), Decimal("0.00"))

    def test_rejected_amounts(self):
        with self.assertRaises(InvalidAmount):
            betting_service.deposit(self.account, 0)
        with self.assertRaises(InvalidAmount):
            betting_service.withdraw(self.account, -1)
        with self.assertRaises(InvalidAmount):
            betting_service.withdraw(self.account, "100.01")
        self.assertEqual(self.account.balance, Decimal("100.00"))


if __name__ == "__main__":
    unittest.main()
