import unittest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

from horsepicks.database import queries


def _fake_conn(cursor):
    cursor.__enter__.return_value = cursor
    conn = MagicMock()
    conn.cursor.return_value = cursor
    return conn


class AccountQueryTests(unittest.TestCase):
    def test_returns_none_when_database_unavailable(self):
        with patch.object(queries, "get_db_connection", return_value=None):
            self.assertIsNone(queries.get_account("p1"))
            self.assertFalse(queries.persist_account_delta("p1", {"balance": 5}))
            self.assertEqual(queries.get_match_history("p1"), [])

    def test_get_account_normalises_row(self):
        cursor = MagicMock()
        cursor.fetchone.return_value = ("p1", "alice", 9500.5, 3, 1, 2, -120)
        conn = _fake_conn(cursor)

        with patch.object(queries, "get_db_connection", return_value=conn):
            account = queries.get_account("p1")

        self.assertEqual(account["username"], "alice")
        self.assertEqual(account["balance"], Decimal("9500.5"))
        self.assertEqual(account["total_profit"], Decimal("-120"))
        conn.close.assert_called_once()

    def test_persist_account_delta_applies_all_fields(self):
        cursor = MagicMock()
        cursor.rowcount = 1
        conn = _fake_conn(cursor)

        with patch.object(queries, "get_db_connection", return_value=conn):
            ok = queries.persist_account_delta("p1", {"balance": Decimal("1500.00"), "total_games": 1, "total_wins": 1})

        self.assertTrue(ok)
        params = cursor.execute.call_args[0][1]
        self.assertEqual(params, (Decimal("1500.00"), 1, 1, 0, 0, "p1"))
        conn.commit.assert_called_once()
        conn.close.assert_called_once()

    def test_persist_account_delta_reports_missing_row(self):
        cursor = MagicMock()
        cursor.rowcount = 0
        conn = _fake_conn(cursor)

        with patch.object(queries, "get_db_connection", return_value=conn):
            self.assertFalse(queries.persist_account_delta("ghost", {"balance": 1}))

    def test_failed_write_rolls_back(self):
        cursor = MagicMock()
        cursor.execute.side_effect = Exception("deadlock detected")
        conn = _fake_conn(cursor)

        with patch.object(queries, "get_db_connection", return_value=conn):
            self.assertFalse(queries.persist_entrant_stats_delta("Iron Hoof", {"total_games": 1}))

        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        conn.close.assert_called_once()


class EntrantStatsQueryTests(unittest.TestCase):
    def test_empty_name_list_skips_database(self):
        with patch.object(queries, "get_db_connection") as mock_conn:
            self.assertEqual(queries.get_entrant_stats([]), {})
        mock_conn.assert_not_called()

    def test_rows_keyed_by_name(self):
        cursor = MagicMock()
        cursor.fetchall.return_value = [("Iron Hoof", 5, 2, 3, Decimal("410.00"))]
        conn = _fake_conn(cursor)

        with patch.object(queries, "get_db_connection", return_value=conn):
            stats = queries.get_entrant_stats(["Iron Hoof", "Frost Wind"])

        self.assertEqual(list(stats), ["Iron Hoof"])
        self.assertEqual(stats["Iron Hoof"]["total_payout"], Decimal("410.00"))
        self.assertEqual(cursor.execute.call_args[0][1], (["Iron Hoof", "Frost Wind"],))


class MatchHistoryQueryTests(unittest.TestCase):
    def test_returns_normalised_rows(self):
        cursor = MagicMock()
        naive_timestamp = datetime(2025, 1, 1, 12, 0, 0)
        cursor.fetchall.return_value = [
            (7, "Iron Hoof", "Frost Wind", Decimal("150"), Decimal("2.50"), Decimal("1.2"), 4, False,
             Decimal("0"), Decimal("-150"), naive_timestamp)
        ]
        conn = _fake_conn(cursor)

        with patch.object(queries, "get_db_connection", return_value=conn):
            history = queries.get_match_history("p1", limit=3)

        self.assertEqual(len(history), 1)
        match = history[0]
        self.assertEqual(match["match_id"], 7)
        self.assertEqual(match["winner_name"], "Frost Wind")
        self.assertFalse(match["won"])
        self.assertEqual(match["profit"], Decimal("-150"))
        self.assertEqual(match["settled_at"].tzinfo, timezone.utc)
        self.assertEqual(cursor.execute.call_args[0][1], ("p1", 3))
        conn.close.assert_called_once()

    def test_non_positive_limit_returns_nothing(self):
        with patch.object(queries, "get_db_connection") as mock_conn:
            self.assertEqual(queries.get_match_history("p1", limit=0), [])
        mock_conn.assert_not_called()


if __name__ == "__main__":
    unittest.main()
