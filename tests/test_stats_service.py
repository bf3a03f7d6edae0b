from decimal import Decimal
from unittest.mock import MagicMock

from horsepicks import stats_service
from horsepicks.engine import Entrant, EntrantStats, SettlementRecord


def _field():
    return [Entrant(entrant_id=i, name=n, odds=2.0, speed=2.5) for i, n in enumerate(["Iron Hoof", "Frost Wind", "Nova Runner"], start=1)]


def test_missing_names_default_to_zero():
    store = MagicMock()
    store.load_entrant_stats.return_value = {
        "Iron Hoof": EntrantStats(name="Iron Hoof", total_games=4, total_wins=1, total_losses=3, total_payout=Decimal("250.00")),
    }
    stats = stats_service.load_entrant_stats(store, ["Iron Hoof", "Frost Wind"])
    assert stats["Iron Hoof"].total_wins == 1
    assert stats["Frost Wind"] == EntrantStats(name="Frost Wind")


def test_unreadable_store_defaults_everything():
    store = MagicMock()
    store.load_entrant_stats.side_effect = RuntimeError("down")
    stats = stats_service.load_entrant_stats(store, ["Iron Hoof"])
    assert stats == {"Iron Hoof": EntrantStats(name="Iron Hoof")}


def test_deltas_keep_games_equal_to_wins_plus_losses():
    entrants = _field()
    stats = {}
    for race, winner in enumerate([0, 1, 0, 2, 0]):
        payout = Decimal("100.00") if race % 2 == 0 else Decimal("0.00")
        deltas = stats_service.entrant_stat_deltas(entrants, entrants[winner], payout)
        stats_service.apply_entrant_deltas(stats, deltas)

    for entry in stats.values():
        assert entry.total_games == 5
        assert entry.total_wins + entry.total_losses == entry.total_games
    assert stats["Iron Hoof"].total_wins == 3
    assert stats["Iron Hoof"].total_payout == Decimal("300.00")
    assert stats["Frost Wind"].total_payout == Decimal("0")


def test_account_deltas_for_loss_do_not_touch_balance():
    record = SettlementRecord(won=False, payout=Decimal("0.00"), profit=Decimal("-50.00"))
    deltas = stats_service.account_deltas(record)
    assert deltas["balance"] == Decimal("0")
    assert deltas["total_losses"] == 1
    assert deltas["total_wins"] == 0
    assert deltas["total_profit"] == Decimal("-50.00")


def test_report_orders_by_win_rate():
    stats = {
        "Iron Hoof": EntrantStats(name="Iron Hoof", total_games=4, total_wins=1, total_losses=3, total_payout=Decimal("80")),
        "Frost Wind": EntrantStats(name="Frost Wind", total_games=2, total_wins=2, total_losses=0, total_payout=Decimal("10")),
    }
    report = stats_service.build_stats_report(stats, ["Iron Hoof", "Frost Wind", "Nova Runner"])
    assert list(report.columns) == stats_service.REPORT_COLUMNS
    assert list(report["name"]) == ["Frost Wind", "Iron Hoof", "Nova Runner"]
    assert report.loc[0, "win_rate"] == 1.0
    assert report.loc[1, "win_rate"] == 0.25
    assert report.loc[2, "total_games"] == 0


def test_empty_report():
    report = stats_service.build_stats_report({})
    assert report.empty
    assert list(report.columns) == stats_service.REPORT_COLUMNS
