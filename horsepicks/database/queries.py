from horsepicks.database.connection import get_db_connection
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Sequence, Dict, Any, List
import logging

logger = logging.getLogger(__name__)

ACCOUNTS_TABLE = "horsepicks.accounts"
ENTRANT_STATS_TABLE = "horsepicks.entrant_stats"
MATCH_HISTORY_TABLE = "horsepicks.match_history"

ACCOUNT_DELTA_FIELDS = ("balance", "total_games", "total_wins", "total_losses", "total_profit")
ENTRANT_DELTA_FIELDS = ("total_games", "total_wins", "total_losses", "total_payout")


def _as_aware(dt):
    if isinstance(dt, datetime) and (dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None):
        return dt.replace(tzinfo=timezone.utc)
    return dt

# --- Account Queries ---

def get_account(player_id: str) -> Optional[Dict[str, Any]]:
    """
    Fetches a player's account row.

    Returns:
        dict: The account, or None if not found/error.
    """
    conn = get_db_connection()
    if not conn:
        return None
    account = None
    try:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT player_id, username, balance, total_games, total_wins, total_losses, total_profit
                FROM {ACCOUNTS_TABLE} WHERE player_id = %s;
                """,
                (player_id,)
            )
            row = cur.fetchone()
        if row:
            account = {
                "player_id": row[0],
                "username": row[1],
                "balance": Decimal(str(row[2])),
                "total_games": row[3],
                "total_wins": row[4],
                "total_losses": row[5],
                "total_profit": Decimal(str(row[6])),
            }
    except Exception as e:
        logger.error("Error in get_account for player %s: %s", player_id, e)
    finally:
        conn.close()
    return account

def create_account(player_id: str, balance: Decimal, username: str = "") -> bool:
    """
    Inserts a fresh account. An existing row for the player is left untouched.
    """
    conn = get_db_connection()
    if not conn:
        return False
    try:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO {ACCOUNTS_TABLE} (player_id, username, balance)
                VALUES (%s, %s, %s)
                ON CONFLICT (player_id) DO NOTHING;
                """,
                (player_id, username, balance)
            )
        conn.commit()
        return True
    except Exception as e:
        conn.rollback()
        logger.error("Error creating account for player %s: %s", player_id, e)
        return False
    finally:
        conn.close()

def persist_account_delta(player_id: str, deltas: Dict[str, Any]) -> bool:
    """
    Applies additive deltas to an account row in one statement.
    Unknown keys are ignored; missing keys count as zero.
    """
    values = [deltas.get(name, 0) for name in ACCOUNT_DELTA_FIELDS]
    conn = get_db_connection()
    if not conn:
        return False
    try:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                UPDATE {ACCOUNTS_TABLE}
                SET balance = balance + %s,
                    total_games = total_games + %s,
                    total_wins = total_wins + %s,
                    total_losses = total_losses + %s,
                    total_profit = total_profit + %s
                WHERE player_id = %s;
                """,
                (*values, player_id)
            )
            updated = cur.rowcount
        conn.commit()
        if updated == 0:
            logger.warning("No account row for player %s; delta not applied.", player_id)
            return False
        return True
    except Exception as e:
        conn.rollback()
        logger.error("Error applying account delta for player %s: %s", player_id, e)
        return False
    finally:
        conn.close()

def set_username(player_id: str, username: str) -> bool:
    conn = get_db_connection()
    if not conn:
        return False
    try:
        with conn.cursor() as cur:
            cur.execute(
                f"UPDATE {ACCOUNTS_TABLE} SET username = %s WHERE player_id = %s;",
                (username, player_id)
            )
        conn.commit()
        return True
    except Exception as e:
        conn.rollback()
        logger.error("Error setting username for player %s: %s", player_id, e)
        return False
    finally:
        conn.close()

# --- Entrant Stats Queries ---

def get_entrant_stats(names: Sequence[str]) -> Dict[str, Dict[str, Any]]:
    """
    Fetches stats rows for the given entrant names. Names without a row are
    simply absent from the result.
    """
    if not names:
        return {}
    conn = get_db_connection()
    if not conn:
        return {}
    stats = {}
    try:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT name, total_games, total_wins, total_losses, total_payout
                FROM {ENTRANT_STATS_TABLE}
                WHERE name = ANY(%s);
                """,
                (list(names),)
            )
            for row in cur.fetchall():
                stats[row[0]] = {
                    "total_games": row[1],
                    "total_wins": row[2],
                    "total_losses": row[3],
                    "total_payout": Decimal(str(row[4])),
                }
    except Exception as e:
        logger.error("Error in get_entrant_stats: %s", e)
    finally:
        conn.close()
    return stats

def persist_entrant_stats_delta(name: str, deltas: Dict[str, Any]) -> bool:
    """
    Upserts one entrant's counters, adding the deltas to any existing row.
    """
    values = [deltas.get(field, 0) for field in ENTRANT_DELTA_FIELDS]
    conn = get_db_connection()
    if not conn:
        return False
    try:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO {ENTRANT_STATS_TABLE} (name, total_games, total_wins, total_losses, total_payout)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (name)
                DO UPDATE SET total_games = {ENTRANT_STATS_TABLE}.total_games + EXCLUDED.total_games,
                              total_wins = {ENTRANT_STATS_TABLE}.total_wins + EXCLUDED.total_wins,
                              total_losses = {ENTRANT_STATS_TABLE}.total_losses + EXCLUDED.total_losses,
                              total_payout = {ENTRANT_STATS_TABLE}.total_payout + EXCLUDED.total_payout;
                """,
                (name, *values)
            )
        conn.commit()
        return True
    except Exception as e:
        conn.rollback()
        logger.error("Error applying stats delta for entrant %s: %s", name, e)
        return False
    finally:
        conn.close()

# --- Match History Queries ---

def append_match_record(record) -> bool:
    """
    Inserts one settled wager into match history. Rows are never updated.
    """
    conn = get_db_connection()
    if not conn:
        return False
    try:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO {MATCH_HISTORY_TABLE}
                (player_id, entrant_id, entrant_name, winner_name, stake, odds, multiplier,
                 field_size, won, payout, profit, settled_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s);
                """,
                (
                    record.player_id, record.entrant_id, record.entrant_name, record.winner_name,
                    record.stake, record.odds, record.multiplier, record.field_size,
                    record.won, record.payout, record.profit, record.settled_at,
                )
            )
        conn.commit()
        return True
    except Exception as e:
        conn.rollback()
        logger.error("Error recording match for player %s: %s", record.player_id, e)
        return False
    finally:
        conn.close()

def get_match_history(player_id: str, limit: int = 10) -> List[Dict[str, Any]]:
    """
    Returns a player's most recent settled wagers, newest first.
    """
    if limit <= 0:
        return []
    conn = get_db_connection()
    if not conn:
        return []
    rows = []
    try:
        with conn.cursor() as cur:
            cur.execute(
                f"""
                SELECT match_id, entrant_name, winner_name, stake, odds, multiplier,
                       field_size, won, payout, profit, settled_at
                FROM {MATCH_HISTORY_TABLE}
                WHERE player_id = %s
                ORDER BY settled_at DESC, match_id DESC
                LIMIT %s;
                """,
                (player_id, limit)
            )
            rows = cur.fetchall()
    except Exception as e:
        logger.error("Error in get_match_history for player %s: %s", player_id, e)
    finally:
        conn.close()

    history = []
    for match_id, entrant_name, winner_name, stake, odds, multiplier, field_size, won, payout, profit, settled_at in rows:
        history.append({
            "match_id": match_id,
            "entrant_name": entrant_name,
            "winner_name": winner_name,
            "stake": Decimal(str(stake)),
            "odds": Decimal(str(odds)),
            "multiplier": Decimal(str(multiplier)),
            "field_size": field_size,
            "won": bool(won),
            "payout": Decimal(str(payout)),
            "profit": Decimal(str(profit)),
            "settled_at": _as_aware(settled_at),
        })
    return history
