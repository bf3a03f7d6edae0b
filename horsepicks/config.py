import json
import logging
import os
from copy import deepcopy
from pathlib import Path

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
CONFIG_FILE_PATH = os.getenv(
    "HORSEPICKS_CONFIG",
    str(PROJECT_ROOT / "configs" / "game_balance.json"),
)

DEFAULT_NAME_POOL = [
    "Thunderbolt", "Midnight Dash", "Lightning Strike", "Storm Chaser", "Rapid Flame",
    "Dust Runner", "Shadow Sprint", "Iron Hoof", "Golden Gallop", "Steel Comet",
    "Crimson Charger", "Silver Mane", "Blazing Star", "Frost Wind", "Solar Flash",
    "Dark Comet", "Electric Whisper", "Vortex Vixen", "Blitz Phantom", "Nova Runner",
]

DEFAULT_CONFIG = {
    "race": {
        "name_pool": DEFAULT_NAME_POOL,
        "field_sizes": [3, 4, 5, 6],
        "default_field_size": 3,
        "payout_multipliers": {"3": 1.0, "4": 1.2, "5": 1.5, "6": 2.0},
        "default_multiplier": 1.0,
        "odds_min": 1.5,
        "odds_max": 3.5,
        "speed_base": 4.5,
        "finish_line": 100,
        "tick_interval_ms": 100,
        "max_ticks": 10000,
    },
    "economy": {
        "starting_balance": 10000,
    },
    "persistence": {
        "outbox_max_attempts": 3,
    },
}


def _merge(base, override):
    merged = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path=None):
    """
    Loads the game balance config file, layered over the built-in defaults.
    A missing or broken file is logged and the defaults are used as-is.
    """
    path = path or CONFIG_FILE_PATH
    try:
        with open(path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except FileNotFoundError:
        logger.error("Could not find config file at %s; using built-in defaults.", path)
        return deepcopy(DEFAULT_CONFIG)
    except Exception as e:
        logger.error("Could not parse config file %s: %s; using built-in defaults.", path, e)
        return deepcopy(DEFAULT_CONFIG)
    return _merge(DEFAULT_CONFIG, config)

# Load the config ONCE when the module is first imported
BALANCE_CONFIG = load_config()


def get_config(key_path, default=None):
    """
    Safely gets a value from the loaded config using a 'dot.path'.
    Example: get_config('race.tick_interval_ms')
    """
    if not BALANCE_CONFIG:
        return default

    try:
        value = BALANCE_CONFIG
        for key in key_path.split('.'):
            value = value[key]
        return value
    except (KeyError, TypeError):
        logger.warning("Could not find config key: %s", key_path)
        return default
