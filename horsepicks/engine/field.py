from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Optional, Sequence

import numpy as np

from horsepicks.config import get_config

from .data_models import Entrant

logger = logging.getLogger(__name__)

ENTRANT_NAME_POOL: List[str] = list(get_config("race.name_pool", []))
FIELD_SIZES: List[int] = list(get_config("race.field_sizes", [3, 4, 5, 6]))
ODDS_MIN = float(get_config("race.odds_min", 1.5))
ODDS_MAX = float(get_config("race.odds_max", 3.5))
SPEED_BASE = float(get_config("race.speed_base", 4.5))
DEFAULT_MULTIPLIER = Decimal(str(get_config("race.default_multiplier", 1.0)))
PAYOUT_MULTIPLIERS = {
    int(size): Decimal(str(multiplier))
    for size, multiplier in get_config("race.payout_multipliers", {}).items()
}

if len(ENTRANT_NAME_POOL) < max(FIELD_SIZES):
    raise ValueError(
        f"Name pool holds {len(ENTRANT_NAME_POOL)} names; "
        f"the largest field needs {max(FIELD_SIZES)}."
    )


def payout_multiplier(field_size: int) -> Decimal:
    """Field-size bonus applied on top of the entrant's odds. Untuned sizes pay 1.0."""
    return PAYOUT_MULTIPLIERS.get(int(field_size), DEFAULT_MULTIPLIER)


def draw_odds(rng: np.random.Generator) -> float:
    odds = round(float(rng.uniform(ODDS_MIN, ODDS_MAX)), 2)
    # Two-decimal rounding can land on the open upper bound.
    if odds >= ODDS_MAX:
        odds = round(ODDS_MAX - 0.01, 2)
    return odds


def generate_field(
    field_size: int,
    rng: Optional[np.random.Generator] = None,
    name_pool: Optional[Sequence[str]] = None,
) -> List[Entrant]:
    """
    Builds a fresh field of `field_size` entrants.

    Names are a prefix of a shuffled copy of the pool, so they never repeat
    within a race. Ids run 1..N in shuffle order, and each entrant's speed is
    the inverse of its odds (`speed_base - odds`): favourites run faster.
    """
    pool = list(name_pool) if name_pool is not None else ENTRANT_NAME_POOL
    if field_size < 1:
        raise ValueError(f"Field size must be positive, got {field_size}.")
    if field_size > len(pool):
        raise ValueError(f"Field size {field_size} exceeds the name pool ({len(pool)} names).")
    if field_size not in FIELD_SIZES:
        logger.info("Field size %s has no tuned multiplier; paying %s.", field_size, DEFAULT_MULTIPLIER)

    rng = rng if rng is not None else np.random.default_rng()
    shuffled = [str(name) for name in rng.permutation(pool)]

    entrants = []
    for idx, name in enumerate(shuffled[:field_size], start=1):
        odds = draw_odds(rng)
        entrants.append(Entrant(entrant_id=idx, name=name, odds=odds, speed=SPEED_BASE - odds))
    return entrants
