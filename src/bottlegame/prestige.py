from __future__ import annotations

import copy
import logging
from typing import Dict, Optional

from bottlegame.catalog import CATALOG, Catalog
from bottlegame.config import (
    BASE_CAPACITY_PER_LINE,
    PRESTIGE_CAPACITY_BONUS,
    PRESTIGE_CASH_BONUS,
    PRESTIGE_DEMAND_BONUS,
    PRESTIGE_GAIN_PER_RESET,
    STARTING_CASH,
    EngineConfig,
)
from bottlegame.eventlog import Sink, safe_emit
from bottlegame.models import SimulationState
from bottlegame.presets import new_game_state
from bottlegame.reporting import format_money

logger = logging.getLogger(__name__)


def is_eligible(state: SimulationState, cfg: Optional[EngineConfig] = None) -> bool:
    cfg = cfg or EngineConfig()
    return float(state.stats.revenue) >= float(cfg.prestige_revenue_threshold)


def starting_bonuses(prestige_currency: float) -> Dict[str, float]:
    """Starting cash / capacity / demand modifier for a run at the given legacy."""

    p = max(0.0, float(prestige_currency))
    return {
        "cash": STARTING_CASH * (1.0 + PRESTIGE_CASH_BONUS * p),
        "capacity_per_hour": float(int(BASE_CAPACITY_PER_LINE + PRESTIGE_CAPACITY_BONUS * p)),
        "demand_modifier": 1.0 + PRESTIGE_DEMAND_BONUS * p,
    }


def preview_reset(state: SimulationState, cfg: Optional[EngineConfig] = None) -> Dict[str, object]:
    nxt = float(state.prestige_currency) + PRESTIGE_GAIN_PER_RESET
    out: Dict[str, object] = {
        "eligible": is_eligible(state, cfg),
        "threshold": float((cfg or EngineConfig()).prestige_revenue_threshold),
        "prestige_currency_after": nxt,
    }
    out.update(starting_bonuses(nxt))
    return out


def perform_reset(
    state: SimulationState,
    cfg: Optional[EngineConfig] = None,
    catalog: Catalog = CATALOG,
    sink: Optional[Sink] = None,
) -> Optional[SimulationState]:
    """Build the next run's state. Returns None (old state untouched) when not eligible.

    The returned object replaces ``state``; nothing is mutated on the old one.
    """

    cfg = cfg or EngineConfig()
    if not is_eligible(state, cfg):
        safe_emit(
            sink,
            f"Prestige needs {format_money(cfg.prestige_revenue_threshold)} lifetime revenue "
            f"(have {format_money(state.stats.revenue)}).",
            "bad",
        )
        return None

    p = float(state.prestige_currency) + PRESTIGE_GAIN_PER_RESET
    fresh = new_game_state(catalog, seed=state.rng_seed)
    bonuses = starting_bonuses(p)
    fresh.prestige_currency = p
    fresh.cash = bonuses["cash"]
    fresh.capacity_per_hour = int(bonuses["capacity_per_hour"])
    fresh.demand_modifier = bonuses["demand_modifier"]

    fresh.unlocked_achievements = list(state.unlocked_achievements)
    fresh.unlocked_prestige_nodes = list(state.unlocked_prestige_nodes)
    fresh.prestige_spent = int(state.prestige_spent)
    fresh.prestige_resets = int(state.prestige_resets) + 1
    fresh.rng_state = copy.deepcopy(state.rng_state)
    fresh.last_observed_timestamp = float(state.last_observed_timestamp)

    for nid in fresh.unlocked_prestige_nodes:
        node = catalog.prestige_nodes.get(nid)
        if node is not None:
            node.apply(fresh)

    logger.info("prestige reset #%s, legacy now %.2f", fresh.prestige_resets, p)
    safe_emit(
        sink,
        f"Brand relaunched! Legacy {p:.2f}: starting cash {format_money(fresh.cash)}, "
        f"capacity {fresh.capacity_per_hour}/h, demand x{fresh.demand_modifier:.2f}.",
        "good",
    )
    return fresh
