from __future__ import annotations

import math
import random
from typing import Dict, Optional

from bottlegame.catalog import CATALOG, Catalog, RivalDef
from bottlegame.config import (
    BASE_DEMAND_PER_CHANNEL,
    BASE_MARKET_PRICE,
    BRAND_POWER_PER_PRESTIGE,
    CHANNELS,
    EngineConfig,
)
from bottlegame.models import SalesOutcome, SimulationState

PLAYER_CHANNEL_STRENGTH = 1.0
HEATWAVE_KIND = "heatwave"
MUSIC_TRUCK_ID = "music_truck"
MUSIC_TRUCK_BONUS = 1.10

_STRATEGY_FACTOR: Dict[str, float] = {
    "undercut": 0.90,
    "premium": 1.30,
    "shadow": 1.02,
}


def brand_power(state: SimulationState) -> float:
    return 1.0 + max(0.0, float(state.prestige_currency)) * BRAND_POWER_PER_PRESTIGE


def event_demand_multiplier(state: SimulationState) -> float:
    ev = state.world_event
    if ev is None:
        return 1.0
    mult = float(ev.demand_multiplier)
    if ev.kind == HEATWAVE_KIND and MUSIC_TRUCK_ID in state.owned_equipment:
        mult *= MUSIC_TRUCK_BONUS
    return mult


def channel_demand(state: SimulationState) -> Dict[str, float]:
    """Unconstrained market demand per channel for this hour (all competitors)."""

    scale = brand_power(state) * float(state.demand_modifier) * event_demand_multiplier(state)
    return {ch: float(BASE_DEMAND_PER_CHANNEL[ch]) * scale for ch in CHANNELS}


def price_attractiveness(price: float, cfg: EngineConfig) -> float:
    return 1.0 / max(float(cfg.price_floor), float(price))


def rival_price(state: SimulationState, rival_id: str, channel: str, fallback: float) -> float:
    per_channel = state.rivals.prices.get(rival_id) or {}
    return float(per_channel.get(channel, fallback))


def player_shares(
    state: SimulationState,
    price: float,
    catalog: Catalog = CATALOG,
    cfg: Optional[EngineConfig] = None,
) -> Dict[str, float]:
    """Player share per channel when selling at ``price``.

    Without active rivals (or when every score vanishes) the player owns the channel.
    """

    cfg = cfg or EngineConfig()
    shares: Dict[str, float] = {}
    bp = brand_power(state)
    for ch in CHANNELS:
        player = bp * PLAYER_CHANNEL_STRENGTH * price_attractiveness(price, cfg)
        if not state.rivals.active or not catalog.rivals:
            shares[ch] = 1.0
            continue
        total = player
        for rid, rdef in catalog.rivals.items():
            rp = rival_price(state, rid, ch, price)
            total += rdef.brand_power * rdef.strength(ch) * price_attractiveness(rp, cfg)
        shares[ch] = player / total if total > 1e-12 else 1.0
    return shares


def effective_price(price: float, cost_modifier: float) -> float:
    return float(price) * (1.0 + (1.0 - float(cost_modifier)) * 0.5)


def resolve_sales(
    state: SimulationState,
    demand: Dict[str, float],
    catalog: Catalog = CATALOG,
    cfg: Optional[EngineConfig] = None,
) -> SalesOutcome:
    """Compute this hour's sales from stock on hand. Does not touch the state."""

    cfg = cfg or EngineConfig()
    out = SalesOutcome()
    unlocked = [fid for fid in state.unlocked_flavor_ids() if fid in catalog.flavors]
    if not unlocked:
        return out

    n = len(unlocked)
    wanted: Dict[str, float] = {}
    for fid in unlocked:
        fdef = catalog.flavors[fid]
        price = float(state.flavors[fid].price)
        shares = player_shares(state, price, catalog, cfg)
        if fid == state.active_flavor_id:
            out.channel_shares = dict(shares)
        d = sum(float(demand.get(ch, 0.0)) * shares[ch] for ch in CHANNELS)
        wanted[fid] = d * float(fdef.demand_multiplier) / float(n)

    if not out.channel_shares:
        out.channel_shares = player_shares(state, state.active_price(BASE_MARKET_PRICE), catalog, cfg)

    total_wanted = sum(wanted.values())
    out.demand_level = total_wanted
    stock = max(0, int(state.inventory.bottles))
    if total_wanted <= 0 or stock <= 0:
        return out

    scale = min(1.0, float(stock) / total_wanted)
    remaining = stock
    for fid in unlocked:
        units = int(math.floor(wanted[fid] * scale + 1e-9))
        units = max(0, min(units, remaining))
        remaining -= units
        if units <= 0:
            continue
        rev = units * effective_price(state.flavors[fid].price, state.cost_modifier)
        out.sold_by_flavor[fid] = units
        out.revenue_by_flavor[fid] = rev
        out.units_sold += units
        out.revenue += rev

    market_total = sum(float(v) for v in demand.values())
    out.market_share = out.units_sold / market_total if market_total > 0 else 0.0
    return out


# ---------------------------------------------------------------------------
# Rivals
# ---------------------------------------------------------------------------


def rivals_should_activate(state: SimulationState, cfg: EngineConfig) -> bool:
    if state.rivals.active:
        return False
    return (
        float(state.stats.revenue) >= float(cfg.rival_revenue_threshold)
        or int(state.stats.sold) >= int(cfg.rival_sold_threshold)
    )


def activate_rivals(state: SimulationState, catalog: Catalog, cfg: EngineConfig, rng: random.Random) -> None:
    lo = float(cfg.rival_initial_price_min)
    hi = float(cfg.rival_initial_price_max)
    prices: Dict[str, Dict[str, float]] = {}
    for rid in catalog.rivals:
        prices[rid] = {ch: lo + rng.random() * (hi - lo) for ch in CHANNELS}
    state.rivals.prices = prices
    state.rivals.active = True
    state.rivals.last_price_day = int(state.calendar.day)


def rival_target_price(rdef: RivalDef, player_price: float, cfg: EngineConfig, rng: random.Random) -> float:
    p = float(player_price)
    target = p * _STRATEGY_FACTOR.get(rdef.strategy, 1.0)
    target += (rng.random() - 0.5) * float(cfg.rival_jitter) * p
    return max(float(cfg.price_floor), target)


def refresh_rival_prices(state: SimulationState, catalog: Catalog, cfg: EngineConfig, rng: random.Random) -> None:
    """Daily repricing against the player's active-flavor price."""

    if not state.rivals.active:
        return
    p = state.active_price(BASE_MARKET_PRICE)
    state.rivals.prices = {
        rid: {ch: rival_target_price(rdef, p, cfg, rng) for ch in CHANNELS}
        for rid, rdef in catalog.rivals.items()
    }
    state.rivals.last_price_day = int(state.calendar.day)
