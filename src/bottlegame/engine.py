from __future__ import annotations

import logging
import math
import random
import time
from typing import Any, Dict, Iterable, List, Optional, cast

from bottlegame.catalog import CATALOG, STORAGE_FULL_EVENT, Catalog, WorldEventTemplate
from bottlegame.config import DEFAULT_RNG_SEED, RAW_MATERIALS, SUPPLY_COST, EngineConfig
from bottlegame.eventlog import Sink, safe_emit
from bottlegame.extensions import DEFAULT_EXTENSIONS, SimulationExtension, run_tick_hooks
from bottlegame.market import (
    activate_rivals,
    channel_demand,
    refresh_rival_prices,
    resolve_sales,
    rivals_should_activate,
)
from bottlegame.models import (
    MissionReward,
    MonthRecap,
    OfflineResult,
    SalesOutcome,
    SimulationState,
    TickResult,
    WorldEvent,
)
from bottlegame.reporting import format_money

logger = logging.getLogger(__name__)


def _to_jsonable(x: object) -> object:
    if isinstance(x, tuple):
        return [_to_jsonable(v) for v in x]
    if isinstance(x, list):
        return [_to_jsonable(v) for v in x]
    if isinstance(x, dict):
        return {str(k): _to_jsonable(v) for k, v in x.items()}
    return x


def _to_tuple(x: object) -> object:
    if isinstance(x, list):
        return tuple(_to_tuple(v) for v in x)
    if isinstance(x, dict):
        return {k: _to_tuple(v) for k, v in x.items()}
    return x


def rng_from_state(state: SimulationState) -> random.Random:
    rng = random.Random()
    seed = int(getattr(state, "rng_seed", DEFAULT_RNG_SEED) or DEFAULT_RNG_SEED)
    st = getattr(state, "rng_state", None)
    if st is not None:
        try:
            rng.setstate(cast(tuple[Any, ...], _to_tuple(st)))
            return rng
        except (TypeError, ValueError, KeyError, IndexError):
            logger.warning("stored rng state is unusable, reseeding from %s", seed)
    rng.seed(seed)
    return rng


def persist_rng_state(state: SimulationState, rng: random.Random) -> None:
    state.rng_state = _to_jsonable(rng.getstate())


def effective_capacity(state: SimulationState) -> int:
    mult = state.world_event.capacity_multiplier if state.world_event else 1.0
    return max(0, int(math.floor(float(state.capacity_per_hour) * float(mult))))


def material_unit_cost(state: SimulationState, kind: str) -> float:
    return float(SUPPLY_COST[kind]) * float(state.cost_modifier)


def _split_units(units: int, weights: Dict[str, float]) -> Dict[str, int]:
    """Largest-remainder split of ``units`` by weight; ties keep key order."""

    total = sum(max(0.0, w) for w in weights.values())
    if units <= 0 or total <= 0:
        return {k: 0 for k in weights}
    raw = {k: units * max(0.0, w) / total for k, w in weights.items()}
    out = {k: int(math.floor(v)) for k, v in raw.items()}
    left = units - sum(out.values())
    order = sorted(weights, key=lambda k: raw[k] - out[k], reverse=True)
    for k in order[:left]:
        out[k] += 1
    return out


def _start_world_event(
    state: SimulationState, tpl: WorldEventTemplate, rng: random.Random, sink: Optional[Sink]
) -> WorldEvent:
    hours = rng.randint(int(tpl.min_hours), max(int(tpl.min_hours), int(tpl.max_hours)))
    ev = WorldEvent(
        kind=tpl.kind,
        name=tpl.name,
        remaining_hours=max(1, hours),
        capacity_multiplier=float(tpl.capacity_multiplier),
        demand_multiplier=float(tpl.demand_multiplier),
        extra_cost_per_hour=float(tpl.extra_cost_per_hour),
    )
    state.world_event = ev
    harmful = ev.capacity_multiplier < 1.0 or ev.demand_multiplier < 1.0 or ev.extra_cost_per_hour > 0
    safe_emit(sink, f"World event: {tpl.name}. {tpl.desc} ({ev.remaining_hours}h)", "bad" if harmful else "good")
    return ev


# ---------------------------------------------------------------------------
# Tick steps
# ---------------------------------------------------------------------------


def _advance_calendar(
    state: SimulationState,
    cfg: EngineConfig,
    catalog: Catalog,
    rng: random.Random,
    sink: Optional[Sink],
) -> Optional[MonthRecap]:
    cal = state.calendar
    cal.hour = int(cal.hour) + 1
    if cal.hour < 24:
        return None
    cal.hour = 0
    cal.day = int(cal.day) + 1

    if state.rivals.active:
        refresh_rival_prices(state, catalog, cfg, rng)

    month = cal.month_index(cfg.month_len_days)
    if month == cal.last_month_index:
        return None

    m = state.monthly
    recap = MonthRecap(
        month=int(cal.last_month_index),
        produced=int(m.produced),
        sold=int(m.sold),
        revenue=float(m.revenue),
        expenses=float(m.expenses),
    )
    safe_emit(
        sink,
        f"Month {recap.month} recap: produced {recap.produced}, sold {recap.sold}, "
        f"revenue {format_money(recap.revenue)}, expenses {format_money(recap.expenses)}, "
        f"profit {format_money(recap.profit)}.",
        "info",
    )
    state.reset_month_trackers()
    cal.last_month_index = month
    return recap


def _apply_fixed_costs(state: SimulationState) -> float:
    cost = float(state.fixed_cost_per_hour)
    if state.world_event is not None:
        cost += float(state.world_event.extra_cost_per_hour)
    cost = max(0.0, cost)
    state.cash -= cost
    state.stats.add_expense(cost)
    state.monthly.add_expense(cost)
    return cost


def _auto_procure(state: SimulationState, cfg: EngineConfig) -> float:
    """Top materials up to capacity * multiple. All-or-nothing on cash."""

    if not state.auto_buy:
        return 0.0
    target = effective_capacity(state) * max(0, int(cfg.procurement_multiple))
    need = {k: max(0, target - state.inventory.raw(k)) for k in RAW_MATERIALS}
    total = sum(qty * material_unit_cost(state, k) for k, qty in need.items())
    if total <= 0:
        return 0.0
    if total > state.cash:
        logger.debug("auto procurement skipped: need %.2f, cash %.2f", total, state.cash)
        return 0.0
    for k, qty in need.items():
        state.inventory.add_raw(k, qty)
    state.cash -= total
    state.stats.add_expense(total)
    state.monthly.add_expense(total)
    return total


def _produce(
    state: SimulationState, catalog: Catalog, rng: random.Random, sink: Optional[Sink], result: TickResult
) -> int:
    inv = state.inventory
    cap = effective_capacity(state)
    materials = min(inv.raw(k) for k in RAW_MATERIALS)
    room = max(0, int(state.storage_capacity) - int(inv.bottles))
    producible = max(0, min(cap, materials, room))

    if room <= 0 and min(cap, materials) > 0:
        result.storage_blocked = True
        tpl = catalog.world_events.get(STORAGE_FULL_EVENT)
        if state.world_event is None and tpl is not None:
            _start_world_event(state, tpl, rng, sink)
            result.event_started = tpl.kind

    if producible <= 0:
        return 0

    for k in RAW_MATERIALS:
        inv.add_raw(k, -producible)
    inv.bottles += producible
    state.stats.produced += producible
    state.monthly.produced += producible

    unlocked = [fid for fid in state.unlocked_flavor_ids() if fid in catalog.flavors]
    if len(unlocked) <= 1:
        split = {state.active_flavor_id: producible}
    else:
        split = _split_units(producible, {fid: catalog.flavors[fid].demand_multiplier for fid in unlocked})
    for fid, units in split.items():
        fs = state.flavors.get(fid)
        if fs is None:
            continue
        fs.produced_lifetime += units
        fs.monthly_produced += units
    return producible


def _apply_sales(state: SimulationState, outcome: SalesOutcome) -> None:
    if outcome.units_sold <= 0:
        return
    state.inventory.bottles = max(0, int(state.inventory.bottles) - int(outcome.units_sold))
    state.cash += outcome.revenue
    state.stats.sold += outcome.units_sold
    state.stats.revenue += outcome.revenue
    state.monthly.sold += outcome.units_sold
    state.monthly.revenue += outcome.revenue
    for fid, units in outcome.sold_by_flavor.items():
        fs = state.flavors[fid]
        fs.sold_lifetime += units
        fs.monthly_sold += units


def _unlock_flavors(state: SimulationState, catalog: Catalog, sink: Optional[Sink]) -> List[str]:
    unlocked = []
    for fid, fdef in catalog.flavors.items():
        fs = state.flavors.get(fid)
        if fs is None or fs.unlocked:
            continue
        if float(state.stats.revenue) >= float(fdef.unlock_revenue):
            fs.unlocked = True
            unlocked.append(fid)
            safe_emit(sink, f"New flavor unlocked: {fdef.name}!", "good")
    return unlocked


def _world_event_step(
    state: SimulationState,
    cfg: EngineConfig,
    catalog: Catalog,
    rng: random.Random,
    sink: Optional[Sink],
    result: TickResult,
) -> None:
    ev = state.world_event
    if ev is not None:
        ev.remaining_hours -= 1
        if ev.remaining_hours <= 0:
            state.world_event = None
            result.event_ended = ev.kind
            safe_emit(sink, f"{ev.name} has ended.", "info")
        return

    pool = catalog.event_pool()
    if not pool:
        return
    if rng.random() >= float(cfg.event_probability):
        return
    tpl = rng.choice(list(pool))
    _start_world_event(state, tpl, rng, sink)
    result.event_started = tpl.kind


def _mission_step(state: SimulationState, catalog: Catalog, sink: Optional[Sink]) -> Optional[str]:
    ms = state.mission
    if not ms.active_id:
        return None
    ms.remaining_hours = max(0, int(ms.remaining_hours) - 1)
    if ms.remaining_hours > 0:
        return None
    mid = ms.active_id
    mdef = catalog.missions.get(mid)
    ms.active_id = None
    if mdef is None:
        return None
    ms.pending_reward = MissionReward(cash=float(mdef.reward_cash), prestige_points=float(mdef.reward_prestige))
    safe_emit(sink, f"Mission complete: {mdef.name}. Claim your reward.", "good")
    return mid


def _check_achievements(state: SimulationState, catalog: Catalog, sink: Optional[Sink]) -> List[str]:
    gained: List[str] = []
    for aid, adef in catalog.achievements.items():
        if aid in state.unlocked_achievements:
            continue
        if adef.check(state):
            state.unlocked_achievements.append(aid)
            gained.append(aid)
            safe_emit(sink, f"Achievement unlocked: {adef.label}", "good")
    return gained


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def advance(
    state: SimulationState,
    online: bool = True,
    cfg: Optional[EngineConfig] = None,
    catalog: Catalog = CATALOG,
    rng: Optional[random.Random] = None,
    sink: Optional[Sink] = None,
    extensions: Iterable[SimulationExtension] = DEFAULT_EXTENSIONS,
    now: Optional[float] = None,
) -> TickResult:
    """Advance the simulation by one hour, mutating ``state`` in place."""

    cfg = cfg or EngineConfig()
    own_rng = rng is None
    if rng is None:
        rng = rng_from_state(state)

    cash_before = float(state.cash)
    recap = _advance_calendar(state, cfg, catalog, rng, sink)
    result = TickResult(day=int(state.calendar.day), hour=int(state.calendar.hour), cash_before=cash_before)
    result.month_recap = recap

    result.fixed_cost = _apply_fixed_costs(state)
    result.procurement_cost = _auto_procure(state, cfg)
    result.produced = _produce(state, catalog, rng, sink, result)

    outcome = resolve_sales(state, channel_demand(state), catalog, cfg)
    _apply_sales(state, outcome)
    result.units_sold = outcome.units_sold
    result.revenue = outcome.revenue
    result.demand_level = outcome.demand_level
    result.market_share = outcome.market_share
    result.sold_by_flavor = dict(outcome.sold_by_flavor)
    result.channel_shares = dict(outcome.channel_shares)

    result.unlocked_flavors = _unlock_flavors(state, catalog, sink)

    if rivals_should_activate(state, cfg) and catalog.rivals:
        activate_rivals(state, catalog, cfg, rng)
        result.rivals_activated = True
        names = ", ".join(r.name for r in catalog.rivals.values())
        safe_emit(sink, f"Rivals entered the market: {names}.", "bad")

    _world_event_step(state, cfg, catalog, rng, sink, result)
    result.mission_completed = _mission_step(state, catalog, sink)
    result.unlocked_achievements = _check_achievements(state, catalog, sink)

    run_tick_hooks(extensions, state, result, catalog, sink)

    if online:
        state.last_observed_timestamp = float(now) if now is not None else time.time()

    if own_rng:
        persist_rng_state(state, rng)
    result.cash_after = float(state.cash)
    return result


def simulate_offline(
    state: SimulationState,
    elapsed_seconds: float,
    cfg: Optional[EngineConfig] = None,
    catalog: Catalog = CATALOG,
    sink: Optional[Sink] = None,
    extensions: Iterable[SimulationExtension] = DEFAULT_EXTENSIONS,
    now: Optional[float] = None,
) -> OfflineResult:
    """Replay up to ``max_offline_ticks`` hours for ``elapsed_seconds`` of absence."""

    cfg = cfg or EngineConfig()
    tick_s = float(cfg.tick_seconds) if cfg.tick_seconds > 0 else 1.0
    requested = int(max(0.0, float(elapsed_seconds)) // tick_s)
    ticks = min(requested, max(0, int(cfg.max_offline_ticks)))
    extensions = tuple(extensions)

    out = OfflineResult(ticks=ticks, requested_ticks=requested)
    cash_before = float(state.cash)
    rng = rng_from_state(state)
    for _ in range(ticks):
        r = advance(state, online=False, cfg=cfg, catalog=catalog, rng=rng, sink=sink, extensions=extensions)
        out.produced += r.produced
        out.units_sold += r.units_sold
        out.revenue += r.revenue
        if r.month_recap is not None:
            out.recaps.append(r.month_recap)
    persist_rng_state(state, rng)
    out.cash_delta = float(state.cash) - cash_before
    state.last_observed_timestamp = float(now) if now is not None else time.time()
    return out


def catch_up(
    state: SimulationState,
    now: Optional[float] = None,
    cfg: Optional[EngineConfig] = None,
    catalog: Catalog = CATALOG,
    sink: Optional[Sink] = None,
    extensions: Iterable[SimulationExtension] = DEFAULT_EXTENSIONS,
) -> OfflineResult:
    """Replay the time since ``last_observed_timestamp``; a never-observed state is only stamped."""

    now_f = time.time() if now is None else float(now)
    last = float(state.last_observed_timestamp or 0.0)
    if last <= 0:
        state.last_observed_timestamp = now_f
        return OfflineResult()

    res = simulate_offline(state, now_f - last, cfg=cfg, catalog=catalog, sink=sink, extensions=extensions, now=now_f)
    if res.ticks > 0:
        msg = (
            f"While you were away: {res.ticks}h simulated, {res.produced} bottles produced, "
            f"{res.units_sold} sold, cash {format_money(res.cash_delta, signed=True)}."
        )
        if res.requested_ticks > res.ticks:
            msg += f" (capped from {res.requested_ticks}h)"
        safe_emit(sink, msg, "info")
        logger.info("offline catch-up ran %s of %s ticks", res.ticks, res.requested_ticks)
    return res
