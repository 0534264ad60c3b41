from __future__ import annotations

from typing import Iterable, List, Optional

from bottlegame.catalog import CATALOG, Catalog
from bottlegame.config import BASE_MARKET_PRICE, CHANNELS, RAW_MATERIALS, SUPPLY_COST, EngineConfig
from bottlegame.extensions import DEFAULT_EXTENSIONS, SimulationExtension, render_panels
from bottlegame.market import brand_power, channel_demand, effective_price, player_shares, rival_price
from bottlegame.models import MonthRecap, OfflineResult, SimulationState, TickResult


def format_money(x: float, signed: bool = False) -> str:
    x = float(x)
    sign = "-" if x < 0 else ("+" if signed and x > 0 else "")
    return f"{sign}${abs(x):,.2f}"


def unit_margin(state: SimulationState) -> float:
    """Effective selling price minus material cost for one bottle of the active flavor."""

    price = effective_price(state.active_price(BASE_MARKET_PRICE), state.cost_modifier)
    materials = sum(SUPPLY_COST[k] for k in RAW_MATERIALS) * float(state.cost_modifier)
    return price - materials


def break_even_units_per_hour(state: SimulationState) -> float:
    """Bottles per hour needed to cover fixed costs; inf when each bottle loses money."""

    margin = unit_margin(state)
    if margin <= 0:
        return float("inf")
    fixed = float(state.fixed_cost_per_hour)
    if state.world_event is not None:
        fixed += float(state.world_event.extra_cost_per_hour)
    return fixed / margin


def status_lines(
    state: SimulationState,
    catalog: Catalog = CATALOG,
    extensions: Iterable[SimulationExtension] = DEFAULT_EXTENSIONS,
) -> List[str]:
    inv = state.inventory
    lines = [
        f"=== {state.calendar.label()} (month {state.calendar.last_month_index}) ===",
        f"Cash: {format_money(state.cash)}",
        f"Stock: {inv.bottles}/{state.storage_capacity} bottles  "
        f"Preforms {inv.preforms}  Labels {inv.labels}  Packaging {inv.packaging}",
        f"Capacity: {state.capacity_per_hour}/h on {state.production_lines} line(s)  "
        f"Fixed cost: {format_money(state.fixed_cost_per_hour)}/h  Auto-buy: {'on' if state.auto_buy else 'off'}",
        f"Demand x{state.demand_modifier:.3f}  Cost x{state.cost_modifier:.3f}  Brand power x{brand_power(state):.2f}",
    ]
    flavor_bits = []
    for fid, fs in state.flavors.items():
        fdef = catalog.flavors.get(fid)
        name = fdef.name if fdef else fid
        if not fs.unlocked:
            need = format_money(fdef.unlock_revenue) if fdef else "?"
            flavor_bits.append(f"{name} (locked, {need} revenue)")
            continue
        mark = "*" if fid == state.active_flavor_id else ""
        flavor_bits.append(f"{mark}{name} {format_money(fs.price)}")
    lines.append("Flavors: " + ", ".join(flavor_bits))

    if state.world_event is not None:
        ev = state.world_event
        lines.append(f"Event: {ev.name} ({ev.remaining_hours}h left)")
    ms = state.mission
    if ms.active_id:
        mdef = catalog.missions.get(ms.active_id)
        lines.append(f"Mission: {mdef.name if mdef else ms.active_id} ({ms.remaining_hours}h left)")
    if ms.pending_reward is not None:
        r = ms.pending_reward
        lines.append(f"Reward ready: {format_money(r.cash)} + {r.prestige_points:.2f} legacy")
    lines.append(
        f"Lifetime: produced {state.stats.produced}, sold {state.stats.sold}, "
        f"revenue {format_money(state.stats.revenue)}  Legacy {state.prestige_currency:.2f} "
        f"({state.available_prestige_points()} pts free)"
    )
    lines.extend(render_panels(extensions, state, catalog))
    return lines


def market_lines(state: SimulationState, catalog: Catalog = CATALOG, cfg: Optional[EngineConfig] = None) -> List[str]:
    cfg = cfg or EngineConfig()
    price = state.active_price(BASE_MARKET_PRICE)
    demand = channel_demand(state)
    shares = player_shares(state, price, catalog, cfg)
    lines = [f"=== Market (your price {format_money(price)}) ==="]
    for ch in CHANNELS:
        row = f"{ch:<12} demand {demand[ch]:>8.0f}/h  your share {shares[ch] * 100:5.1f}%"
        if state.rivals.active:
            rivals = "  ".join(
                f"{rdef.name} {format_money(rival_price(state, rid, ch, price))}" for rid, rdef in catalog.rivals.items()
            )
            row += f"  | {rivals}"
        lines.append(row)
    if not state.rivals.active:
        lines.append("No rivals yet.")
    be = break_even_units_per_hour(state)
    be_txt = "n/a (selling below cost)" if be == float("inf") else f"{be:.1f} bottles/h"
    lines.append(f"Unit margin {format_money(unit_margin(state))}  Break-even {be_txt}")
    return lines


def print_status(
    state: SimulationState,
    catalog: Catalog = CATALOG,
    extensions: Iterable[SimulationExtension] = DEFAULT_EXTENSIONS,
) -> None:
    print("\n" + "\n".join(status_lines(state, catalog, extensions)))


def print_market(state: SimulationState, catalog: Catalog = CATALOG, cfg: Optional[EngineConfig] = None) -> None:
    print("\n" + "\n".join(market_lines(state, catalog, cfg)))


def print_tick(result: TickResult) -> None:
    print(
        f"Day {result.day} {result.hour:02d}:00  produced {result.produced}  sold {result.units_sold}  "
        f"revenue {format_money(result.revenue)}  costs {format_money(result.fixed_cost + result.procurement_cost)}  "
        f"cash {format_money(result.cash_after)}"
    )


def print_month_recap(recap: MonthRecap) -> None:
    print(f"\n=== Month {recap.month} ===")
    print(f"Produced: {recap.produced}  Sold: {recap.sold}")
    print(f"Revenue: {format_money(recap.revenue)}  Expenses: {format_money(recap.expenses)}")
    print(f"Profit: {format_money(recap.profit)}")


def print_offline(result: OfflineResult) -> None:
    if result.ticks <= 0:
        return
    print(f"\nWelcome back! {result.ticks}h simulated while you were away.")
    if result.requested_ticks > result.ticks:
        print(f"(Capped; {result.requested_ticks}h had elapsed.)")
    print(f"Produced {result.produced}, sold {result.units_sold}, cash {format_money(result.cash_delta, signed=True)}")
