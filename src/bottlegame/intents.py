from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from bottlegame.catalog import CATALOG, Catalog
from bottlegame.config import RAW_MATERIALS, EngineConfig
from bottlegame.engine import material_unit_cost
from bottlegame.eventlog import Sink, safe_emit
from bottlegame.models import SimulationState
from bottlegame.reporting import format_money

INSUFFICIENT_FUNDS = "insufficient_funds"
INVALID_INTENT = "invalid_intent"


@dataclass
class IntentResult:
    ok: bool
    code: Optional[str] = None
    message: str = ""

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def _done(sink: Optional[Sink], message: str, severity: str = "good") -> IntentResult:
    safe_emit(sink, message, severity)
    return IntentResult(ok=True, message=message)


def _reject(sink: Optional[Sink], code: str, message: str) -> IntentResult:
    safe_emit(sink, message, "bad")
    return IntentResult(ok=False, code=code, message=message)


def buy_materials(state: SimulationState, kind: str, qty: int, sink: Optional[Sink] = None) -> IntentResult:
    if kind not in RAW_MATERIALS:
        return _reject(sink, INVALID_INTENT, f"Unknown material: {kind}")
    try:
        n = int(qty)
    except (TypeError, ValueError):
        return _reject(sink, INVALID_INTENT, f"Invalid quantity: {qty}")
    if n <= 0:
        return _reject(sink, INVALID_INTENT, "Quantity must be positive.")
    cost = n * material_unit_cost(state, kind)
    if cost > state.cash:
        return _reject(sink, INSUFFICIENT_FUNDS, f"Not enough cash for {n} {kind} ({format_money(cost)}).")
    state.cash -= cost
    state.inventory.add_raw(kind, n)
    state.stats.add_expense(cost)
    state.monthly.add_expense(cost)
    return _done(sink, f"Bought {n} {kind} for {format_money(cost)}.", "info")


def set_auto_buy(state: SimulationState, enabled: bool, sink: Optional[Sink] = None) -> IntentResult:
    if "auto_buy" not in state.purchased_upgrades:
        return _reject(sink, INVALID_INTENT, "Auto procurement is not installed yet.")
    state.auto_buy = bool(enabled)
    return _done(sink, f"Auto procurement {'enabled' if state.auto_buy else 'paused'}.", "info")


def set_active_flavor(
    state: SimulationState, flavor_id: str, catalog: Catalog = CATALOG, sink: Optional[Sink] = None
) -> IntentResult:
    fdef = catalog.flavors.get(flavor_id)
    fs = state.flavors.get(flavor_id)
    if fdef is None or fs is None:
        return _reject(sink, INVALID_INTENT, f"Unknown flavor: {flavor_id}")
    if not fs.unlocked:
        return _reject(sink, INVALID_INTENT, f"{fdef.name} is still locked.")
    state.active_flavor_id = flavor_id
    return _done(sink, f"Now bottling {fdef.name}.", "info")


def set_price(
    state: SimulationState, price: float, cfg: Optional[EngineConfig] = None, sink: Optional[Sink] = None
) -> IntentResult:
    cfg = cfg or EngineConfig()
    try:
        p = float(price)
    except (TypeError, ValueError):
        return _reject(sink, INVALID_INTENT, f"Invalid price: {price}")
    if not math.isfinite(p) or p <= 0 or p > float(cfg.max_price):
        return _reject(sink, INVALID_INTENT, f"Price must be between $0.01 and {format_money(cfg.max_price)}.")
    fs = state.active_flavor()
    if fs is None:
        return _reject(sink, INVALID_INTENT, "No active flavor.")
    fs.price = max(0.01, round(p, 2))
    return _done(sink, f"Price set to {format_money(fs.price)}.", "info")


def set_bottle_format(
    state: SimulationState, format_id: str, catalog: Catalog = CATALOG, sink: Optional[Sink] = None
) -> IntentResult:
    fmt = catalog.bottle_formats.get(format_id)
    if fmt is None:
        return _reject(sink, INVALID_INTENT, f"Unknown bottle format: {format_id}")
    if state.bottle_format == format_id:
        return _reject(sink, INVALID_INTENT, f"Already bottling {fmt.label}.")
    state.bottle_format = format_id
    # Switching repackages every flavor at the format's price point.
    for fid, fs in state.flavors.items():
        fdef = catalog.flavors.get(fid)
        if fdef is not None:
            fs.price = round(fdef.base_price * fmt.price_multiplier, 2)
    return _done(sink, f"Switched bottle format to {fmt.label}.")


def purchase_upgrade(
    state: SimulationState, upgrade_id: str, catalog: Catalog = CATALOG, sink: Optional[Sink] = None
) -> IntentResult:
    u = catalog.upgrades.get(upgrade_id)
    if u is None:
        return _reject(sink, INVALID_INTENT, f"Unknown upgrade: {upgrade_id}")
    if upgrade_id in state.purchased_upgrades:
        return _reject(sink, INVALID_INTENT, f"{u.name} is already owned.")
    missing = [r for r in u.requires if r not in state.purchased_upgrades]
    if missing:
        names = ", ".join(catalog.upgrades[r].name for r in missing)
        return _reject(sink, INVALID_INTENT, f"{u.name} requires {names}.")
    if state.cash < u.cost:
        return _reject(sink, INSUFFICIENT_FUNDS, f"Not enough cash for {u.name} ({format_money(u.cost)}).")
    state.cash -= u.cost
    state.purchased_upgrades.append(upgrade_id)
    u.apply(state)
    return _done(sink, f"Purchased {u.name}.")


def purchase_equipment(
    state: SimulationState, equipment_id: str, catalog: Catalog = CATALOG, sink: Optional[Sink] = None
) -> IntentResult:
    e = catalog.equipment.get(equipment_id)
    if e is None:
        return _reject(sink, INVALID_INTENT, f"Unknown equipment: {equipment_id}")
    if equipment_id in state.owned_equipment:
        return _reject(sink, INVALID_INTENT, f"{e.name} is already installed.")
    if state.cash < e.cost:
        return _reject(sink, INSUFFICIENT_FUNDS, f"Not enough cash for {e.name} ({format_money(e.cost)}).")
    state.cash -= e.cost
    state.equipment_spent += e.cost
    state.owned_equipment.append(equipment_id)
    e.apply(state)
    return _done(sink, f"Installed {e.name}.")


def purchase_prestige_node(
    state: SimulationState, node_id: str, catalog: Catalog = CATALOG, sink: Optional[Sink] = None
) -> IntentResult:
    node = catalog.prestige_nodes.get(node_id)
    if node is None:
        return _reject(sink, INVALID_INTENT, f"Unknown legacy perk: {node_id}")
    if node_id in state.unlocked_prestige_nodes:
        return _reject(sink, INVALID_INTENT, f"{node.name} is already unlocked.")
    if state.available_prestige_points() < node.cost:
        return _reject(sink, INSUFFICIENT_FUNDS, f"{node.name} needs {node.cost} legacy point(s).")
    state.prestige_spent += int(node.cost)
    state.unlocked_prestige_nodes.append(node_id)
    node.apply(state)
    return _done(sink, f"Legacy perk unlocked: {node.name}.")


def start_mission(
    state: SimulationState, mission_id: str, catalog: Catalog = CATALOG, sink: Optional[Sink] = None
) -> IntentResult:
    m = catalog.missions.get(mission_id)
    if m is None:
        return _reject(sink, INVALID_INTENT, f"Unknown mission: {mission_id}")
    if state.mission.active_id:
        return _reject(sink, INVALID_INTENT, "Another mission is already running.")
    if state.mission.pending_reward is not None:
        return _reject(sink, INVALID_INTENT, "Claim the previous mission reward first.")
    if state.inventory.bottles < m.bottles_required:
        return _reject(sink, INVALID_INTENT, f"{m.name} needs {m.bottles_required} bottles in stock.")
    state.inventory.bottles -= m.bottles_required
    state.mission.active_id = mission_id
    state.mission.remaining_hours = int(m.duration_hours)
    return _done(sink, f"Mission started: {m.name} ({m.duration_hours}h, {m.bottles_required} bottles).", "info")


def claim_mission_reward(state: SimulationState, sink: Optional[Sink] = None) -> IntentResult:
    reward = state.mission.pending_reward
    if reward is None:
        return _reject(sink, INVALID_INTENT, "No mission reward to claim.")
    state.cash += float(reward.cash)
    state.prestige_currency += max(0.0, float(reward.prestige_points))
    state.mission.pending_reward = None
    return _done(
        sink, f"Reward claimed: {format_money(reward.cash)} and {reward.prestige_points:.2f} legacy."
    )
