from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple

from bottlegame.config import BASE_CAPACITY_PER_LINE, BASE_STORAGE_CAPACITY, EXTRA_LINE_FIXED_COST
from bottlegame.models import SimulationState

Effect = Callable[[SimulationState], None]
Predicate = Callable[[SimulationState], bool]


def _noop(state: SimulationState) -> None:
    return None


def round_half_up(x: float) -> int:
    return int(math.floor(float(x) + 0.5))


@dataclass(frozen=True)
class FlavorDef:
    flavor_id: str
    name: str
    base_price: float
    demand_multiplier: float = 1.0
    unlock_revenue: float = 0.0


@dataclass(frozen=True)
class UpgradeDef:
    upgrade_id: str
    name: str
    desc: str
    cost: float
    category: str = "other"
    requires: Tuple[str, ...] = ()
    apply: Effect = _noop


@dataclass(frozen=True)
class EquipmentDef:
    equipment_id: str
    name: str
    desc: str
    cost: float
    group: str = "production"  # production|promo
    apply: Effect = _noop


@dataclass(frozen=True)
class AchievementDef:
    achievement_id: str
    label: str
    desc: str
    check: Predicate


@dataclass(frozen=True)
class WorldEventTemplate:
    kind: str
    name: str
    desc: str
    min_hours: int
    max_hours: int
    capacity_multiplier: float = 1.0
    demand_multiplier: float = 1.0
    extra_cost_per_hour: float = 0.0
    # False for events that are only ever triggered by the engine (e.g. storage full).
    random_pool: bool = True


@dataclass(frozen=True)
class MissionDef:
    mission_id: str
    name: str
    desc: str
    duration_hours: int
    bottles_required: int
    reward_cash: float
    reward_prestige: float


@dataclass(frozen=True)
class PrestigeNodeDef:
    node_id: str
    name: str
    desc: str
    cost: int
    apply: Effect = _noop


@dataclass(frozen=True)
class RivalDef:
    rival_id: str
    name: str
    brand_power: float
    strategy: str  # undercut|premium|shadow
    channel_strength: Mapping[str, float] = field(default_factory=dict)

    def strength(self, channel: str) -> float:
        return float(self.channel_strength.get(channel, 1.0))


@dataclass(frozen=True)
class BottleFormatDef:
    format_id: str
    label: str
    price_multiplier: float
    capacity_multiplier: float
    note: str = ""


@dataclass(frozen=True)
class Catalog:
    flavors: Mapping[str, FlavorDef]
    upgrades: Mapping[str, UpgradeDef]
    equipment: Mapping[str, EquipmentDef]
    achievements: Mapping[str, AchievementDef]
    world_events: Mapping[str, WorldEventTemplate]
    missions: Mapping[str, MissionDef]
    prestige_nodes: Mapping[str, PrestigeNodeDef]
    rivals: Mapping[str, RivalDef]
    bottle_formats: Mapping[str, BottleFormatDef]

    def event_pool(self) -> Tuple[WorldEventTemplate, ...]:
        return tuple(t for t in self.world_events.values() if t.random_pool)


class CatalogBuilder:
    """Collects catalog entries from feature modules, then freezes them."""

    def __init__(self) -> None:
        self._flavors: Dict[str, FlavorDef] = {}
        self._upgrades: Dict[str, UpgradeDef] = {}
        self._equipment: Dict[str, EquipmentDef] = {}
        self._achievements: Dict[str, AchievementDef] = {}
        self._world_events: Dict[str, WorldEventTemplate] = {}
        self._missions: Dict[str, MissionDef] = {}
        self._prestige_nodes: Dict[str, PrestigeNodeDef] = {}
        self._rivals: Dict[str, RivalDef] = {}
        self._bottle_formats: Dict[str, BottleFormatDef] = {}

    @staticmethod
    def _put(bucket: Dict, key: str, value: object) -> None:
        if key in bucket:
            raise ValueError(f"duplicate catalog id: {key}")
        bucket[key] = value

    def add_flavor(self, d: FlavorDef) -> "CatalogBuilder":
        self._put(self._flavors, d.flavor_id, d)
        return self

    def add_upgrade(self, d: UpgradeDef) -> "CatalogBuilder":
        self._put(self._upgrades, d.upgrade_id, d)
        return self

    def add_equipment(self, d: EquipmentDef) -> "CatalogBuilder":
        self._put(self._equipment, d.equipment_id, d)
        return self

    def add_achievement(self, d: AchievementDef) -> "CatalogBuilder":
        self._put(self._achievements, d.achievement_id, d)
        return self

    def add_world_event(self, d: WorldEventTemplate) -> "CatalogBuilder":
        self._put(self._world_events, d.kind, d)
        return self

    def add_mission(self, d: MissionDef) -> "CatalogBuilder":
        self._put(self._missions, d.mission_id, d)
        return self

    def add_prestige_node(self, d: PrestigeNodeDef) -> "CatalogBuilder":
        self._put(self._prestige_nodes, d.node_id, d)
        return self

    def add_rival(self, d: RivalDef) -> "CatalogBuilder":
        self._put(self._rivals, d.rival_id, d)
        return self

    def add_bottle_format(self, d: BottleFormatDef) -> "CatalogBuilder":
        self._put(self._bottle_formats, d.format_id, d)
        return self

    def build(self) -> Catalog:
        if not self._flavors:
            raise ValueError("catalog needs at least one flavor")
        for u in self._upgrades.values():
            for req in u.requires:
                if req not in self._upgrades:
                    raise ValueError(f"upgrade {u.upgrade_id} requires unknown upgrade {req}")
        return Catalog(
            flavors=MappingProxyType(dict(self._flavors)),
            upgrades=MappingProxyType(dict(self._upgrades)),
            equipment=MappingProxyType(dict(self._equipment)),
            achievements=MappingProxyType(dict(self._achievements)),
            world_events=MappingProxyType(dict(self._world_events)),
            missions=MappingProxyType(dict(self._missions)),
            prestige_nodes=MappingProxyType(dict(self._prestige_nodes)),
            rivals=MappingProxyType(dict(self._rivals)),
            bottle_formats=MappingProxyType(dict(self._bottle_formats)),
        )


# ---------------------------------------------------------------------------
# Products & market
# ---------------------------------------------------------------------------


def register_products(b: CatalogBuilder) -> None:
    b.add_flavor(FlavorDef("classic", "Classic Cola", base_price=2.0, demand_multiplier=1.0, unlock_revenue=0.0))
    b.add_flavor(FlavorDef("cherry", "Cherry Cola", base_price=2.2, demand_multiplier=1.1, unlock_revenue=20_000.0))
    b.add_flavor(FlavorDef("zero", "Zero Sugar", base_price=2.1, demand_multiplier=1.05, unlock_revenue=40_000.0))
    b.add_flavor(FlavorDef("lime", "Lime Twist", base_price=2.4, demand_multiplier=1.2, unlock_revenue=80_000.0))

    b.add_bottle_format(BottleFormatDef("small_500", "0.5L On-the-go", 0.85, 1.1, "Cheaper, high volume. Great for kiosks."))
    b.add_bottle_format(BottleFormatDef("medium_1000", "1.0L Standard", 1.0, 1.0, "Balanced line speed vs. margin."))
    b.add_bottle_format(BottleFormatDef("family_1500", "1.5L Family Pack", 1.25, 0.9, "Higher price, slightly slower handling."))


def register_rivals(b: CatalogBuilder) -> None:
    b.add_rival(
        RivalDef(
            "discounters",
            "BudgetFizz",
            brand_power=0.7,
            strategy="undercut",
            channel_strength=MappingProxyType({"supermarket": 1.1, "kiosk": 1.0, "vending": 0.9, "stadium": 0.8}),
        )
    )
    b.add_rival(
        RivalDef(
            "premium",
            "RoyalCola",
            brand_power=1.3,
            strategy="premium",
            channel_strength=MappingProxyType({"supermarket": 1.0, "kiosk": 0.9, "vending": 1.0, "stadium": 1.2}),
        )
    )
    b.add_rival(
        RivalDef(
            "copycat",
            "ColaMax",
            brand_power=1.0,
            strategy="shadow",
            channel_strength=MappingProxyType({"supermarket": 1.0, "kiosk": 1.1, "vending": 1.1, "stadium": 1.0}),
        )
    )


# ---------------------------------------------------------------------------
# Upgrades
# ---------------------------------------------------------------------------


def _add_line(target: int) -> Effect:
    def apply(state: SimulationState) -> None:
        if state.production_lines >= target:
            return
        added = target - state.production_lines
        state.production_lines = target
        state.capacity_per_hour += BASE_CAPACITY_PER_LINE * added
        state.fixed_cost_per_hour += EXTRA_LINE_FIXED_COST * added

    return apply


def _add_warehouse(target: int) -> Effect:
    def apply(state: SimulationState) -> None:
        if state.warehouses >= target:
            return
        added = target - state.warehouses
        state.warehouses = target
        state.storage_capacity += BASE_STORAGE_CAPACITY * added

    return apply


def _enable_auto_buy(state: SimulationState) -> None:
    state.auto_buy = True


def _scale_demand(factor: float) -> Effect:
    def apply(state: SimulationState) -> None:
        state.demand_modifier *= factor

    return apply


def _scale_cost(factor: float) -> Effect:
    def apply(state: SimulationState) -> None:
        state.cost_modifier *= factor

    return apply


def _scale_capacity(factor: float) -> Effect:
    def apply(state: SimulationState) -> None:
        state.capacity_per_hour = round_half_up(state.capacity_per_hour * factor)

    return apply


def _energy_program(state: SimulationState) -> None:
    state.fixed_cost_per_hour = float(max(1, round_half_up(state.fixed_cost_per_hour * 0.9)))


def register_upgrades(b: CatalogBuilder) -> None:
    b.add_upgrade(
        UpgradeDef("line_2", "Second Production Line", "Add a second line: +25 bottles/hour, +$15/hour upkeep.", 10_000.0,
                   category="production", apply=_add_line(2))
    )
    b.add_upgrade(
        UpgradeDef("line_3", "Third Production Line", "Add a third line: +25 bottles/hour, +$15/hour upkeep.", 25_000.0,
                   category="production", requires=("line_2",), apply=_add_line(3))
    )
    b.add_upgrade(
        UpgradeDef("warehouse_2", "Warehouse Expansion II", "+2,000 bottles of storage.", 15_000.0,
                   category="storage", apply=_add_warehouse(2))
    )
    b.add_upgrade(
        UpgradeDef("warehouse_3", "Warehouse Expansion III", "+2,000 more bottles of storage.", 35_000.0,
                   category="storage", requires=("warehouse_2",), apply=_add_warehouse(3))
    )
    b.add_upgrade(
        UpgradeDef("auto_buy", "Auto Procurement System", "Keeps preforms, labels and packaging topped up.", 5_000.0,
                   category="automation", apply=_enable_auto_buy)
    )
    b.add_upgrade(
        UpgradeDef("marketing_push", "Citywide Marketing Campaign", "+15% demand.", 8_000.0,
                   category="marketing", apply=_scale_demand(1.15))
    )
    b.add_upgrade(
        UpgradeDef("marketing_blitz", "Regional Marketing Blitz", "+20% demand.", 20_000.0,
                   category="marketing", requires=("marketing_push",), apply=_scale_demand(1.20))
    )
    b.add_upgrade(
        UpgradeDef("energy_efficiency", "Energy Efficiency Program", "-10% hourly fixed costs.", 9_000.0,
                   category="efficiency", apply=_energy_program)
    )
    b.add_upgrade(
        UpgradeDef("bulk_purchasing", "Bulk Purchasing Discount", "-5% cost modifier.", 12_000.0,
                   category="efficiency", apply=_scale_cost(0.95))
    )
    b.add_upgrade(
        UpgradeDef("quality_control", "Quality Control Systems", "+5% capacity.", 18_000.0,
                   category="efficiency", apply=_scale_capacity(1.05))
    )


# ---------------------------------------------------------------------------
# Equipment
# ---------------------------------------------------------------------------


def _inline_inspection(state: SimulationState) -> None:
    state.capacity_per_hour = round_half_up(state.capacity_per_hour * 1.05)
    state.cost_modifier *= 0.97


def _energy_recovery(state: SimulationState) -> None:
    state.fixed_cost_per_hour = float(max(0, round_half_up(state.fixed_cost_per_hour * 0.9)))


def _billboard(state: SimulationState) -> None:
    state.demand_modifier *= 1.08
    state.fixed_cost_per_hour += 5.0


def register_equipment(b: CatalogBuilder) -> None:
    b.add_equipment(
        EquipmentDef("neck_trimmer", "Neck Trimmer Station", "+10% effective capacity.", 6_500.0,
                     group="production", apply=_scale_capacity(1.10))
    )
    b.add_equipment(
        EquipmentDef("inline_inspection", "Inline Inspection Camera", "+5% capacity, -3% cost modifier.", 12_000.0,
                     group="production", apply=_inline_inspection)
    )
    b.add_equipment(
        EquipmentDef("energy_recovery", "Energy Recovery System", "-10% hourly fixed costs.", 18_000.0,
                     group="production", apply=_energy_recovery)
    )
    b.add_equipment(
        EquipmentDef("cooler_fridge", "Branded Cooler Fridges", "+6% demand.", 9_000.0,
                     group="promo", apply=_scale_demand(1.06))
    )
    b.add_equipment(
        EquipmentDef("billboard_city", "City Billboard Pack", "+8% demand, +$5/hour fixed cost.", 16_000.0,
                     group="promo", apply=_billboard)
    )
    # No immediate effect: the market model checks ownership during heatwaves.
    b.add_equipment(
        EquipmentDef("music_truck", "Promo Music Truck", "+10% demand during heatwaves.", 22_000.0, group="promo")
    )


# ---------------------------------------------------------------------------
# Achievements
# ---------------------------------------------------------------------------


def register_achievements(b: CatalogBuilder) -> None:
    entries = [
        ("first_sale", "First Sale", "Sell your first bottle.", lambda s: s.stats.sold >= 1),
        ("ten_k_sold", "10k Sold", "Sell 10,000 bottles.", lambda s: s.stats.sold >= 10_000),
        ("hundred_k_sold", "100k Sold", "Sell 100,000 bottles.", lambda s: s.stats.sold >= 100_000),
        ("million_sold", "One Million Bottles", "Sell 1,000,000 bottles.", lambda s: s.stats.sold >= 1_000_000),
        ("turnover_1k", "Turnover: $1,000", "Earn $1,000 in revenue.", lambda s: s.stats.revenue >= 1_000),
        ("turnover_100k", "Turnover: $100,000", "Earn $100,000 in revenue.", lambda s: s.stats.revenue >= 100_000),
        ("bottles_10k", "10,000 Bottles Produced", "Produce 10,000 bottles.", lambda s: s.stats.produced >= 10_000),
        ("bottles_50k", "50,000 Bottles Produced", "Produce 50,000 bottles.", lambda s: s.stats.produced >= 50_000),
        ("rich", "First 100k", "Hold $100,000 in cash.", lambda s: s.cash >= 100_000),
        ("full_lineup", "Full Lineup", "Unlock every flavor.",
         lambda s: bool(s.flavors) and all(fs.unlocked for fs in s.flavors.values())),
        ("legacy_1", "First Legacy", "Secure your first Brand Legacy point.", lambda s: s.prestige_currency >= 1),
        ("legacy_2x", "Brand Legacy x2", "Reach 2 Brand Legacy.", lambda s: s.prestige_currency >= 2),
    ]
    for aid, label, desc, check in entries:
        b.add_achievement(AchievementDef(aid, label, desc, check))


# ---------------------------------------------------------------------------
# World events
# ---------------------------------------------------------------------------

STORAGE_FULL_EVENT = "storage_full"


def register_world_events(b: CatalogBuilder) -> None:
    b.add_world_event(
        WorldEventTemplate("sugar_tax", "Sugar Tax Proposal",
                           "A sugar tax is proposed. Demand dips while retailers hesitate.",
                           min_hours=12, max_hours=36, demand_multiplier=0.8)
    )
    b.add_world_event(
        WorldEventTemplate("strike", "Partial Strike",
                           "Workers are unhappy. Capacity is reduced until an agreement is reached.",
                           min_hours=8, max_hours=24, capacity_multiplier=0.6)
    )
    b.add_world_event(
        WorldEventTemplate("heatwave", "Heatwave", "Scorching weather spikes cola demand across the city.",
                           min_hours=6, max_hours=18, demand_multiplier=1.5)
    )
    b.add_world_event(
        WorldEventTemplate(STORAGE_FULL_EVENT, "Warehouse Overflow",
                           "The warehouse is full. Overflow pallets are stored at a rented depot.",
                           min_hours=4, max_hours=8, extra_cost_per_hour=15.0, random_pool=False)
    )


# ---------------------------------------------------------------------------
# Missions
# ---------------------------------------------------------------------------


def register_missions(b: CatalogBuilder) -> None:
    b.add_mission(MissionDef("stadium_promo", "Stadium Promotion", "Sponsor the big game.", 8, 200, 8_000.0, 0.10))
    b.add_mission(
        MissionDef("music_festival", "Summer Music Festival", "Sponsor a stage at the city festival.", 10, 400, 14_000.0, 0.18)
    )
    b.add_mission(
        MissionDef("campus_takeover", "Campus Takeover", "Give away bottles at universities.", 12, 350, 9_000.0, 0.25)
    )
    b.add_mission(
        MissionDef("night_run", "City Night Run", "Sponsor a marathon with refreshment stations.", 8, 300, 11_000.0, 0.20)
    )


# ---------------------------------------------------------------------------
# Prestige tree
# ---------------------------------------------------------------------------


def _legacy_auto_buy(state: SimulationState) -> None:
    state.auto_buy = True
    if "auto_buy" not in state.purchased_upgrades:
        state.purchased_upgrades.append("auto_buy")


def _legacy_storage(state: SimulationState) -> None:
    state.storage_capacity += 300


def _legacy_capacity(state: SimulationState) -> None:
    state.capacity_per_hour += 15


def register_prestige_nodes(b: CatalogBuilder) -> None:
    b.add_prestige_node(
        PrestigeNodeDef("legacy_auto_buy", "Legacy Procurement", "Auto-buy is always available in fresh runs.", 1,
                        apply=_legacy_auto_buy)
    )
    b.add_prestige_node(
        PrestigeNodeDef("legacy_storage", "Legacy Warehousing", "+300 base storage capacity every run.", 2,
                        apply=_legacy_storage)
    )
    b.add_prestige_node(
        PrestigeNodeDef("legacy_demand", "Legacy Branding", "Permanent +5% demand modifier.", 2,
                        apply=_scale_demand(1.05))
    )
    b.add_prestige_node(
        PrestigeNodeDef("legacy_capacity", "Legacy Line Tuning", "Permanent +15 bottles/hour.", 3,
                        apply=_legacy_capacity)
    )


def build_default_catalog(extra: Optional[Callable[[CatalogBuilder], None]] = None) -> Catalog:
    b = CatalogBuilder()
    register_products(b)
    register_rivals(b)
    register_upgrades(b)
    register_equipment(b)
    register_achievements(b)
    register_world_events(b)
    register_missions(b)
    register_prestige_nodes(b)
    if extra is not None:
        extra(b)
    return b.build()


CATALOG = build_default_catalog()
