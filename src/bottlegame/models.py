from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bottlegame.config import (
    BASE_CAPACITY_PER_LINE,
    BASE_FIXED_COST_PER_HOUR,
    BASE_STORAGE_CAPACITY,
    DEFAULT_RNG_SEED,
    STARTING_CASH,
    STARTING_HOUR,
    STARTING_RAW_MATERIALS,
)


@dataclass
class Calendar:
    day: int = 1
    hour: int = STARTING_HOUR
    last_month_index: int = 1

    def month_index(self, month_len: int) -> int:
        return (int(self.day) - 1) // max(1, int(month_len)) + 1

    def label(self) -> str:
        return f"Day {self.day}, {int(self.hour):02d}:00"


@dataclass
class Inventory:
    preforms: int = STARTING_RAW_MATERIALS
    labels: int = STARTING_RAW_MATERIALS
    packaging: int = STARTING_RAW_MATERIALS
    bottles: int = 0

    def raw(self, kind: str) -> int:
        return int(getattr(self, kind))

    def add_raw(self, kind: str, qty: int) -> None:
        setattr(self, kind, self.raw(kind) + int(qty))


@dataclass
class FlavorState:
    unlocked: bool = False
    price: float = 2.0
    produced_lifetime: int = 0
    sold_lifetime: int = 0
    monthly_produced: int = 0
    monthly_sold: int = 0


@dataclass
class Stats:
    produced: int = 0
    sold: int = 0
    revenue: float = 0.0
    expenses: float = 0.0

    def add_expense(self, amount: float) -> None:
        self.expenses += float(amount)


@dataclass
class WorldEvent:
    kind: str
    name: str
    remaining_hours: int
    capacity_multiplier: float = 1.0
    demand_multiplier: float = 1.0
    extra_cost_per_hour: float = 0.0


@dataclass
class MissionReward:
    cash: float = 0.0
    prestige_points: float = 0.0


@dataclass
class MissionState:
    active_id: Optional[str] = None
    remaining_hours: int = 0
    pending_reward: Optional[MissionReward] = None


@dataclass
class RivalState:
    active: bool = False
    # rival_id -> channel -> price
    prices: Dict[str, Dict[str, float]] = field(default_factory=dict)
    last_price_day: int = 0


@dataclass
class SimulationState:
    cash: float = STARTING_CASH
    calendar: Calendar = field(default_factory=Calendar)
    inventory: Inventory = field(default_factory=Inventory)

    capacity_per_hour: int = BASE_CAPACITY_PER_LINE
    storage_capacity: int = BASE_STORAGE_CAPACITY
    fixed_cost_per_hour: float = BASE_FIXED_COST_PER_HOUR
    demand_modifier: float = 1.0
    cost_modifier: float = 1.0
    production_lines: int = 1
    warehouses: int = 1
    auto_buy: bool = False

    flavors: Dict[str, FlavorState] = field(default_factory=dict)
    active_flavor_id: str = "classic"
    bottle_format: str = "medium_1000"

    rivals: RivalState = field(default_factory=RivalState)
    world_event: Optional[WorldEvent] = None
    mission: MissionState = field(default_factory=MissionState)

    # Append-only, in acquisition order.
    purchased_upgrades: List[str] = field(default_factory=list)
    owned_equipment: List[str] = field(default_factory=list)
    equipment_spent: float = 0.0
    unlocked_achievements: List[str] = field(default_factory=list)
    unlocked_prestige_nodes: List[str] = field(default_factory=list)

    prestige_currency: float = 0.0
    prestige_spent: int = 0
    prestige_resets: int = 0

    stats: Stats = field(default_factory=Stats)
    monthly: Stats = field(default_factory=Stats)
    in_debt: bool = False

    last_observed_timestamp: float = 0.0

    rng_seed: int = DEFAULT_RNG_SEED
    rng_state: Optional[Any] = None

    def active_flavor(self) -> Optional[FlavorState]:
        return self.flavors.get(self.active_flavor_id)

    def active_price(self, fallback: float) -> float:
        fs = self.active_flavor()
        return float(fs.price) if fs else float(fallback)

    def unlocked_flavor_ids(self) -> List[str]:
        return [fid for fid, fs in self.flavors.items() if fs.unlocked]

    def available_prestige_points(self) -> int:
        return max(0, int(self.prestige_currency) - int(self.prestige_spent))

    def reset_month_trackers(self) -> None:
        self.monthly = Stats()
        for fs in self.flavors.values():
            fs.monthly_produced = 0
            fs.monthly_sold = 0


@dataclass
class MonthRecap:
    month: int
    produced: int = 0
    sold: int = 0
    revenue: float = 0.0
    expenses: float = 0.0

    @property
    def profit(self) -> float:
        return self.revenue - self.expenses


@dataclass
class SalesOutcome:
    units_sold: int = 0
    revenue: float = 0.0
    demand_level: float = 0.0
    market_share: float = 0.0
    sold_by_flavor: Dict[str, int] = field(default_factory=dict)
    revenue_by_flavor: Dict[str, float] = field(default_factory=dict)
    # channel -> player share for the active flavor
    channel_shares: Dict[str, float] = field(default_factory=dict)


@dataclass
class TickResult:
    day: int
    hour: int

    cash_before: float = 0.0
    cash_after: float = 0.0

    fixed_cost: float = 0.0
    procurement_cost: float = 0.0
    produced: int = 0
    storage_blocked: bool = False

    units_sold: int = 0
    revenue: float = 0.0
    demand_level: float = 0.0
    market_share: float = 0.0
    sold_by_flavor: Dict[str, int] = field(default_factory=dict)
    channel_shares: Dict[str, float] = field(default_factory=dict)

    event_started: Optional[str] = None
    event_ended: Optional[str] = None
    rivals_activated: bool = False
    mission_completed: Optional[str] = None
    unlocked_flavors: List[str] = field(default_factory=list)
    unlocked_achievements: List[str] = field(default_factory=list)
    month_recap: Optional[MonthRecap] = None


@dataclass
class OfflineResult:
    ticks: int = 0
    requested_ticks: int = 0
    cash_delta: float = 0.0
    produced: int = 0
    units_sold: int = 0
    revenue: float = 0.0
    recaps: List[MonthRecap] = field(default_factory=list)
