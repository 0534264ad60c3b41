from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

# Raw material unit costs (per bottle's worth of input).
SUPPLY_COST: Dict[str, float] = {
    "preforms": 0.25,
    "labels": 0.05,
    "packaging": 0.10,
}
RAW_MATERIALS: Tuple[str, ...] = ("preforms", "labels", "packaging")

BASE_MARKET_PRICE = 2.0
BASE_CAPACITY_PER_LINE = 25
BASE_STORAGE_CAPACITY = 2000
BASE_FIXED_COST_PER_HOUR = 40.0
EXTRA_LINE_FIXED_COST = 15.0

STARTING_CASH = 2500.0
STARTING_RAW_MATERIALS = 500
STARTING_HOUR = 8

CHANNELS: Tuple[str, ...] = ("supermarket", "kiosk", "vending", "stadium")
BASE_DEMAND_PER_CHANNEL: Dict[str, float] = {
    "supermarket": 1000.0,
    "kiosk": 600.0,
    "vending": 400.0,
    "stadium": 800.0,
}

# Prestige scaling
BRAND_POWER_PER_PRESTIGE = 0.03
PRESTIGE_GAIN_PER_RESET = 1.0
PRESTIGE_CASH_BONUS = 0.25
PRESTIGE_CAPACITY_BONUS = 5
PRESTIGE_DEMAND_BONUS = 0.10

SEVERITIES = ("good", "bad", "info")

DEFAULT_RNG_SEED = 20260101


@dataclass
class EngineConfig:
    tick_seconds: float = 1.0
    max_offline_ticks: int = 3600
    month_len_days: int = 30

    event_probability: float = 0.03

    rival_revenue_threshold: float = 40_000.0
    rival_sold_threshold: int = 8_000
    rival_initial_price_min: float = 2.3
    rival_initial_price_max: float = 2.9
    rival_jitter: float = 0.05

    prestige_revenue_threshold: float = 250_000.0

    # Auto procurement tops each material up to capacity * multiple.
    procurement_multiple: int = 4

    price_floor: float = 0.3
    max_price: float = 100.0

    log_capacity: int = 100


def project_root() -> Path:
    # .../src/bottlegame/config.py -> parents[2] == project root
    return Path(__file__).resolve().parents[2]


def data_dir(override: Optional[str] = None) -> Path:
    raw = override or os.environ.get("BOTTLEGAME_DATA_DIR")
    p = Path(raw) if raw else project_root() / "data"
    p.mkdir(parents=True, exist_ok=True)
    return p
