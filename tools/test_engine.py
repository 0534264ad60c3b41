from __future__ import annotations

import random
from dataclasses import asdict
from typing import List, Tuple

from bottlegame.catalog import CATALOG
from bottlegame.config import EngineConfig
from bottlegame.engine import advance, effective_capacity
from bottlegame.extensions import DEFAULT_EXTENSIONS, SimulationExtension
from bottlegame.models import SimulationState, WorldEvent
from bottlegame.presets import new_game_state

QUIET = EngineConfig(event_probability=0.0)


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


def _close(a: float, b: float, tol: float = 1e-6) -> bool:
    return abs(float(a) - float(b)) <= tol


def _empty_raw(s: SimulationState) -> SimulationState:
    s.inventory.preforms = 0
    s.inventory.labels = 0
    s.inventory.packaging = 0
    return s


class _Collect:
    def __init__(self) -> None:
        self.items: List[Tuple[str, str]] = []

    def __call__(self, message: str, severity: str) -> None:
        self.items.append((message, severity))


def test_no_materials_only_fixed_cost() -> None:
    s = _empty_raw(new_game_state(seed=1))
    r = advance(s, online=False, cfg=QUIET)
    _assert(r.produced == 0, f"expected no production, got {r.produced}")
    _assert(r.units_sold == 0, "nothing to sell")
    _assert(_close(r.fixed_cost, 40.0), f"fixed cost {r.fixed_cost}")
    _assert(_close(s.cash, 2460.0), f"cash should drop by fixed cost only, got {s.cash}")


def test_sales_credit_exactly_units_times_price() -> None:
    s = _empty_raw(new_game_state(seed=2))
    s.inventory.bottles = 100
    _assert(_close(s.flavors["classic"].price, 2.0), "starter price is 2.00")
    r = advance(s, online=False, cfg=QUIET)
    _assert(r.units_sold == 100, f"demand far exceeds stock, expected 100 sold, got {r.units_sold}")
    _assert(_close(r.revenue, 200.0), f"revenue {r.revenue}")
    _assert(_close(s.cash, 2500.0 - 40.0 + 200.0), f"cash {s.cash}")
    _assert(s.inventory.bottles == 0, "stock depleted")
    _assert(s.flavors["classic"].sold_lifetime == 100, "per-flavor sold counter")


def test_flavor_unlocks_once_with_log() -> None:
    s = _empty_raw(new_game_state(seed=3))
    s.stats.revenue = 19_990.0
    s.inventory.bottles = 100
    sink = _Collect()
    r = advance(s, online=False, cfg=QUIET, sink=sink)
    _assert("cherry" in r.unlocked_flavors, f"cherry should unlock, got {r.unlocked_flavors}")
    _assert(s.flavors["cherry"].unlocked, "flag flipped")
    _assert(not s.flavors["zero"].unlocked, "zero threshold not reached")
    hits = [m for m, _ in sink.items if "Cherry Cola" in m]
    _assert(len(hits) == 1, f"expected one unlock message, got {hits}")

    r2 = advance(s, online=False, cfg=QUIET, sink=sink)
    _assert(r2.unlocked_flavors == [], "no second unlock")
    hits = [m for m, _ in sink.items if "Cherry Cola" in m]
    _assert(len(hits) == 1, "unlock message not repeated")


def test_full_storage_starts_overflow_event() -> None:
    s = new_game_state(seed=4)
    s.inventory.bottles = s.storage_capacity
    r = advance(s, online=False, cfg=QUIET)
    _assert(r.produced == 0, "no room, no production")
    _assert(r.storage_blocked, "storage flagged as the binding constraint")
    _assert(r.event_started == "storage_full", f"event_started {r.event_started}")
    _assert(s.world_event is not None and s.world_event.kind == "storage_full", "overflow event active")
    _assert(s.world_event.extra_cost_per_hour > 0, "overflow costs money")


def test_full_storage_keeps_existing_event() -> None:
    s = new_game_state(seed=5)
    s.inventory.bottles = s.storage_capacity
    s.world_event = WorldEvent(kind="heatwave", name="Heatwave", remaining_hours=5, demand_multiplier=1.5)
    r = advance(s, online=False, cfg=QUIET)
    _assert(r.event_started is None, "no second event")
    _assert(s.world_event is not None and s.world_event.kind == "heatwave", "heatwave still running")
    _assert(s.world_event.remaining_hours == 4, "heatwave counted down")


def test_strike_caps_capacity_then_expires() -> None:
    s = new_game_state(seed=6)
    s.world_event = WorldEvent(kind="strike", name="Partial Strike", remaining_hours=1, capacity_multiplier=0.6)
    _assert(effective_capacity(s) == 15, "floor(25 * 0.6)")
    r = advance(s, online=False, cfg=QUIET)
    _assert(r.produced == 15, f"strike capacity, got {r.produced}")
    _assert(r.event_ended == "strike", "event expired")
    _assert(s.world_event is None, "event cleared")


def test_random_event_draws_from_pool() -> None:
    s = new_game_state(seed=7)
    r = advance(s, online=False, cfg=EngineConfig(event_probability=1.0))
    _assert(s.world_event is not None, "probability 1 always starts an event")
    tpl = CATALOG.world_events[s.world_event.kind]
    _assert(tpl.random_pool, "overflow is never drawn at random")
    _assert(tpl.min_hours <= s.world_event.remaining_hours <= tpl.max_hours, "duration within template range")
    _assert(r.event_started == tpl.kind, "result reports the new event")


def test_auto_procurement_all_or_nothing() -> None:
    s = _empty_raw(new_game_state(seed=8))
    s.auto_buy = True
    r = advance(s, online=False, cfg=QUIET)
    _assert(_close(r.procurement_cost, 40.0), f"100 of each material at 0.40/set, got {r.procurement_cost}")
    _assert(r.produced == 25, "bought materials feed production the same hour")
    _assert(s.inventory.preforms == 75, f"preforms {s.inventory.preforms}")

    poor = _empty_raw(new_game_state(seed=8))
    poor.auto_buy = True
    poor.cash = 10.0
    r2 = advance(poor, online=False, cfg=QUIET)
    _assert(r2.procurement_cost == 0.0, "unaffordable top-up is skipped entirely")
    _assert(poor.inventory.preforms == 0 and poor.inventory.labels == 0, "no partial purchase")
    _assert(_close(poor.cash, -30.0), f"only fixed cost charged, cash {poor.cash}")


def test_month_boundary_emits_recap_and_resets() -> None:
    s = _empty_raw(new_game_state(seed=9))
    s.calendar.day = 30
    s.calendar.hour = 23
    s.monthly.produced = 123
    s.monthly.sold = 100
    s.monthly.revenue = 200.0
    s.monthly.expenses = 50.0
    s.flavors["classic"].monthly_sold = 100
    sink = _Collect()
    r = advance(s, online=False, cfg=QUIET, sink=sink)
    _assert(s.calendar.day == 31 and s.calendar.hour == 0, "day rolled over")
    _assert(r.month_recap is not None and r.month_recap.month == 1, "recap for month 1")
    _assert(r.month_recap.produced == 123 and r.month_recap.sold == 100, "recap carries the month totals")
    _assert(_close(r.month_recap.profit, 150.0), "profit = revenue - expenses")
    _assert(s.calendar.last_month_index == 2, "month index advanced")
    _assert(s.monthly.produced == 0 and s.flavors["classic"].monthly_sold == 0, "monthly counters reset")
    _assert(_close(s.monthly.expenses, 40.0), "this hour's fixed cost lands in the new month")
    _assert(any("Month 1 recap" in m for m, _ in sink.items), "recap logged")


def test_mission_completion_stages_reward() -> None:
    s = new_game_state(seed=10)
    s.mission.active_id = "stadium_promo"
    s.mission.remaining_hours = 1
    cash_before = s.cash
    r = advance(s, online=False, cfg=QUIET)
    _assert(r.mission_completed == "stadium_promo", "mission completed")
    _assert(s.mission.active_id is None, "mission no longer active")
    _assert(s.mission.pending_reward is not None and _close(s.mission.pending_reward.cash, 8000.0), "reward staged")
    _assert(_close(r.cash_after, cash_before - r.fixed_cost - r.procurement_cost + r.revenue), "reward not yet paid")


def test_rivals_activate_then_reprice_on_new_day() -> None:
    s = _empty_raw(new_game_state(seed=11))
    s.stats.sold = 8_000
    r = advance(s, online=False, cfg=QUIET)
    _assert(r.rivals_activated and s.rivals.active, "sold threshold activates rivals")
    for rid in CATALOG.rivals:
        for p in s.rivals.prices[rid].values():
            _assert(2.3 <= p <= 2.9, f"initial rival price {p} outside band")

    s.calendar.hour = 23
    advance(s, online=False, cfg=QUIET)
    _assert(s.rivals.last_price_day == s.calendar.day, "repriced on rollover")
    for p in s.rivals.prices["discounters"].values():
        _assert(1.75 <= p <= 1.85, f"undercut price {p}")
    for p in s.rivals.prices["premium"].values():
        _assert(2.55 <= p <= 2.65, f"premium price {p}")
    for p in s.rivals.prices["copycat"].values():
        _assert(1.99 <= p <= 2.09, f"shadow price {p}")


def test_conservation_bounds_and_monotonic_sets() -> None:
    s = new_game_state(seed=12)
    s.auto_buy = True
    prev_ach: List[str] = []
    prev_unlocked = set(s.unlocked_flavor_ids())
    prev_legacy = s.prestige_currency
    rng = random.Random(99)
    for _ in range(300):
        r = advance(s, online=False, rng=rng)
        expected = r.cash_before - r.fixed_cost - r.procurement_cost + r.revenue
        _assert(_close(r.cash_after, expected), f"cash conservation broken on day {r.day} {r.hour}")
        _assert(0 <= s.inventory.bottles <= s.storage_capacity, "stock within storage")
        _assert(min(s.inventory.preforms, s.inventory.labels, s.inventory.packaging) >= 0, "raw never negative")
        _assert(s.unlocked_achievements[: len(prev_ach)] == prev_ach, "achievements append-only")
        _assert(prev_unlocked <= set(s.unlocked_flavor_ids()), "flavors never re-lock")
        _assert(s.prestige_currency >= prev_legacy, "legacy never decreases")
        prev_ach = list(s.unlocked_achievements)
        prev_unlocked = set(s.unlocked_flavor_ids())
    _assert("first_sale" in s.unlocked_achievements, "sold something in 300 hours")


def test_same_seed_same_outcome() -> None:
    def run(seed: int) -> dict:
        s = new_game_state(seed=seed)
        s.auto_buy = True
        for _ in range(120):
            advance(s, online=False, cfg=EngineConfig(event_probability=0.2))
        return asdict(s)

    _assert(run(4242) == run(4242), "expected identical results with same seed")


def test_online_tick_stamps_timestamp() -> None:
    s = new_game_state(seed=13)
    advance(s, online=False, cfg=QUIET, now=500.0)
    _assert(s.last_observed_timestamp == 0.0, "offline ticks leave the timestamp alone")
    advance(s, online=True, cfg=QUIET, now=500.0)
    _assert(s.last_observed_timestamp == 500.0, "online ticks record now")


class _Broken(SimulationExtension):
    name = "broken"

    def on_tick(self, state, result, catalog, sink) -> None:
        raise RuntimeError("boom")


def test_failing_sink_and_extension_do_not_stop_tick() -> None:
    def bad_sink(message: str, severity: str) -> None:
        raise RuntimeError("sink down")

    s = new_game_state(seed=14)
    s.inventory.bottles = s.storage_capacity
    exts = (_Broken(),) + tuple(DEFAULT_EXTENSIONS)
    r = advance(s, online=False, cfg=QUIET, sink=bad_sink, extensions=exts)
    _assert(r.event_started == "storage_full", "tick completed despite failing collaborators")
    _assert(s.calendar.hour == 9, "calendar advanced")


def test_bottle_format_extension_lifts_capacity() -> None:
    s = _empty_raw(new_game_state(seed=15))
    s.bottle_format = "small_500"
    advance(s, online=False, cfg=QUIET)
    _assert(s.capacity_per_hour == 28, f"round(25 * 1.1) = 28, got {s.capacity_per_hour}")


def test_cash_dip_warned_once() -> None:
    s = _empty_raw(new_game_state(seed=16))
    s.cash = 50.0
    sink = _Collect()
    for _ in range(4):
        advance(s, online=False, cfg=QUIET, sink=sink)
    warnings = [m for m, sev in sink.items if "negative" in m]
    _assert(len(warnings) == 1, f"one warning per dip, got {warnings}")
    _assert(s.in_debt, "debt flag set")


def main() -> None:
    tests = [
        test_no_materials_only_fixed_cost,
        test_sales_credit_exactly_units_times_price,
        test_flavor_unlocks_once_with_log,
        test_full_storage_starts_overflow_event,
        test_full_storage_keeps_existing_event,
        test_strike_caps_capacity_then_expires,
        test_random_event_draws_from_pool,
        test_auto_procurement_all_or_nothing,
        test_month_boundary_emits_recap_and_resets,
        test_mission_completion_stages_reward,
        test_rivals_activate_then_reprice_on_new_day,
        test_conservation_bounds_and_monotonic_sets,
        test_same_seed_same_outcome,
        test_online_tick_stamps_timestamp,
        test_failing_sink_and_extension_do_not_stop_tick,
        test_bottle_format_extension_lifts_capacity,
        test_cash_dip_warned_once,
    ]
    for t in tests:
        t()
        print(f"OK  {t.__name__}")
    print(f"ALL OK ({len(tests)} tests)")


if __name__ == "__main__":
    main()
