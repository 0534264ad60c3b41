from __future__ import annotations

from dataclasses import asdict

from bottlegame.config import EngineConfig
from bottlegame.prestige import is_eligible, perform_reset, preview_reset
from bottlegame.presets import new_game_state


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


def _close(a: float, b: float, tol: float = 1e-9) -> bool:
    return abs(float(a) - float(b)) <= tol


def test_reset_rejected_below_threshold() -> None:
    s = new_game_state(seed=31)
    s.stats.revenue = 1_000.0
    before = asdict(s)
    msgs = []
    out = perform_reset(s, sink=lambda m, sev: msgs.append((m, sev)))
    _assert(out is None, "not eligible -> rejected")
    _assert(asdict(s) == before, "state unchanged on rejection")
    _assert(msgs and msgs[0][1] == "bad", "rejection is logged")


def test_eligibility_threshold() -> None:
    s = new_game_state(seed=32)
    s.stats.revenue = 249_999.0
    _assert(not is_eligible(s), "just under threshold")
    s.stats.revenue = 250_000.0
    _assert(is_eligible(s), "threshold is inclusive")
    _assert(is_eligible(s, EngineConfig(prestige_revenue_threshold=100.0)) is True, "configurable")


def test_reset_builds_new_run_with_bonuses() -> None:
    s = new_game_state(seed=33)
    s.stats.revenue = 300_000.0
    s.cash = 123_456.0
    s.prestige_currency = 2.0
    s.prestige_spent = 3
    s.unlocked_prestige_nodes = ["legacy_capacity"]
    s.unlocked_achievements = ["first_sale", "rich"]
    s.purchased_upgrades = ["line_2"]
    s.last_observed_timestamp = 42.0
    s.flavors["cherry"].unlocked = True

    fresh = perform_reset(s)
    _assert(fresh is not None and fresh is not s, "new state object")
    _assert(_close(fresh.prestige_currency, 3.0), "fixed gain of one per reset")
    _assert(_close(fresh.cash, 2500.0 * 1.75), f"cash {fresh.cash}")
    _assert(fresh.capacity_per_hour == 25 + 15 + 15, f"base + 5P + node, got {fresh.capacity_per_hour}")
    _assert(_close(fresh.demand_modifier, 1.3), f"demand {fresh.demand_modifier}")
    _assert(fresh.cash >= 2500.0 and fresh.capacity_per_hour >= 25, "never below the default baseline")
    _assert(fresh.unlocked_achievements == ["first_sale", "rich"], "achievements preserved")
    _assert(fresh.unlocked_prestige_nodes == ["legacy_capacity"] and fresh.prestige_spent == 3, "tree preserved")
    _assert(fresh.prestige_resets == 1, "reset counted")
    _assert(fresh.purchased_upgrades == [] and fresh.stats.revenue == 0.0, "run progress wiped")
    _assert(not fresh.flavors["cherry"].unlocked, "flavors relock for the new run")
    _assert(fresh.last_observed_timestamp == 42.0, "observed timestamp carried")
    _assert(s.stats.revenue == 300_000.0 and _close(s.prestige_currency, 2.0), "old state not mutated")


def test_nodes_reapplied_in_unlock_order() -> None:
    s = new_game_state(seed=34)
    s.stats.revenue = 260_000.0
    s.prestige_currency = 5.0
    s.prestige_spent = 3
    s.unlocked_prestige_nodes = ["legacy_auto_buy", "legacy_storage"]
    fresh = perform_reset(s)
    _assert(fresh is not None, "eligible")
    _assert(fresh.auto_buy and "auto_buy" in fresh.purchased_upgrades, "auto-buy carried by the legacy perk")
    _assert(fresh.storage_capacity == 2300, f"storage {fresh.storage_capacity}")


def test_preview_matches_reset() -> None:
    s = new_game_state(seed=35)
    s.stats.revenue = 500_000.0
    pv = preview_reset(s)
    fresh = perform_reset(s)
    _assert(pv["eligible"] is True, "eligible preview")
    _assert(_close(float(pv["cash"]), fresh.cash), "preview cash")
    _assert(int(float(pv["capacity_per_hour"])) == fresh.capacity_per_hour, "preview capacity")


def main() -> None:
    tests = [
        test_reset_rejected_below_threshold,
        test_eligibility_threshold,
        test_reset_builds_new_run_with_bonuses,
        test_nodes_reapplied_in_unlock_order,
        test_preview_matches_reset,
    ]
    for t in tests:
        t()
        print(f"OK  {t.__name__}")
    print(f"ALL OK ({len(tests)} tests)")


if __name__ == "__main__":
    main()
