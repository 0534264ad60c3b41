import argparse
import random
from pathlib import Path

import sys

# Make `src/` importable when running as a script.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from bottlegame.catalog import CATALOG
from bottlegame.config import EngineConfig
from bottlegame.engine import advance
from bottlegame.intents import purchase_equipment, purchase_upgrade, set_price
from bottlegame.models import SimulationState
from bottlegame.presets import new_game_state
from bottlegame.storage import save_state


def _shopping_list(rng: random.Random):
    # Upgrades in catalog order keep prerequisites satisfied; equipment is shuffled.
    ups = list(CATALOG.upgrades)
    eq = list(CATALOG.equipment)
    rng.shuffle(eq)
    return ups + eq


def _spend(state: SimulationState, wanted, reserve: float) -> None:
    for item in wanted:
        if item in state.purchased_upgrades or item in state.owned_equipment:
            continue
        if item in CATALOG.upgrades:
            cost = CATALOG.upgrades[item].cost
            buy = purchase_upgrade
        else:
            cost = CATALOG.equipment[item].cost
            buy = purchase_equipment
        if state.cash - cost < reserve:
            return
        buy(state, item)


def build_state(hours: int, seed: int, reserve: float = 3_000.0) -> SimulationState:
    """Play ``hours`` offline hours with a greedy buyer and return the resulting save."""

    rng = random.Random(seed)
    state = new_game_state(seed=seed)
    wanted = _shopping_list(rng)
    cfg = EngineConfig()
    for h in range(max(0, int(hours))):
        if h % 24 == 0:
            _spend(state, wanted, reserve)
            # Nudge the price around the market level.
            fs = state.active_flavor()
            if fs is not None:
                set_price(state, round(fs.price * rng.uniform(0.97, 1.03), 2), cfg)
        advance(state, online=False, cfg=cfg)
    return state


def main() -> int:
    ap = argparse.ArgumentParser(description="Generate a mid-game bottling company save")
    ap.add_argument("--hours", type=int, default=24 * 90)
    ap.add_argument("--seed", type=int, default=20260129)
    ap.add_argument(
        "--out",
        type=str,
        default=str(Path(__file__).resolve().parents[1] / "data" / "state_test_90d.json"),
    )
    args = ap.parse_args()

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)

    state = build_state(hours=int(args.hours), seed=int(args.seed))
    save_state(state, path=out)
    print(f"wrote: {out}")
    print(
        f"day {state.calendar.day}  cash {state.cash:,.2f}  sold {state.stats.sold}  "
        f"upgrades {len(state.purchased_upgrades)}  equipment {len(state.owned_equipment)}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
