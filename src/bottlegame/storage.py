from __future__ import annotations

import csv
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from bottlegame.catalog import CATALOG, Catalog
from bottlegame.config import data_dir
from bottlegame.eventlog import Sink, safe_emit
from bottlegame.models import (
    Calendar,
    FlavorState,
    Inventory,
    MissionReward,
    MissionState,
    MonthRecap,
    RivalState,
    SimulationState,
    Stats,
    WorldEvent,
)
from bottlegame.presets import ensure_catalog_entries, new_game_state

logger = logging.getLogger(__name__)

SAVE_VERSION = "1.0.0"

LEDGER_COLUMNS = ["month", "produced", "sold", "revenue", "expenses", "profit"]


class CorruptSave(ValueError):
    """The save payload cannot be turned back into a game state."""


def state_path() -> Path:
    return data_dir() / "state.json"


def ledger_path() -> Path:
    return data_dir() / "ledger.csv"


def reset_data_files(paths: Optional[List[Path]] = None) -> None:
    """Delete persisted state and ledger."""

    for fp in paths or [state_path(), ledger_path()]:
        try:
            fp.unlink(missing_ok=True)
        except OSError:
            logger.exception("could not delete %s", fp)


def state_to_dict(state: SimulationState) -> Dict[str, Any]:
    return {"version": SAVE_VERSION, "state": asdict(state)}


def save_state(state: SimulationState, path: Optional[Path] = None) -> None:
    p = path or state_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    payload = state_to_dict(state)
    tmp = p.with_suffix(p.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
    tmp.replace(p)


def _stats(d: Any) -> Stats:
    d = d or {}
    return Stats(
        produced=max(0, int(d.get("produced", 0))),
        sold=max(0, int(d.get("sold", 0))),
        revenue=float(d.get("revenue", 0.0)),
        expenses=float(d.get("expenses", 0.0)),
    )


def _rng_state(raw: Any) -> Optional[List[Any]]:
    # random.Random state is [version, 625 ints, gauss_next]; anything else reseeds.
    if raw is None:
        return None
    if (
        isinstance(raw, list)
        and len(raw) == 3
        and isinstance(raw[0], int)
        and isinstance(raw[1], list)
        and all(isinstance(v, int) and not isinstance(v, bool) for v in raw[1])
        and (raw[2] is None or isinstance(raw[2], float))
    ):
        return raw
    logger.warning("dropping malformed rng state from save")
    return None


def _id_list(values: Any, known: Any) -> List[str]:
    out: List[str] = []
    for v in values or []:
        s = str(v)
        if s in known and s not in out:
            out.append(s)
    return out


def state_from_dict(d: Dict[str, Any], catalog: Catalog = CATALOG) -> SimulationState:
    """Rebuild a state from the ``state`` part of a payload.

    Missing fields take defaults, unknown catalog ids are dropped, new catalog
    flavors are added.
    """

    if not isinstance(d, dict):
        raise CorruptSave("state must be an object")
    try:
        return _state_from_dict(d, catalog)
    except (TypeError, ValueError, AttributeError, OverflowError) as e:
        raise CorruptSave(f"bad field in save: {e}") from e


def _state_from_dict(d: Dict[str, Any], catalog: Catalog) -> SimulationState:
    state = SimulationState(cash=float(d.get("cash", SimulationState.cash)))

    cd = d.get("calendar") or {}
    state.calendar = Calendar(
        day=max(1, int(cd.get("day", 1))),
        hour=min(23, max(0, int(cd.get("hour", Calendar.hour)))),
        last_month_index=max(1, int(cd.get("last_month_index", 1))),
    )

    state.capacity_per_hour = max(0, int(d.get("capacity_per_hour", state.capacity_per_hour)))
    state.storage_capacity = max(0, int(d.get("storage_capacity", state.storage_capacity)))
    state.fixed_cost_per_hour = max(0.0, float(d.get("fixed_cost_per_hour", state.fixed_cost_per_hour)))
    state.demand_modifier = float(d.get("demand_modifier", 1.0))
    state.cost_modifier = float(d.get("cost_modifier", 1.0))
    if state.demand_modifier <= 0 or state.cost_modifier <= 0:
        raise CorruptSave("modifiers must be positive")
    state.production_lines = max(1, int(d.get("production_lines", 1)))
    state.warehouses = max(1, int(d.get("warehouses", 1)))
    state.auto_buy = bool(d.get("auto_buy", False))

    idd = d.get("inventory") or {}
    state.inventory = Inventory(
        preforms=max(0, int(idd.get("preforms", Inventory.preforms))),
        labels=max(0, int(idd.get("labels", Inventory.labels))),
        packaging=max(0, int(idd.get("packaging", Inventory.packaging))),
        bottles=min(state.storage_capacity, max(0, int(idd.get("bottles", 0)))),
    )

    for fid, fd in (d.get("flavors") or {}).items():
        if fid not in catalog.flavors:
            continue
        state.flavors[fid] = FlavorState(
            unlocked=bool(fd.get("unlocked", False)),
            price=float(fd.get("price", catalog.flavors[fid].base_price)),
            produced_lifetime=max(0, int(fd.get("produced_lifetime", 0))),
            sold_lifetime=max(0, int(fd.get("sold_lifetime", 0))),
            monthly_produced=max(0, int(fd.get("monthly_produced", 0))),
            monthly_sold=max(0, int(fd.get("monthly_sold", 0))),
        )
        if state.flavors[fid].price <= 0:
            state.flavors[fid].price = catalog.flavors[fid].base_price
    state.active_flavor_id = str(d.get("active_flavor_id", state.active_flavor_id))
    state.bottle_format = str(d.get("bottle_format", state.bottle_format))

    rd = d.get("rivals") or {}
    prices: Dict[str, Dict[str, float]] = {}
    for rid, per in (rd.get("prices") or {}).items():
        if rid in catalog.rivals:
            prices[rid] = {str(ch): float(v) for ch, v in (per or {}).items()}
    state.rivals = RivalState(
        active=bool(rd.get("active", False)),
        prices=prices,
        last_price_day=int(rd.get("last_price_day", 0)),
    )

    ev = d.get("world_event")
    if ev and int(ev.get("remaining_hours", 0)) > 0:
        state.world_event = WorldEvent(
            kind=str(ev.get("kind", "")),
            name=str(ev.get("name", ev.get("kind", ""))),
            remaining_hours=int(ev["remaining_hours"]),
            capacity_multiplier=float(ev.get("capacity_multiplier", 1.0)),
            demand_multiplier=float(ev.get("demand_multiplier", 1.0)),
            extra_cost_per_hour=float(ev.get("extra_cost_per_hour", 0.0)),
        )

    md = d.get("mission") or {}
    active = md.get("active_id")
    reward = md.get("pending_reward")
    state.mission = MissionState(
        active_id=str(active) if active and str(active) in catalog.missions else None,
        remaining_hours=max(0, int(md.get("remaining_hours", 0))),
        pending_reward=(
            MissionReward(cash=float(reward.get("cash", 0.0)), prestige_points=float(reward.get("prestige_points", 0.0)))
            if reward
            else None
        ),
    )
    if state.mission.active_id is None:
        state.mission.remaining_hours = 0

    state.purchased_upgrades = _id_list(d.get("purchased_upgrades"), catalog.upgrades)
    state.owned_equipment = _id_list(d.get("owned_equipment"), catalog.equipment)
    state.equipment_spent = float(d.get("equipment_spent", 0.0))
    state.unlocked_achievements = _id_list(d.get("unlocked_achievements"), catalog.achievements)
    state.unlocked_prestige_nodes = _id_list(d.get("unlocked_prestige_nodes"), catalog.prestige_nodes)

    state.prestige_currency = max(0.0, float(d.get("prestige_currency", 0.0)))
    state.prestige_spent = max(0, int(d.get("prestige_spent", 0)))
    state.prestige_resets = max(0, int(d.get("prestige_resets", 0)))

    state.stats = _stats(d.get("stats"))
    state.monthly = _stats(d.get("monthly"))
    state.in_debt = bool(d.get("in_debt", False))
    state.last_observed_timestamp = float(d.get("last_observed_timestamp", 0.0))
    state.rng_seed = int(d.get("rng_seed", state.rng_seed))
    state.rng_state = _rng_state(d.get("rng_state"))

    ensure_catalog_entries(state, catalog)
    return state


def load_state(path: Optional[Path] = None, catalog: Catalog = CATALOG) -> SimulationState:
    p = path or state_path()
    try:
        payload = json.loads(p.read_text(encoding="utf-8"))
    except ValueError as e:
        # Covers undecodable bytes as well as malformed JSON.
        raise CorruptSave(f"save is not valid JSON: {e}") from e
    if not isinstance(payload, dict) or "state" not in payload:
        raise CorruptSave("save payload has no state")
    version = str(payload.get("version", ""))
    if version != SAVE_VERSION:
        logger.info("loading save version %r into %s", version, SAVE_VERSION)
    return state_from_dict(payload["state"], catalog)


def load_or_new(
    path: Optional[Path] = None,
    catalog: Catalog = CATALOG,
    seed: Optional[int] = None,
    sink: Optional[Sink] = None,
) -> SimulationState:
    """Load the save, or start fresh when it is missing or unreadable."""

    p = path or state_path()
    if not p.exists():
        return new_game_state(catalog, seed=seed)
    try:
        return load_state(p, catalog)
    except (CorruptSave, OSError) as e:
        logger.warning("discarding unreadable save %s: %s", p, e)
        safe_emit(sink, "Save file was unreadable. Started a fresh game.", "bad")
        return new_game_state(catalog, seed=seed)


def append_recap_csv(recap: MonthRecap, path: Optional[Path] = None) -> None:
    p = path or ledger_path()
    p.parent.mkdir(parents=True, exist_ok=True)

    # Rewrite an older header in place so columns keep lining up.
    if p.exists() and p.stat().st_size > 0:
        with p.open("r", encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            existing = list(reader.fieldnames or [])
            rows = list(reader)
        if existing != LEDGER_COLUMNS:
            with p.open("w", encoding="utf-8", newline="") as f:
                w2 = csv.DictWriter(f, fieldnames=LEDGER_COLUMNS)
                w2.writeheader()
                for r in rows:
                    w2.writerow({c: r.get(c, "") for c in LEDGER_COLUMNS})

    write_header = (not p.exists()) or (p.stat().st_size <= 0)
    with p.open("a", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        if write_header:
            w.writerow(LEDGER_COLUMNS)
        w.writerow(
            [
                recap.month,
                recap.produced,
                recap.sold,
                f"{recap.revenue:.2f}",
                f"{recap.expenses:.2f}",
                f"{recap.profit:.2f}",
            ]
        )


def read_recaps(path: Optional[Path] = None) -> List[Dict[str, str]]:
    p = path or ledger_path()
    if not p.exists():
        return []
    with p.open("r", encoding="utf-8", newline="") as f:
        return list(csv.DictReader(f))
