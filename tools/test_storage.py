from __future__ import annotations

import csv
import json
import tempfile
from dataclasses import asdict
from pathlib import Path

from bottlegame.config import EngineConfig
from bottlegame.engine import advance, rng_from_state
from bottlegame.models import MonthRecap
from bottlegame.presets import new_game_state
from bottlegame.storage import (
    LEDGER_COLUMNS,
    SAVE_VERSION,
    CorruptSave,
    append_recap_csv,
    load_or_new,
    load_state,
    read_recaps,
    save_state,
)


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


def test_save_load_round_trip() -> None:
    s = new_game_state(seed=41)
    s.auto_buy = True
    s.stats.sold = 7_990
    for _ in range(60):
        advance(s, online=False, cfg=EngineConfig(event_probability=0.3))
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "state.json"
        save_state(s, p)
        payload = json.loads(p.read_text(encoding="utf-8"))
        _assert(payload["version"] == SAVE_VERSION, "versioned payload")
        loaded = load_state(p)
    _assert(asdict(loaded) == asdict(s), "round trip must reproduce the state")

    # Both copies keep evolving identically.
    for _ in range(24):
        advance(s, online=False)
        advance(loaded, online=False)
    _assert(asdict(loaded) == asdict(s), "restored RNG continues the same stream")


def test_missing_fields_take_defaults_and_catalog_fills_in() -> None:
    payload = {
        "version": "0.1.0",
        "state": {
            "cash": 123.0,
            "flavors": {"classic": {"unlocked": True, "price": 2.5}, "retired_flavor": {"unlocked": True}},
            "purchased_upgrades": ["line_2", "teleporter"],
            "unlocked_achievements": ["first_sale", "first_sale"],
        },
    }
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "state.json"
        p.write_text(json.dumps(payload), encoding="utf-8")
        s = load_state(p)
    _assert(s.cash == 123.0, "saved field kept")
    _assert(s.calendar.day == 1 and s.calendar.hour == 8, "calendar defaulted")
    _assert(set(s.flavors) == {"classic", "cherry", "zero", "lime"}, f"flavors {list(s.flavors)}")
    _assert(s.flavors["classic"].price == 2.5 and not s.flavors["cherry"].unlocked, "new flavors added locked")
    _assert(s.purchased_upgrades == ["line_2"], "unknown ids dropped")
    _assert(s.unlocked_achievements == ["first_sale"], "duplicates collapsed")
    _assert(s.inventory.preforms == 500, "inventory defaulted")


def test_corrupt_saves_raise_and_recover() -> None:
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "state.json"
        for text in ["not json at all", json.dumps({"foo": 1}), json.dumps({"state": {"cash": "lots"}}),
                     json.dumps({"state": [1, 2, 3]})]:
            p.write_text(text, encoding="utf-8")
            try:
                load_state(p)
            except CorruptSave:
                pass
            else:
                raise AssertionError(f"expected CorruptSave for {text!r}")

        msgs = []
        s = load_or_new(p, seed=7, sink=lambda m, sev: msgs.append((m, sev)))
        _assert(s.cash == 2500.0 and s.rng_seed == 7, "fresh default state")
        _assert(msgs and msgs[0][1] == "bad", "recovery logged as bad")

        missing = load_or_new(Path(td) / "nope.json")
        _assert(missing.calendar.day == 1, "missing save -> new game")

        # Undecodable bytes and out-of-range numbers are corrupt saves too.
        for bad in [
            b"\xff\xfe{not json",
            b'{"state": {"calendar": {"day": 1e999}}}',
            b'{"state": {"prestige_spent": Infinity}}',
        ]:
            p.write_bytes(bad)
            try:
                load_state(p)
            except CorruptSave:
                pass
            else:
                raise AssertionError(f"expected CorruptSave for {bad!r}")
            fresh = load_or_new(p, seed=8)
            _assert(fresh.rng_seed == 8 and fresh.calendar.day == 1, f"recovered from {bad!r}")


def test_malformed_rng_state_is_reseeded() -> None:
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "state.json"
        for junk in [{}, [3], [3, {"a": 1}, None], "abc", [3, [1, 2, "x"], None]]:
            s = new_game_state(seed=12)
            payload = {"version": SAVE_VERSION, "state": asdict(s)}
            payload["state"]["rng_state"] = junk
            p.write_text(json.dumps(payload), encoding="utf-8")
            loaded = load_or_new(p)
            _assert(loaded.rng_state is None, f"{junk!r} dropped on load")
            for _ in range(5):
                advance(loaded, online=False)
            _assert(loaded.calendar.hour == 13 and loaded.rng_state is not None, "ticks run and persist a fresh rng")

    # A state mutated in memory after load is reseeded by the engine instead of failing.
    s = new_game_state(seed=13)
    s.rng_state = {"0": 1}
    advance(s, online=False)
    _assert(isinstance(rng_from_state(s).random(), float), "usable rng")


def test_recap_ledger_append_and_migrate() -> None:
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "ledger.csv"
        p.write_text("month,revenue\n1,10.00\n", encoding="utf-8")
        append_recap_csv(MonthRecap(month=2, produced=10, sold=8, revenue=16.0, expenses=6.0), p)
        with p.open("r", encoding="utf-8", newline="") as f:
            reader = csv.DictReader(f)
            header = list(reader.fieldnames or [])
            rows = list(reader)
        _assert(header == LEDGER_COLUMNS, f"header migrated, got {header}")
        _assert(len(rows) == 2 and rows[0]["revenue"] == "10.00", "old rows kept")
        _assert(rows[1]["profit"] == "10.00", f"profit column {rows[1]}")
        _assert(len(read_recaps(p)) == 2, "read back")


def test_generated_save_loads_back() -> None:
    from generate_test_state import build_state

    s = build_state(hours=24 * 10, seed=11, reserve=500.0)
    _assert(s.calendar.day == 11, f"ten days played, day {s.calendar.day}")
    with tempfile.TemporaryDirectory() as td:
        p = Path(td) / "state.json"
        save_state(s, p)
        _assert(asdict(load_state(p)) == asdict(s), "generated save loads back unchanged")


def main() -> None:
    tests = [
        test_save_load_round_trip,
        test_missing_fields_take_defaults_and_catalog_fills_in,
        test_corrupt_saves_raise_and_recover,
        test_malformed_rng_state_is_reseeded,
        test_recap_ledger_append_and_migrate,
        test_generated_save_loads_back,
    ]
    for t in tests:
        t()
        print(f"OK  {t.__name__}")
    print(f"ALL OK ({len(tests)} tests)")


if __name__ == "__main__":
    main()
