from __future__ import annotations

import json
import tempfile
from pathlib import Path

from fastapi.testclient import TestClient

from bottlegame.storage import LEDGER_COLUMNS
from bottlegame.webapp import create_app


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


def _client(td: str) -> TestClient:
    root = Path(td)
    return TestClient(create_app(state_file=root / "state.json", ledger_file=root / "ledger.csv"))


def test_state_and_catalog() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = _client(td)
        s = c.get("/api/state").json()
        _assert(s["state"]["cash"] == 2500.0, "fresh company")
        _assert("rng_state" not in s["state"], "rng internals are not exposed")
        _assert(s["derived"]["effective_capacity"] == 25, f"derived {s['derived']}")
        _assert(isinstance(s["log"], list), "log tail included")
        _assert((Path(td) / "state.json").exists(), "first access writes a snapshot")

        cat = c.get("/api/catalog").json()
        _assert([f["id"] for f in cat["flavors"]] == ["classic", "cherry", "zero", "lime"], "flavor order")
        _assert(any(u["id"] == "line_3" and u["requires"] == ["line_2"] for u in cat["upgrades"]), "requires exported")

        m = c.get("/api/market").json()
        _assert(not m["rivals_active"] and len(m["channels"]) == 4, "market view")


def test_tick_advances_and_validates() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = _client(td)
        bad = c.post("/api/tick", json={"hours": 0}).json()
        _assert(bad.get("code") == "invalid_intent", f"zero hours rejected: {bad}")
        bad = c.post("/api/tick", json={"hours": "soon"}).json()
        _assert(bad.get("code") == "invalid_intent", "non-integer rejected")

        r = c.post("/api/tick", json={"hours": 24}).json()
        _assert(r["ticks"] == 24, f"ticks {r['ticks']}")
        _assert(r["state"]["state"]["calendar"]["day"] == 2, "one day later")
        _assert(r["produced"] > 0 and r["units_sold"] > 0, "the line ran")
        saved = json.loads((Path(td) / "state.json").read_text(encoding="utf-8"))
        _assert(saved["state"]["calendar"]["day"] == 2, "tick persisted")


def test_intent_errors_carry_codes() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = _client(td)
        r = c.post("/api/upgrades/line_2").json()
        _assert(r.get("code") == "insufficient_funds" and r.get("error"), f"upgrade {r}")
        r = c.post("/api/upgrades/line_3").json()
        _assert(r.get("code") == "invalid_intent", "prerequisite missing")
        r = c.post("/api/price", json={"price": -1}).json()
        _assert(r.get("code") == "invalid_intent", f"price {r}")
        r = c.post("/api/price", json={}).json()
        _assert(r.get("code") == "invalid_intent", "missing price")
        r = c.post("/api/flavor", json={"flavor_id": "lime"}).json()
        _assert(r.get("code") == "invalid_intent", "locked flavor")
        r = c.post("/api/missions/claim").json()
        _assert(r.get("code") == "invalid_intent", "nothing to claim")
        r = c.post("/api/prestige").json()
        _assert(r.get("code") == "invalid_intent", "not eligible")
        _assert(c.get("/api/state").json()["state"]["cash"] == 2500.0, "rejections cost nothing")


def test_successful_intents_return_state() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = _client(td)
        r = c.post("/api/materials", json={"kind": "labels", "qty": 100}).json()
        _assert(r.get("ok") and r["state"]["state"]["inventory"]["labels"] == 600, f"materials {r}")
        r = c.post("/api/price", json={"price": 2.4}).json()
        _assert(r["state"]["state"]["flavors"]["classic"]["price"] == 2.4, "price set")
        r = c.post("/api/bottle-format", json={"format_id": "small_500"}).json()
        _assert(r.get("ok") and r["state"]["state"]["bottle_format"] == "small_500", f"format {r}")
        _assert(r["state"]["state"]["flavors"]["classic"]["price"] == 1.7, "repriced for the format")

        log = c.get("/api/log", params={"limit": 2}).json()["entries"]
        _assert(len(log) == 2 and "0.5L" in log[0]["message"], f"newest first: {log}")


def test_reset_and_downloads() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = _client(td)
        missing = c.get("/download/ledger").json()
        _assert(missing.get("code") == "not_found", "no ledger before the first month closes")

        c.post("/api/tick", json={"hours": 800})
        res = c.get("/download/ledger")
        _assert(res.status_code == 200, "ledger downloadable")
        _assert(res.text.splitlines()[0] == ",".join(LEDGER_COLUMNS), f"header {res.text[:80]}")

        res = c.get("/download/state")
        _assert(res.status_code == 200 and res.json()["version"], "state download")

        r = c.post("/api/reset", json={"seed": 5}).json()
        _assert(r.get("ok") and r["state"]["state"]["rng_seed"] == 5, "reseeded")
        _assert(r["state"]["state"]["calendar"]["day"] == 1, "calendar restarted")
        _assert(not (Path(td) / "ledger.csv").exists(), "ledger wiped")
        bad = c.post("/api/reset", json={"seed": "abc"}).json()
        _assert(bad.get("code") == "invalid_intent", "seed validated")


def test_out_of_range_numbers_are_rejected_not_500() -> None:
    with tempfile.TemporaryDirectory() as td:
        c = _client(td)
        headers = {"Content-Type": "application/json"}
        for url, body in [("/api/reset", '{"seed": 1e999}'), ("/api/tick", '{"hours": 1e999}')]:
            res = c.post(url, content=body, headers=headers)
            _assert(res.status_code == 200, f"{url} status {res.status_code}")
            _assert(res.json().get("code") == "invalid_intent", f"{url} body {res.text}")
        s = c.get("/api/state").json()
        _assert(s["state"]["calendar"]["hour"] == 8, "nothing ran or reset")


def test_corrupt_save_starts_fresh() -> None:
    with tempfile.TemporaryDirectory() as td:
        (Path(td) / "state.json").write_text("{broken", encoding="utf-8")
        c = _client(td)
        s = c.get("/api/state").json()
        _assert(s["state"]["cash"] == 2500.0, "fresh state after corrupt save")
        _assert(any(e["severity"] == "bad" for e in s["log"]), "recovery is visible in the log")
        saved = json.loads((Path(td) / "state.json").read_text(encoding="utf-8"))
        _assert("state" in saved, "corrupt file replaced")


def main() -> None:
    tests = [
        test_state_and_catalog,
        test_tick_advances_and_validates,
        test_intent_errors_carry_codes,
        test_successful_intents_return_state,
        test_reset_and_downloads,
        test_out_of_range_numbers_are_rejected_not_500,
        test_corrupt_save_starts_fresh,
    ]
    for t in tests:
        t()
        print(f"OK  {t.__name__}")
    print(f"ALL OK ({len(tests)} tests)")


if __name__ == "__main__":
    main()
