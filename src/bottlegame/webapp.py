from __future__ import annotations

import logging
import threading
from contextlib import asynccontextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import Body, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse

from bottlegame.catalog import Catalog
from bottlegame.config import BASE_MARKET_PRICE, CHANNELS, EngineConfig
from bottlegame.intents import IntentResult
from bottlegame.market import channel_demand, player_shares, rival_price
from bottlegame.reporting import break_even_units_per_hour, unit_margin
from bottlegame.session import GameSession
from bottlegame.storage import ledger_path, state_path

logger = logging.getLogger(__name__)


def _catalog_to_dto(catalog: Catalog) -> Dict[str, Any]:
    return {
        "flavors": [
            {
                "id": f.flavor_id,
                "name": f.name,
                "base_price": f.base_price,
                "demand_multiplier": f.demand_multiplier,
                "unlock_revenue": f.unlock_revenue,
            }
            for f in catalog.flavors.values()
        ],
        "upgrades": [
            {"id": u.upgrade_id, "name": u.name, "desc": u.desc, "cost": u.cost, "category": u.category,
             "requires": list(u.requires)}
            for u in catalog.upgrades.values()
        ],
        "equipment": [
            {"id": e.equipment_id, "name": e.name, "desc": e.desc, "cost": e.cost, "group": e.group}
            for e in catalog.equipment.values()
        ],
        "achievements": [
            {"id": a.achievement_id, "label": a.label, "desc": a.desc} for a in catalog.achievements.values()
        ],
        "world_events": [
            {
                "kind": t.kind,
                "name": t.name,
                "desc": t.desc,
                "min_hours": t.min_hours,
                "max_hours": t.max_hours,
                "capacity_multiplier": t.capacity_multiplier,
                "demand_multiplier": t.demand_multiplier,
                "extra_cost_per_hour": t.extra_cost_per_hour,
                "random": t.random_pool,
            }
            for t in catalog.world_events.values()
        ],
        "missions": [
            {
                "id": m.mission_id,
                "name": m.name,
                "desc": m.desc,
                "duration_hours": m.duration_hours,
                "bottles_required": m.bottles_required,
                "reward_cash": m.reward_cash,
                "reward_prestige": m.reward_prestige,
            }
            for m in catalog.missions.values()
        ],
        "prestige_nodes": [
            {"id": n.node_id, "name": n.name, "desc": n.desc, "cost": n.cost} for n in catalog.prestige_nodes.values()
        ],
        "rivals": [
            {
                "id": r.rival_id,
                "name": r.name,
                "brand_power": r.brand_power,
                "strategy": r.strategy,
                "channel_strength": dict(r.channel_strength),
            }
            for r in catalog.rivals.values()
        ],
        "bottle_formats": [
            {
                "id": b.format_id,
                "label": b.label,
                "price_multiplier": b.price_multiplier,
                "capacity_multiplier": b.capacity_multiplier,
                "note": b.note,
            }
            for b in catalog.bottle_formats.values()
        ],
    }


def create_app(
    state_file: Optional[Path] = None,
    ledger_file: Optional[Path] = None,
    cfg: Optional[EngineConfig] = None,
    auto_tick: bool = False,
) -> FastAPI:
    cfg = cfg or EngineConfig()
    lock = threading.Lock()
    stop = threading.Event()
    holder: Dict[str, GameSession] = {}

    def _ensure_session() -> GameSession:
        # Caller holds the lock.
        s = holder.get("session")
        if s is None:
            s = GameSession.open(state_file or state_path(), ledger_file or ledger_path(), cfg=cfg)
            s.catch_up()
            s.save()
            holder["session"] = s
        return s

    def _ticker() -> None:
        while not stop.wait(float(cfg.tick_seconds)):
            try:
                with lock:
                    s = _ensure_session()
                    s.tick()
                    s.save()
            except Exception:
                logger.exception("background tick failed")

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        worker: Optional[threading.Thread] = None
        if auto_tick:
            worker = threading.Thread(target=_ticker, name="bottlegame-ticker", daemon=True)
            worker.start()
        try:
            yield
        finally:
            stop.set()
            if worker is not None:
                worker.join(timeout=max(1.0, float(cfg.tick_seconds) * 2))

    app = FastAPI(title="Bottle Tycoon Idle Simulator API", lifespan=lifespan)

    # Allow a separately served frontend.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _intent_response(s: GameSession, res: IntentResult) -> Dict[str, Any]:
        if not res.ok:
            return {"error": res.message, "code": res.code}
        s.save()
        return {"ok": True, "message": res.message, "state": s.snapshot()}

    @app.get("/")
    def root():
        return {
            "name": "bottle-tycoon",
            "api": "/api/state",
            "downloads": ["/download/state", "/download/ledger"],
            "auto_tick": bool(auto_tick),
        }

    @app.get("/api/state")
    def api_state():
        with lock:
            s = _ensure_session()
            out = s.snapshot()
            out["log"] = [e.to_dict() for e in s.log.entries(20)]
        return out

    @app.get("/api/market")
    def api_market():
        with lock:
            s = _ensure_session()
            st = s.state
            price = st.active_price(BASE_MARKET_PRICE)
            demand = channel_demand(st)
            shares = player_shares(st, price, s.catalog, s.cfg)
            be = break_even_units_per_hour(st)
            return {
                "price": price,
                "rivals_active": st.rivals.active,
                "channels": [
                    {
                        "channel": ch,
                        "demand": demand[ch],
                        "player_share": shares[ch],
                        "rival_prices": {
                            rid: rival_price(st, rid, ch, price) for rid in s.catalog.rivals
                        }
                        if st.rivals.active
                        else {},
                    }
                    for ch in CHANNELS
                ],
                "unit_margin": unit_margin(st),
                "break_even_per_hour": None if be == float("inf") else be,
            }

    @app.get("/api/catalog")
    def api_catalog():
        with lock:
            s = _ensure_session()
            return _catalog_to_dto(s.catalog)

    @app.get("/api/log")
    def api_log(limit: int = 50):
        with lock:
            s = _ensure_session()
            return {"entries": [e.to_dict() for e in s.log.entries(max(1, min(int(limit), cfg.log_capacity)))]}

    @app.post("/api/tick")
    def api_tick(payload: dict = Body(default={})):
        try:
            hours = int(payload.get("hours", 1))
        except (TypeError, ValueError, OverflowError):
            return {"error": "hours must be an integer", "code": "invalid_intent"}
        if hours <= 0:
            return {"error": "hours must be positive", "code": "invalid_intent"}
        hours = min(hours, int(cfg.max_offline_ticks))
        with lock:
            s = _ensure_session()
            results = s.run(hours)
            s.save()
            return {
                "ticks": len(results),
                "produced": sum(r.produced for r in results),
                "units_sold": sum(r.units_sold for r in results),
                "revenue": sum(r.revenue for r in results),
                "recaps": [asdict(r.month_recap) for r in results if r.month_recap is not None],
                "state": s.snapshot(),
            }

    @app.post("/api/materials")
    def api_materials(payload: dict = Body(default={})):
        with lock:
            s = _ensure_session()
            return _intent_response(s, s.buy_materials(str(payload.get("kind", "")), payload.get("qty", 0)))

    @app.post("/api/auto-buy")
    def api_auto_buy(payload: dict = Body(default={})):
        with lock:
            s = _ensure_session()
            return _intent_response(s, s.set_auto_buy(bool(payload.get("enabled", not s.state.auto_buy))))

    @app.post("/api/flavor")
    def api_flavor(payload: dict = Body(default={})):
        with lock:
            s = _ensure_session()
            return _intent_response(s, s.set_flavor(str(payload.get("flavor_id", ""))))

    @app.post("/api/price")
    def api_price(payload: dict = Body(default={})):
        with lock:
            s = _ensure_session()
            return _intent_response(s, s.set_price(payload.get("price")))

    @app.post("/api/bottle-format")
    def api_bottle_format(payload: dict = Body(default={})):
        with lock:
            s = _ensure_session()
            return _intent_response(s, s.set_bottle_format(str(payload.get("format_id", ""))))

    @app.post("/api/upgrades/{upgrade_id}")
    def api_upgrade(upgrade_id: str):
        with lock:
            s = _ensure_session()
            return _intent_response(s, s.buy_upgrade(upgrade_id))

    @app.post("/api/equipment/{equipment_id}")
    def api_equipment(equipment_id: str):
        with lock:
            s = _ensure_session()
            return _intent_response(s, s.buy_equipment(equipment_id))

    @app.post("/api/prestige-nodes/{node_id}")
    def api_prestige_node(node_id: str):
        with lock:
            s = _ensure_session()
            return _intent_response(s, s.buy_prestige_node(node_id))

    @app.post("/api/missions/claim")
    def api_mission_claim():
        with lock:
            s = _ensure_session()
            return _intent_response(s, s.claim_reward())

    @app.post("/api/missions/{mission_id}/start")
    def api_mission_start(mission_id: str):
        with lock:
            s = _ensure_session()
            return _intent_response(s, s.start_mission(mission_id))

    @app.post("/api/prestige")
    def api_prestige():
        with lock:
            s = _ensure_session()
            return _intent_response(s, s.prestige())

    @app.post("/api/reset")
    def api_reset(payload: dict = Body(default={})):
        seed = payload.get("seed")
        with lock:
            s = _ensure_session()
            try:
                s.hard_reset(int(seed) if seed is not None else None)
            except (TypeError, ValueError, OverflowError):
                return {"error": "seed must be an integer", "code": "invalid_intent"}
            s.save()
            return {"ok": True, "state": s.snapshot()}

    @app.get("/download/state")
    def download_state():
        with lock:
            s = _ensure_session()
            s.save()
            p = s.state_file
        if p is None or not p.exists():
            return {"error": "state.json not found", "code": "not_found"}
        return FileResponse(str(p), filename="state.json", media_type="application/json")

    @app.get("/download/ledger")
    def download_ledger():
        with lock:
            s = _ensure_session()
            p = s.ledger_file
        if p is None or not p.exists():
            return {"error": "ledger.csv not found (no month has closed yet)", "code": "not_found"}
        return FileResponse(str(p), filename="ledger.csv", media_type="text/csv")

    return app


app = create_app()
