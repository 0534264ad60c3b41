from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from bottlegame import intents
from bottlegame.catalog import CATALOG, Catalog
from bottlegame.config import BASE_MARKET_PRICE, EngineConfig
from bottlegame.engine import advance, catch_up, effective_capacity
from bottlegame.eventlog import EventLog
from bottlegame.extensions import DEFAULT_EXTENSIONS, SimulationExtension
from bottlegame.intents import IntentResult
from bottlegame.market import brand_power, channel_demand, player_shares
from bottlegame.models import MonthRecap, OfflineResult, SimulationState, TickResult
from bottlegame.prestige import is_eligible, perform_reset, preview_reset
from bottlegame.presets import new_game_state
from bottlegame.reporting import status_lines
from bottlegame.storage import append_recap_csv, load_or_new, reset_data_files, save_state

logger = logging.getLogger(__name__)


class GameSession:
    """Owns one running game: state, catalog, config, extensions and the event log.

    Presentation layers talk to this object instead of mutating the state directly.
    """

    def __init__(
        self,
        state: Optional[SimulationState] = None,
        cfg: Optional[EngineConfig] = None,
        catalog: Catalog = CATALOG,
        extensions: Sequence[SimulationExtension] = DEFAULT_EXTENSIONS,
        state_file: Optional[Path] = None,
        ledger_file: Optional[Path] = None,
        log: Optional[EventLog] = None,
    ) -> None:
        self.cfg = cfg or EngineConfig()
        self.catalog = catalog
        self.extensions = tuple(extensions)
        self.state_file = state_file
        self.ledger_file = ledger_file
        self.log = log or EventLog(self.cfg.log_capacity)
        self.log.bind_clock(self._clock)
        self.state = state if state is not None else new_game_state(catalog)
        self.last_result: Optional[TickResult] = None

    @classmethod
    def open(
        cls,
        state_file: Path,
        ledger_file: Optional[Path] = None,
        cfg: Optional[EngineConfig] = None,
        catalog: Catalog = CATALOG,
        seed: Optional[int] = None,
    ) -> "GameSession":
        cfg = cfg or EngineConfig()
        log = EventLog(cfg.log_capacity)
        state = load_or_new(state_file, catalog, seed=seed, sink=log)
        return cls(state, cfg, catalog, state_file=state_file, ledger_file=ledger_file, log=log)

    def _clock(self) -> tuple:
        return int(self.state.calendar.day), int(self.state.calendar.hour)

    # -- simulation -------------------------------------------------------

    def tick(self, now: Optional[float] = None) -> TickResult:
        result = advance(
            self.state,
            online=True,
            cfg=self.cfg,
            catalog=self.catalog,
            sink=self.log,
            extensions=self.extensions,
            now=now,
        )
        self.last_result = result
        if result.month_recap is not None:
            self._record_recap(result.month_recap)
        return result

    def run(self, hours: int, now: Optional[float] = None) -> List[TickResult]:
        return [self.tick(now) for _ in range(max(0, int(hours)))]

    def catch_up(self, now: Optional[float] = None) -> OfflineResult:
        res = catch_up(self.state, now, cfg=self.cfg, catalog=self.catalog, sink=self.log, extensions=self.extensions)
        for recap in res.recaps:
            self._record_recap(recap)
        return res

    def _record_recap(self, recap: MonthRecap) -> None:
        if self.ledger_file is None:
            return
        try:
            append_recap_csv(recap, self.ledger_file)
        except OSError:
            logger.exception("could not append month %s to %s", recap.month, self.ledger_file)

    # -- persistence ------------------------------------------------------

    def save(self) -> bool:
        if self.state_file is None:
            return False
        try:
            save_state(self.state, self.state_file)
        except OSError:
            logger.exception("snapshot to %s failed", self.state_file)
            return False
        return True

    def hard_reset(self, seed: Optional[int] = None) -> None:
        paths = [p for p in (self.state_file, self.ledger_file) if p is not None]
        if paths:
            reset_data_files(paths)
        self.state = new_game_state(self.catalog, seed=seed)
        self.last_result = None
        self.log.clear()
        self.log("Started a brand new bottling company.", "info")

    # -- intents ----------------------------------------------------------

    def buy_materials(self, kind: str, qty: int) -> IntentResult:
        return intents.buy_materials(self.state, kind, qty, self.log)

    def set_auto_buy(self, enabled: bool) -> IntentResult:
        return intents.set_auto_buy(self.state, enabled, self.log)

    def set_flavor(self, flavor_id: str) -> IntentResult:
        return intents.set_active_flavor(self.state, flavor_id, self.catalog, self.log)

    def set_price(self, price: float) -> IntentResult:
        return intents.set_price(self.state, price, self.cfg, self.log)

    def set_bottle_format(self, format_id: str) -> IntentResult:
        return intents.set_bottle_format(self.state, format_id, self.catalog, self.log)

    def buy_upgrade(self, upgrade_id: str) -> IntentResult:
        return intents.purchase_upgrade(self.state, upgrade_id, self.catalog, self.log)

    def buy_equipment(self, equipment_id: str) -> IntentResult:
        return intents.purchase_equipment(self.state, equipment_id, self.catalog, self.log)

    def buy_prestige_node(self, node_id: str) -> IntentResult:
        return intents.purchase_prestige_node(self.state, node_id, self.catalog, self.log)

    def start_mission(self, mission_id: str) -> IntentResult:
        return intents.start_mission(self.state, mission_id, self.catalog, self.log)

    def claim_reward(self) -> IntentResult:
        return intents.claim_mission_reward(self.state, self.log)

    def prestige(self) -> IntentResult:
        fresh = perform_reset(self.state, self.cfg, self.catalog, self.log)
        if fresh is None:
            return IntentResult(ok=False, code=intents.INVALID_INTENT, message="Not eligible for prestige yet.")
        self.state = fresh
        self.last_result = None
        return IntentResult(ok=True, message=f"Legacy is now {fresh.prestige_currency:.2f}.")

    # -- views ------------------------------------------------------------

    def status_lines(self) -> List[str]:
        return status_lines(self.state, self.catalog, self.extensions)

    def snapshot(self) -> Dict[str, Any]:
        s = self.state
        price = s.active_price(BASE_MARKET_PRICE)
        view = asdict(s)
        view.pop("rng_state", None)
        return {
            "state": view,
            "derived": {
                "effective_capacity": effective_capacity(s),
                "brand_power": brand_power(s),
                "channel_demand": channel_demand(s),
                "channel_shares": player_shares(s, price, self.catalog, self.cfg),
                "prestige_eligible": is_eligible(s, self.cfg),
                "prestige_preview": preview_reset(s, self.cfg),
                "available_prestige_points": s.available_prestige_points(),
                "month": s.calendar.month_index(self.cfg.month_len_days),
            },
            "last_tick": asdict(self.last_result) if self.last_result is not None else None,
        }
