from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from bottlegame.catalog import CATALOG, Catalog, round_half_up
from bottlegame.config import BASE_CAPACITY_PER_LINE
from bottlegame.eventlog import Sink, safe_emit
from bottlegame.models import SimulationState, TickResult

logger = logging.getLogger(__name__)


class SimulationExtension:
    """A feature module hooked into the tick loop and the render pass.

    Extensions are listed explicitly and run in list order after the core
    tick steps. Both hooks default to doing nothing.
    """

    name = "extension"

    def on_tick(self, state: SimulationState, result: TickResult, catalog: Catalog, sink: Optional[Sink]) -> None:
        return None

    def on_render(self, state: SimulationState, catalog: Catalog) -> List[str]:
        return []


class BottleFormatExtension(SimulationExtension):
    """Keeps line capacity in step with the active bottle format."""

    name = "bottle_format"

    def on_tick(self, state: SimulationState, result: TickResult, catalog: Catalog, sink: Optional[Sink]) -> None:
        fmt = catalog.bottle_formats.get(state.bottle_format)
        if fmt is None:
            return
        lines = max(1, int(state.production_lines))
        expected = round_half_up(BASE_CAPACITY_PER_LINE * lines * fmt.capacity_multiplier)
        if state.capacity_per_hour < expected:
            state.capacity_per_hour = expected

    def on_render(self, state: SimulationState, catalog: Catalog) -> List[str]:
        fmt = catalog.bottle_formats.get(state.bottle_format)
        if fmt is None:
            return []
        return [f"Bottle format: {fmt.label} ({fmt.note})"]


class CashWatchExtension(SimulationExtension):
    """Warns once each time cash dips below zero."""

    name = "cash_watch"

    def on_tick(self, state: SimulationState, result: TickResult, catalog: Catalog, sink: Optional[Sink]) -> None:
        if state.cash < 0 and not state.in_debt:
            state.in_debt = True
            safe_emit(sink, "Cash went negative. Fixed costs keep running; sell stock to recover.", "bad")
        elif state.cash >= 0 and state.in_debt:
            state.in_debt = False
            safe_emit(sink, "Cash is back above zero.", "good")

    def on_render(self, state: SimulationState, catalog: Catalog) -> List[str]:
        return ["Warning: cash is negative."] if state.in_debt else []


DEFAULT_EXTENSIONS: Sequence[SimulationExtension] = (BottleFormatExtension(), CashWatchExtension())


def run_tick_hooks(
    extensions: Iterable[SimulationExtension],
    state: SimulationState,
    result: TickResult,
    catalog: Catalog = CATALOG,
    sink: Optional[Sink] = None,
) -> None:
    for ext in extensions:
        try:
            ext.on_tick(state, result, catalog, sink)
        except Exception:
            logger.exception("extension %s failed during tick", getattr(ext, "name", ext))


def render_panels(
    extensions: Iterable[SimulationExtension], state: SimulationState, catalog: Catalog = CATALOG
) -> List[str]:
    lines: List[str] = []
    for ext in extensions:
        try:
            lines.extend(ext.on_render(state, catalog))
        except Exception:
            logger.exception("extension %s failed during render", getattr(ext, "name", ext))
    return lines
