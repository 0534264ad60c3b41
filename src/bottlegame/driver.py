from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from bottlegame.models import TickResult
from bottlegame.session import GameSession

logger = logging.getLogger(__name__)

RenderHook = Callable[[GameSession, TickResult], None]


def run_loop(
    session: GameSession,
    ticks: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
    render: Optional[RenderHook] = None,
    save: bool = True,
) -> int:
    """Tick, snapshot, render, wait. Runs forever when ``ticks`` is None.

    A failed tick is logged and counted; the loop carries on with the next one.

    Returns the number of ticks run.
    """

    n = 0
    while ticks is None or n < ticks:
        result: Optional[TickResult]
        try:
            result = session.tick()
        except Exception:
            logger.exception("tick %s failed", n)
            result = None
        if save and result is not None:
            try:
                session.save()
            except Exception:
                logger.exception("snapshot failed after tick %s", n)
        if render is not None and result is not None:
            try:
                render(session, result)
            except Exception:
                logger.exception("render hook failed after tick %s", n)
        n += 1
        if ticks is None or n < ticks:
            sleep(float(session.cfg.tick_seconds))
    return n
