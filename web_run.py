from __future__ import annotations

import os
import sys
from pathlib import Path


def _bootstrap_src() -> None:
    src = Path(__file__).resolve().parent / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))


def main() -> int:
    _bootstrap_src()

    import uvicorn

    from bottlegame.main import configure_logging
    from bottlegame.webapp import create_app

    configure_logging()
    # Idle mode: the server advances the game on its own timer unless BOTTLEGAME_AUTO_TICK=0.
    auto_tick = os.environ.get("BOTTLEGAME_AUTO_TICK", "1") != "0"
    host = os.environ.get("BOTTLEGAME_HOST", "127.0.0.1")
    port = int(os.environ.get("BOTTLEGAME_PORT", "8000"))
    uvicorn.run(create_app(auto_tick=auto_tick), host=host, port=port, reload=False)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
