from __future__ import annotations

import sys
from pathlib import Path


def _bootstrap_src() -> None:
    # Lets `python run.py` work from a checkout without installing the package.
    src = Path(__file__).resolve().parent / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))


def main() -> int:
    _bootstrap_src()

    from bottlegame.main import main as game_main

    return game_main()


if __name__ == "__main__":
    raise SystemExit(main())
