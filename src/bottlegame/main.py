from __future__ import annotations

import logging
import os

from bottlegame.cli import main as cli_main


def configure_logging() -> None:
    level = os.environ.get("BOTTLEGAME_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(level=getattr(logging, level, logging.WARNING), format="%(levelname)s: %(message)s")


def main() -> int:
    configure_logging()
    return cli_main()


if __name__ == "__main__":
    raise SystemExit(main())
