"""Command-line entry point: ``python -m anchorr`` or ``anchorr``."""

from __future__ import annotations

import sys

import anyio

from .errors import ConfigurationMissing
from .log import get_logger, setup_logging
from .loop import run_main_loop
from .settings import Settings


def main() -> int:
    try:
        settings = Settings.from_env()
    except ConfigurationMissing as exc:
        setup_logging()
        get_logger(__name__).error("startup.config_error", error=str(exc))
        return 2

    setup_logging(settings.log_level, json=settings.log_json)
    try:
        anyio.run(run_main_loop, settings)
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
