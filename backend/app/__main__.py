"""Run the events API with uvicorn: ``python -m backend.app``."""
from __future__ import annotations

import logging
import os
import sys

import uvicorn

from .config import Settings
from .errors import ConfigError

logger = logging.getLogger("backend.app")


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    from .main import create_app

    logger.info("Starting events API on %s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
