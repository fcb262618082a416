from __future__ import annotations

import logging

from adminpanel.core.config import get_settings


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging() -> None:
    # Apply one root configuration for the API process and CLI scripts.
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    # SQLAlchemy echoes every statement at INFO; keep it quiet unless debugging.
    logging.getLogger("sqlalchemy.engine").setLevel(max(level, logging.WARNING))
