from __future__ import annotations

import logging

from .config import settings

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for the API process.

    Module loggers (``logging.getLogger(__name__)``) inherit from the root, so
    services never configure handlers themselves.
    """
    resolved = (level or settings.LOG_LEVEL or "INFO").upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
    # SQL echo is noisy at INFO; keep it for explicit DEBUG runs only
    if resolved != "DEBUG":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
