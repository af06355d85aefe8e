from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Minimal logging configuration for this package.

    Notes:
    - Uvicorn already configures handlers; this function mainly sets levels for our package.
    - Set `APP_LOG_LEVEL=DEBUG` (or INFO/WARNING/ERROR) to see key refreshes.
    - Token text is never logged, only the name of the failed check.
    """

    normalized = level.upper()
    logging.getLogger("firebase_verify").setLevel(normalized)
    # Ensure child loggers under firebase_verify.* inherit this level.
    logging.getLogger("firebase_verify").propagate = True
