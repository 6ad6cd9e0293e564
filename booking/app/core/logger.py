"""Logger facade.

Module code uses ``logging.getLogger(__name__)``; entrypoints call
``setup_logging`` once to install the console (Rich) and optional file handler.
"""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from booking.app.core.constants import LOG_FILE, LOG_LEVEL_NAME

__all__ = ["setup_logging"]

_CONFIGURED = False


def setup_logging(level_name: str | None = None, log_file: str | None = None) -> None:
    """Configure root logging: Rich console for INFO+, plain file for WARNING+."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    console_handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=True,
        show_level=True,
        show_path=False,
        log_time_format="%H:%M:%S",
    )
    handlers: list[logging.Handler] = [console_handler]

    path = log_file if log_file is not None else LOG_FILE
    if path:
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.WARNING)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
        handlers.append(file_handler)

    level = getattr(logging, (level_name or LOG_LEVEL_NAME).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s", handlers=handlers)

    # Reduce noisy logs but keep warnings
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("alembic").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _CONFIGURED = True
