"""Logger facade.

Modules use ``logging.getLogger(__name__)`` directly; handlers are installed
once by the process entry point (see ``punchin.app.run_sync``).
"""

import logging

from rich.logging import RichHandler

__all__ = ["get_logger", "setup_logging"]

_NOISY_LOGGERS = ("asyncpg", "alembic", "sqlalchemy.engine", "uvicorn.access")


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name or "punchin")


def setup_logging(level_name: str = "INFO", log_file: str | None = None) -> None:
    """Console via Rich, WARNING+ to an optional file."""
    console_handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=True,
        show_level=True,
        show_path=False,
        log_time_format="%H:%M:%S",
    )
    handlers: list[logging.Handler] = [console_handler]

    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.WARNING)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
        handlers.append(file_handler)

    level = getattr(logging, level_name.strip().upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s", handlers=handlers, force=True)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
