"""Process-wide logging setup for the scheduler and the HTTP server."""

import logging
import os

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y/%m/%d %H:%M:%S"


def configure_logging(level: str | int = "INFO", log_file: str | None = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Logging level name or number
        log_file: Optional append-only log file next to the console output

    Logging is observability only: a log file that cannot be opened is
    reported on the console and skipped, and failing writes are dropped.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        try:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))
        except OSError as e:
            logging.getLogger(__name__).warning(
                f"Cannot open log file {log_file}: {e}"
            )

    logging.raiseExceptions = False
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
