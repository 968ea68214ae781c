import logging
import os
from datetime import datetime, timezone

from pythonjsonlogger import jsonlogger


def format_timestamp(ts: float) -> str:
    """Format a POSIX timestamp as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def creation_time(stat_result: os.stat_result) -> float:
    """Birth time where the platform reports it, otherwise ctime."""
    return getattr(stat_result, "st_birthtime", stat_result.st_ctime)


def init_vfs_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    clear_existing_handlers: bool = True,
) -> None:
    """
    Sets up console logging for hosts embedding the task filesystem.

    Args:
        level: The desired logging level for the root logger.
        json_format: If True, emit one JSON object per record
                     (python-json-logger) instead of plain text.
        clear_existing_handlers: If True, removes any handlers already attached
                                 to the root logger so repeated setup does not
                                 duplicate output.
    """
    root_logger = logging.getLogger()

    if clear_existing_handlers:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler()

    if json_format:
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s"
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(levelname)s - [%(name)s] %(message)s"
        )
    stream_handler.setFormatter(formatter)

    root_logger.addHandler(stream_handler)
    root_logger.setLevel(level)

    logging.getLogger(__name__).info(
        f"Task VFS logging setup complete. Root logger level set to {logging.getLevelName(level)}."
    )
