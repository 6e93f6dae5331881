"""Logging setup shared by entry points and embedding applications."""
import logging

from reading_list.core.config import get_settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | int | None = None) -> None:
    """
    Configure root logging for the reading list client.

    Args:
        level: Log level name or number. Defaults to the configured `log_level`.

    Raises:
        ValueError: If `level` is not a known level name.
    """
    if level is None:
        level = get_settings().log_level
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved
    logging.basicConfig(level=level, format=LOG_FORMAT)
