import logging
import sys
from typing import Optional

LOG_FORMAT = "[%(asctime)s][%(name)s][%(levelname)s] %(message)s"
DEFAULT_LOG_LEVEL = logging.INFO


class LZLogger:
    """
    Named logger that writes to stdout.
    Repeated construction with the same name reuses the underlying logger
    without stacking handlers.

    Usage:
        LZLogger("ZMPTracker").info("...")
    """

    def __init__(self, name: str, level: Optional[int] = None) -> None:
        self._logger = logging.getLogger(name)
        if not self._logger.handlers:
            handler = logging.StreamHandler(stream=sys.stdout)
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            self._logger.addHandler(handler)
            self._logger.propagate = False
            self._logger.setLevel(DEFAULT_LOG_LEVEL)
        # Only an explicit level overrides the one already set on the logger.
        if level is not None:
            self._logger.setLevel(level)

    @property
    def name(self) -> str:
        return self._logger.name

    def set_level(self, level: int) -> None:
        self._logger.setLevel(level)

    def debug(self, message: str) -> None:
        self._logger.debug(message)

    def info(self, message: str) -> None:
        self._logger.info(message)

    def warning(self, message: str) -> None:
        self._logger.warning(message)

    def error(self, message: str) -> None:
        self._logger.error(message)
