"""
Error log and status reporting helpers.
"""

import logging
from typing import Callable, List, Optional

from .constants import MAX_ERROR_LOG_LENGTH, WARNING_INTERVAL, WARNINGS_ALWAYS_SHOWN

logger = logging.getLogger(__name__)

# Progress callback: (percent_complete, message)
StatusCallback = Callable[[float, str], None]


def show_periodic_warning(
    log: logging.Logger,
    warning_count: int,
    message: str,
    always_shown: int = WARNINGS_ALWAYS_SHOWN,
    interval: int = WARNING_INTERVAL,
) -> bool:
    """
    Log a repeated warning without flooding the log.

    The first always_shown warnings are logged, then every interval-th one.

    Returns:
        True if the warning was logged
    """
    if warning_count <= always_shown or warning_count % interval == 0:
        if warning_count > always_shown:
            message = f"{message} (warning #{warning_count})"
        log.warning(message)
        return True
    return False


class ErrorLog:
    """
    Bounded log of per-record error messages.

    Messages are appended while the accumulated text is shorter than
    max_length; later messages are counted but not stored.
    """

    def __init__(self, max_length: int = MAX_ERROR_LOG_LENGTH):
        self.max_length = max_length
        self._lines: List[str] = []
        self._length = 0
        self.error_count = 0
        self.dropped_count = 0

    def __len__(self) -> int:
        return self._length

    def __bool__(self) -> bool:
        return self.error_count > 0

    def append(self, message: str) -> bool:
        """
        Record an error message.

        Returns:
            True if the message was stored, False if the log is full
        """
        self.error_count += 1
        if self._length >= self.max_length:
            self.dropped_count += 1
            return False
        self._lines.append(message)
        self._length += len(message) + 1
        return True

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    def text(self) -> str:
        return "\n".join(self._lines)

    def summary(self) -> str:
        if not self.error_count:
            return ""
        text = f"Invalid lines and/or annotation errors: {self.error_count}\n{self.text()}"
        if self.dropped_count:
            text += f"\n... {self.dropped_count} more not shown"
        return text


class ProcessingStatus:
    """
    Status channel passed into a processing call.

    Progress is reported through an optional callback that runs on the
    caller's thread.
    """

    def __init__(self, callback: Optional[StatusCallback] = None):
        self.callback = callback
        self.percent_complete = 0.0
        self.message = ""

    def update(self, percent_complete: float, message: str = "") -> None:
        self.percent_complete = percent_complete
        if message:
            self.message = message
        logger.debug(f"{percent_complete:.1f}% {message}")
        if self.callback is not None:
            self.callback(percent_complete, self.message)