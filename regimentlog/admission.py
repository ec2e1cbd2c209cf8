"""
Decides which tempo samples are worth storing.

A sample is logged when the tempo changed since the last stored entry, or
when the tempo has held steady for longer than the log interval. Steady
playing therefore costs at most one row per interval while every change is
captured immediately.
"""
from datetime import datetime, timedelta
from typing import Optional

from regimentlog.models import LogEntry

DEFAULT_LOG_INTERVAL = timedelta(minutes=5)


def should_log(current_bpm: int, now: datetime, previous: Optional[LogEntry],
               interval: timedelta = DEFAULT_LOG_INTERVAL) -> bool:
    """
    Decide whether a tempo sample should be stored.

    Args:
        current_bpm: Tempo of the incoming sample
        now: Time the sample arrived
        previous: Latest stored entry for the same piece, if any
        interval: How long an unchanged tempo goes unlogged

    Returns:
        True if the sample should be appended to the piece's log
    """
    if previous is None:
        return True

    if current_bpm != previous.bpm:
        return True

    return now - previous.timestamp > interval
