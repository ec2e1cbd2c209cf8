"""
Process-wide register of the piece currently being practiced.
"""
import threading
import logging
from typing import Optional

from regimentlog.errors import LockContentionError

logger = logging.getLogger(__name__)


class ActivePieceRegister:
    """
    Lock-guarded single slot holding the active piece ID.

    The value lives in memory only and is not checked against the database,
    so it may name a piece that no longer exists. Create one instance at
    startup and hand it to every component that needs it.
    """

    def __init__(self, lock_timeout: float = 2.0):
        """
        Args:
            lock_timeout: Seconds to wait for the lock before raising LockContentionError
        """
        self.lock_timeout = lock_timeout
        self._lock = threading.Lock()
        self._piece_id: Optional[int] = None

    def _acquire(self):
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise LockContentionError(
                f"Could not acquire active piece lock within {self.lock_timeout}s")

    def set_active(self, piece_id: int):
        """Mark a piece as active, replacing any previous one."""
        self._acquire()
        try:
            previous = self._piece_id
            self._piece_id = piece_id
        finally:
            self._lock.release()
        logger.info("Active piece changed: %s -> %s", previous, piece_id)

    def get_active(self) -> Optional[int]:
        """Get the active piece ID, or None if no piece is active."""
        self._acquire()
        try:
            return self._piece_id
        finally:
            self._lock.release()

    def clear(self):
        """Stop logging telemetry against any piece."""
        self._acquire()
        try:
            previous = self._piece_id
            self._piece_id = None
        finally:
            self._lock.release()
        logger.info("Active piece cleared (was %s)", previous)
