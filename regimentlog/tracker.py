"""
Regiment tracking core (MQTT tempo telemetry + persistence + web updates).
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from regimentlog.active_piece import ActivePieceRegister
from regimentlog.database import RegimentDatabase
from regimentlog.errors import LockContentionError, PersistenceError, SubscriptionError
from regimentlog.history import aggregate_history
from regimentlog.models import Regiment
from regimentlog.telemetry import TelemetryListener
from regimentlog.web_server import RegimentWebServer
import regimentlog.config as config

logger = logging.getLogger(__name__)


def validate_piece_names(names: Sequence[str]) -> List[str]:
    """
    Check piece names and strip surrounding whitespace.

    Raises:
        ValueError: If a name is not a non-blank string
    """
    for name in names:
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"Invalid piece name: {name!r}")
    return [name.strip() for name in names]


class RegimentTracker:
    """Main regiment tracking application."""

    def __init__(self,
                 db_path: Optional[str] = None,
                 enable_web_server: bool = True,
                 web_port: Optional[int] = None,
                 mqtt_host: Optional[str] = None,
                 mqtt_port: Optional[int] = None,
                 client_factory: Optional[Callable] = None):
        """Initialize regiment tracker components."""
        self.db = RegimentDatabase(db_path if db_path is not None else config.DATABASE_PATH)
        self.active_piece = ActivePieceRegister(lock_timeout=config.REGISTER_LOCK_TIMEOUT)

        self.listener = TelemetryListener(
            self.db,
            self.active_piece,
            host=mqtt_host if mqtt_host is not None else config.MQTT_HOST,
            port=mqtt_port if mqtt_port is not None else config.MQTT_PORT,
            topic=config.MQTT_TOPIC,
            client_id=config.MQTT_CLIENT_ID,
            keepalive=config.MQTT_KEEPALIVE,
            log_interval=timedelta(seconds=config.LOG_INTERVAL_SECONDS),
            min_bpm=config.MIN_BPM,
            max_bpm=config.MAX_BPM,
            client_factory=client_factory,
        )

        self.web_server: Optional[RegimentWebServer] = None
        if enable_web_server:
            port = web_port if web_port is not None else config.WEB_PORT
            self.web_server = RegimentWebServer(self, host=config.WEB_HOST, port=port)

        self.listener.on_bpm = self._on_bpm

        self.listener_thread: Optional[threading.Thread] = None
        self.running = False

    def create_full_regiment(self, piece_names: Optional[Sequence[str]] = None,
                             date: Optional[datetime] = None) -> int:
        """
        Create a regiment with its pieces.

        Args:
            piece_names: Piece names in order (defaults to config.DEFAULT_PIECE_NAMES)
            date: When the regiment takes place (defaults to now)

        Returns:
            ID of the new regiment

        Raises:
            ValueError: If a piece name is not a non-blank string
            PersistenceError: If the regiment could not be stored
        """
        names = list(piece_names) if piece_names is not None else list(config.DEFAULT_PIECE_NAMES)
        return self.db.create_regiment(date or datetime.now(), validate_piece_names(names))

    def mark_active_piece(self, piece_id: int):
        """Set the piece that incoming tempo telemetry is logged against."""
        self.active_piece.set_active(piece_id)

    def get_active_piece(self) -> Optional[int]:
        """Get the piece that incoming tempo telemetry is logged against."""
        return self.active_piece.get_active()

    def clear_active_piece(self):
        """Stop logging telemetry."""
        self.active_piece.clear()

    def load_practice_history(self) -> List[Regiment]:
        """Get all regiments, newest first, with their pieces and logs."""
        return aggregate_history(self.db.fetch_all_hierarchy())

    def get_status(self) -> Dict:
        """Get listener and active piece status."""
        status = {
            'listener_state': self.listener.state,
            'listener_running': self.listener.running,
            'topic': self.listener.topic,
            'messages_received': self.listener.messages_received,
            'entries_logged': self.listener.entries_logged,
            'active_piece_id': None,
            'active_piece_name': None,
        }

        try:
            piece_id = self.active_piece.get_active()
            status['active_piece_id'] = piece_id
            if piece_id is not None:
                piece = self.db.get_piece(piece_id)
                status['active_piece_name'] = piece.name if piece else None
        except (LockContentionError, PersistenceError) as e:
            logger.warning("Could not read active piece for status: %s", e)

        return status

    def _on_bpm(self, bpm: int):
        """Handle a parsed tempo reading."""
        if self.web_server:
            self.web_server.notify_bpm(bpm)

    def _run_listener(self):
        """Background thread running the telemetry listener."""
        try:
            self.listener.start()
        except SubscriptionError as e:
            logger.critical("Telemetry listener failed: %s", e)

    def start(self, block: bool = True):
        """Start the regiment tracker."""
        self.running = True

        if self.web_server:
            self.web_server.start()
            logger.info("Web interface available at http://localhost:%s", self.web_server.port)

        self.listener_thread = threading.Thread(target=self._run_listener, daemon=True)
        self.listener_thread.start()

        logger.info("Regiment tracker started, listening on %s", self.listener.topic)

        if not block:
            return

        try:
            while self.running:
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Received interrupt signal")
            self.stop()

    def stop(self):
        """Stop the regiment tracker."""
        if not self.running:
            return

        logger.info("Regiment tracker stopping...")
        self.running = False

        self.listener.stop()
        if self.listener_thread:
            self.listener_thread.join(timeout=5)

        if self.web_server:
            self.web_server.stop()

        self.db.close()
