"""
MQTT tempo telemetry listener.

Subscribes to the tempo topic, forwards every parsed BPM value to the UI and
stores samples against the active piece when the admission policy allows it.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Optional

import paho.mqtt.client as mqtt

from regimentlog.active_piece import ActivePieceRegister
from regimentlog.admission import DEFAULT_LOG_INTERVAL, should_log
from regimentlog.database import RegimentDatabase
from regimentlog.errors import (
    DecodeError,
    LockContentionError,
    PersistenceError,
    SubscriptionError,
)

logger = logging.getLogger(__name__)

DISCONNECTED = "disconnected"
SUBSCRIBED = "subscribed"


def parse_bpm(payload: bytes, min_bpm: int = 1, max_bpm: int = 999) -> int:
    """
    Parse a telemetry payload into an integer BPM.

    The payload is UTF-8 text holding an integer or decimal number.
    Fractional values are rounded to the nearest integer (ties to even).

    Raises:
        DecodeError: If the payload is not UTF-8, not a finite number, or
            outside [min_bpm, max_bpm] after rounding
    """
    try:
        text = bytes(payload).decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError("Received non-UTF8 telemetry message") from e

    try:
        value = float(text.strip())
    except ValueError as e:
        raise DecodeError(f"Failed to parse BPM: {text!r}") from e

    if not math.isfinite(value):
        raise DecodeError(f"BPM is not a finite number: {text!r}")

    bpm = round(value)
    if not min_bpm <= bpm <= max_bpm:
        raise DecodeError(f"BPM {bpm} outside accepted range {min_bpm}-{max_bpm}")

    return bpm


class TelemetryListener:
    """
    Listens for BPM messages on a single MQTT topic.

    start() blocks for the lifetime of the connection; run it from a separate
    thread. A failed connect or subscribe raises SubscriptionError and is not
    retried. When the broker connection drops the listener ends for good.
    """

    def __init__(self,
                 db: RegimentDatabase,
                 register: ActivePieceRegister,
                 host: str = "localhost",
                 port: int = 1883,
                 topic: str = "esp32/midi",
                 client_id: str = "regimentlog",
                 keepalive: int = 5,
                 log_interval: timedelta = DEFAULT_LOG_INTERVAL,
                 min_bpm: int = 1,
                 max_bpm: int = 999,
                 client_factory: Optional[Callable[[], mqtt.Client]] = None,
                 clock: Callable[[], datetime] = datetime.now):
        """
        Initialize telemetry listener.

        Args:
            db: Store that receives admitted log entries
            register: Shared active piece register
            host: MQTT broker host
            port: MQTT broker port
            topic: Topic carrying BPM telemetry
            client_id: MQTT client identifier
            keepalive: MQTT keepalive in seconds
            log_interval: How long an unchanged tempo goes unlogged
            min_bpm: Lowest accepted BPM
            max_bpm: Highest accepted BPM
            client_factory: Builds the MQTT client (tests pass a fake)
            clock: Source of the current wall-clock time
        """
        self.db = db
        self.register = register
        self.host = host
        self.port = port
        self.topic = topic
        self.client_id = client_id
        self.keepalive = keepalive
        self.log_interval = log_interval
        self.min_bpm = min_bpm
        self.max_bpm = max_bpm
        self.client_factory = client_factory
        self.clock = clock

        self.client: Optional[mqtt.Client] = None
        self.state = DISCONNECTED
        self.running = False
        self._setup_error: Optional[str] = None

        self.messages_received = 0
        self.entries_logged = 0

        # Callbacks
        self.on_bpm: Optional[Callable[[int], None]] = None  # Called for every parsed BPM

    def _create_client(self) -> mqtt.Client:
        if self.client_factory:
            client = self.client_factory()
        else:
            client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=self.client_id)
        client.on_connect = self._on_connect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message
        return client

    def start(self):
        """
        Connect, subscribe and process messages until the connection closes.

        Raises:
            SubscriptionError: If the broker cannot be reached or the
                subscription is refused
        """
        self.running = True
        self._setup_error = None
        self.client = self._create_client()

        try:
            self.client.connect(self.host, self.port, self.keepalive)
        except (OSError, ValueError) as e:
            self.running = False
            raise SubscriptionError(f"Cannot connect to MQTT broker {self.host}:{self.port}: {e}") from e

        logger.info(f"Telemetry listener connecting to {self.host}:{self.port}")

        while self.running:
            rc = self.client.loop(timeout=1.0)

            if self._setup_error:
                self.running = False
                self.client.disconnect()
                raise SubscriptionError(self._setup_error)

            if rc != mqtt.MQTT_ERR_SUCCESS:
                logger.warning(f"MQTT connection closed ({mqtt.error_string(rc)}), "
                               "telemetry listener stopping")
                break

        self.running = False
        logger.info("Telemetry listener stopped")

    def stop(self):
        """Stop the receive loop and close the connection."""
        self.running = False
        if self.client is not None:
            self.client.disconnect()

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            self._setup_error = f"MQTT broker refused connection: {reason_code}"
            return

        result, _mid = client.subscribe(self.topic, qos=1)
        if result != mqtt.MQTT_ERR_SUCCESS:
            self._setup_error = f"Failed to subscribe to {self.topic}: {mqtt.error_string(result)}"

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        refused = [rc for rc in reason_code_list if rc.is_failure]
        if refused:
            self._setup_error = f"Subscription to {self.topic} refused: {refused[0]}"
            return

        self.state = SUBSCRIBED
        logger.info(f"Subscribed to MQTT topic {self.topic}")

    def _on_message(self, client, userdata, msg):
        self.handle_payload(msg.payload)

    def handle_payload(self, payload: bytes) -> bool:
        """
        Process one telemetry message.

        Malformed payloads and storage failures are logged and dropped.

        Returns:
            True if a log entry was written
        """
        self.messages_received += 1

        try:
            bpm = parse_bpm(payload, self.min_bpm, self.max_bpm)
        except DecodeError as e:
            logger.warning(f"Dropping telemetry message: {e}")
            return False

        logger.debug(f"Received and parsed BPM: {bpm}")

        if self.on_bpm:
            try:
                self.on_bpm(bpm)
            except Exception as e:
                logger.error(f"Error forwarding BPM to UI: {e}")

        try:
            piece_id = self.register.get_active()
            if piece_id is None:
                return False

            # Stored timestamps have whole-second precision
            now = self.clock().replace(microsecond=0)
            previous = self.db.latest_log_entry(piece_id)
            if not should_log(bpm, now, previous, self.log_interval):
                return False

            self.db.append_log_entry(piece_id, bpm, now)
        except (PersistenceError, LockContentionError) as e:
            logger.error(f"Failed to log telemetry: {e}")
            return False

        self.entries_logged += 1
        return True
