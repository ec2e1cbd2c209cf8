from typing import Callable, Iterator, List, Optional, Tuple

import paho.mqtt.client as mqtt
import pytest

from regimentlog.active_piece import ActivePieceRegister
from regimentlog.database import RegimentDatabase


class FakeReasonCode:
    """Stand-in for paho's ReasonCode."""

    def __init__(self, failure: bool = False):
        self.is_failure = failure

    def __str__(self):
        return "Unspecified error" if self.is_failure else "Success"


class FakeMqttClient:
    """Scripted MQTT client: acknowledges connect and subscribe, then delivers payloads."""

    def __init__(self,
                 payloads: Optional[List[bytes]] = None,
                 refuse_connect: bool = False,
                 refuse_subscribe: bool = False,
                 connect_error: Optional[Exception] = None):
        self.payloads = list(payloads or [])
        self.refuse_connect = refuse_connect
        self.refuse_subscribe = refuse_subscribe
        self.connect_error = connect_error
        self.subscriptions: List[Tuple[str, int]] = []
        self.connected_to: Optional[Tuple[str, int]] = None
        self.disconnected = False
        self._pending: List[Callable[[], None]] = []
        self.on_connect = None
        self.on_subscribe = None
        self.on_message = None

    def connect(self, host, port, keepalive=60):
        if self.connect_error is not None:
            raise self.connect_error
        self.connected_to = (host, port)
        self._pending.append(
            lambda: self.on_connect(self, None, {}, FakeReasonCode(self.refuse_connect), None))
        return mqtt.MQTT_ERR_SUCCESS

    def subscribe(self, topic, qos=0):
        self.subscriptions.append((topic, qos))
        self._pending.append(
            lambda: self.on_subscribe(self, None, 1, [FakeReasonCode(self.refuse_subscribe)], None))
        return mqtt.MQTT_ERR_SUCCESS, 1

    def loop(self, timeout=1.0):
        if self.disconnected:
            return mqtt.MQTT_ERR_NO_CONN

        if self._pending:
            self._pending.pop(0)()
            return mqtt.MQTT_ERR_SUCCESS

        if self.payloads:
            message = mqtt.MQTTMessage(topic=b"esp32/midi")
            message.payload = self.payloads.pop(0)
            self.on_message(self, None, message)
            return mqtt.MQTT_ERR_SUCCESS

        # Script exhausted: the broker closes the connection
        return mqtt.MQTT_ERR_CONN_LOST

    def disconnect(self):
        self.disconnected = True
        return mqtt.MQTT_ERR_SUCCESS


@pytest.fixture
def fake_mqtt():
    """The scripted MQTT client class."""
    return FakeMqttClient


@pytest.fixture
def db(tmp_path) -> Iterator[RegimentDatabase]:
    """A fresh database file per test."""
    database = RegimentDatabase(str(tmp_path / "practice.db"))
    yield database
    database.close()


@pytest.fixture
def register() -> ActivePieceRegister:
    """An empty active piece register with a short lock timeout."""
    return ActivePieceRegister(lock_timeout=0.1)
