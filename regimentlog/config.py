"""
Configuration for the practice regiment logger.

Every value can be overridden with an environment variable of the same name
prefixed with ``REGIMENTLOG_`` (e.g. ``REGIMENTLOG_MQTT_HOST``).
"""
import os


def _env(name, default):
    value = os.environ.get(f"REGIMENTLOG_{name}")
    if value is None:
        return default
    if isinstance(default, bool):
        return value.lower() in ("1", "true", "yes")
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, tuple):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    return value


# Database
DATABASE_PATH = _env("DATABASE_PATH", "practice.db")

# MQTT broker and tempo topic
MQTT_HOST = _env("MQTT_HOST", "localhost")
MQTT_PORT = _env("MQTT_PORT", 1883)
MQTT_TOPIC = _env("MQTT_TOPIC", "esp32/midi")
MQTT_CLIENT_ID = _env("MQTT_CLIENT_ID", "regimentlog")
MQTT_KEEPALIVE = _env("MQTT_KEEPALIVE", 5)

# Tempo log admission
LOG_INTERVAL_SECONDS = _env("LOG_INTERVAL_SECONDS", 300.0)  # Re-log an unchanged tempo after 5 minutes
MIN_BPM = _env("MIN_BPM", 1)
MAX_BPM = _env("MAX_BPM", 999)

# Seconds to wait for the active piece lock before giving up
REGISTER_LOCK_TIMEOUT = _env("REGISTER_LOCK_TIMEOUT", 2.0)

# Pieces used when a regiment is created without names
DEFAULT_PIECE_NAMES = _env("DEFAULT_PIECE_NAMES", ("Piece 1", "Piece 2", "Piece 3"))

# Web server configuration
WEB_HOST = _env("WEB_HOST", "0.0.0.0")
WEB_PORT = _env("WEB_PORT", 5000)

# MIDI clock source for the tempo bridge
MIDI_DEVICE_KEYWORD = _env("MIDI_DEVICE_KEYWORD", "")

LOG_FILE = _env("LOG_FILE", "regimentlog.log")
