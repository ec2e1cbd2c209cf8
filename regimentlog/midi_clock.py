"""
Tempo source bridge: derives BPM from a MIDI clock and publishes it to the
tempo topic.
"""
import time
import logging
from collections import deque
from typing import Callable, Optional

import mido
import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

PULSES_PER_QUARTER = 24


class MidiClockTempo:
    """
    Estimates tempo from MIDI clock pulses (24 per quarter note).

    An estimate is produced on every beat once enough pulses have arrived,
    averaged over the last `beats_per_estimate` beats. Transport messages
    (start, stop, continue) reset the estimate.
    """

    def __init__(self, beats_per_estimate: int = 4, clock: Callable[[], float] = time.monotonic):
        self.beats_per_estimate = beats_per_estimate
        self.clock = clock
        self.pulse_times = deque(maxlen=beats_per_estimate * PULSES_PER_QUARTER + 1)
        self.pulse_count = 0

    def reset(self):
        self.pulse_times.clear()
        self.pulse_count = 0

    def process_message(self, msg: mido.Message) -> Optional[float]:
        """
        Feed one MIDI message.

        Returns:
            BPM estimate rounded to 0.1 when a beat completes, else None
        """
        if msg.type in ('start', 'stop', 'continue'):
            self.reset()
            return None

        if msg.type != 'clock':
            return None

        self.pulse_times.append(self.clock())
        self.pulse_count += 1

        if self.pulse_count % PULSES_PER_QUARTER != 1:
            return None
        if len(self.pulse_times) < self.pulse_times.maxlen:
            return None

        elapsed = self.pulse_times[-1] - self.pulse_times[0]
        if elapsed <= 0:
            return None

        return round(60.0 * self.beats_per_estimate / elapsed, 1)


def find_input_device(device_keyword: str = '') -> Optional[str]:
    """
    Find MIDI input device matching keyword.

    Returns:
        Device name if found, None otherwise
    """
    ports = mido.get_input_names()

    if not device_keyword:
        for port in ports:
            if 'Midi Through' not in port:
                return port
        return None

    for port in ports:
        if device_keyword.lower() in port.lower():
            return port

    return None


class MidiTempoPublisher:
    """Reads a MIDI clock and publishes BPM estimates over MQTT."""

    def __init__(self, client: mqtt.Client, topic: str, tempo: Optional[MidiClockTempo] = None):
        self.client = client
        self.topic = topic
        self.tempo = tempo or MidiClockTempo()
        self.running = False

    def handle_message(self, msg: mido.Message) -> Optional[float]:
        """Publish the tempo estimate, if any, produced by one MIDI message."""
        bpm = self.tempo.process_message(msg)
        if bpm is not None:
            self.client.publish(self.topic, f"{bpm:.1f}", qos=1)
            logger.debug(f"Published {bpm:.1f} BPM to {self.topic}")
        return bpm

    def run(self, port_name: str):
        """Block reading the MIDI port until stop() is called."""
        self.running = True
        logger.info(f"Reading MIDI clock from {port_name}")

        with mido.open_input(port_name) as inport:
            while self.running:
                for msg in inport.iter_pending():
                    self.handle_message(msg)
                time.sleep(0.001)

        logger.info("MIDI tempo publisher stopped")

    def stop(self):
        self.running = False
