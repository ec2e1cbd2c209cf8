import mido
import pytest

from regimentlog import midi_clock
from regimentlog.midi_clock import PULSES_PER_QUARTER, MidiClockTempo, MidiTempoPublisher, find_input_device


class SteppedClock:
    """Returns a time advancing by a fixed step on each call."""

    def __init__(self, step):
        self.step = step
        self.now = 0.0

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


class RecordingClient:
    def __init__(self):
        self.published = []

    def publish(self, topic, payload, qos=0):
        self.published.append((topic, payload, qos))


def _pulse_interval(bpm):
    return 60.0 / bpm / PULSES_PER_QUARTER


def _feed(tempo, count):
    return [tempo.process_message(mido.Message('clock')) for _ in range(count)]


def test_estimate_after_window_fills():
    tempo = MidiClockTempo(beats_per_estimate=2, clock=SteppedClock(_pulse_interval(120)))

    estimates = [bpm for bpm in _feed(tempo, 2 * PULSES_PER_QUARTER + 1) if bpm is not None]

    assert estimates == [120.0]


def test_estimate_once_per_beat():
    tempo = MidiClockTempo(beats_per_estimate=1, clock=SteppedClock(_pulse_interval(90)))

    estimates = [bpm for bpm in _feed(tempo, 3 * PULSES_PER_QUARTER + 1) if bpm is not None]

    assert estimates == pytest.approx([90.0, 90.0, 90.0])


def test_transport_messages_reset():
    tempo = MidiClockTempo(beats_per_estimate=1, clock=SteppedClock(_pulse_interval(100)))
    _feed(tempo, PULSES_PER_QUARTER)

    assert tempo.process_message(mido.Message('stop')) is None
    assert tempo.pulse_count == 0
    assert len(tempo.pulse_times) == 0


def test_other_messages_ignored():
    tempo = MidiClockTempo()

    assert tempo.process_message(mido.Message('note_on', note=60, velocity=64)) is None
    assert tempo.pulse_count == 0


def test_publisher_sends_estimates():
    client = RecordingClient()
    tempo = MidiClockTempo(beats_per_estimate=1, clock=SteppedClock(_pulse_interval(72)))
    publisher = MidiTempoPublisher(client, "esp32/midi", tempo)

    for _ in range(PULSES_PER_QUARTER + 1):
        publisher.handle_message(mido.Message('clock'))

    assert client.published == [("esp32/midi", "72.0", 1)]


def test_find_input_device(monkeypatch):
    monkeypatch.setattr(midi_clock.mido, 'get_input_names',
                        lambda: ['Midi Through:0', 'Metronome Clock:1'])

    assert find_input_device('') == 'Metronome Clock:1'
    assert find_input_device('metronome') == 'Metronome Clock:1'
    assert find_input_device('piano') is None
