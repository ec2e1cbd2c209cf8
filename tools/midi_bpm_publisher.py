#!/usr/bin/env python3
"""
Publish the tempo of a MIDI clock source to the regimentlog tempo topic.

Useful when the practice device is a sequencer or metronome that sends MIDI
clock instead of publishing BPM over MQTT itself.
"""
import argparse
import logging
import sys

import paho.mqtt.client as mqtt

from regimentlog.midi_clock import MidiClockTempo, MidiTempoPublisher, find_input_device
import regimentlog.config as config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="MIDI clock to MQTT BPM publisher")
    parser.add_argument("--device", default=config.MIDI_DEVICE_KEYWORD, help="Keyword of the MIDI input")
    parser.add_argument("--mqtt-host", default=config.MQTT_HOST)
    parser.add_argument("--mqtt-port", type=int, default=config.MQTT_PORT)
    parser.add_argument("--topic", default=config.MQTT_TOPIC)
    parser.add_argument("--beats", type=int, default=4, help="Beats averaged per estimate")
    args = parser.parse_args()

    port_name = find_input_device(args.device)
    if not port_name:
        print("ERROR: No MIDI input device found!")
        sys.exit(1)

    client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id="regimentlog-midi-clock")
    client.connect(args.mqtt_host, args.mqtt_port)
    client.loop_start()

    publisher = MidiTempoPublisher(client, args.topic, MidiClockTempo(beats_per_estimate=args.beats))
    print(f"Publishing tempo from {port_name} to {args.topic}")
    print("Press Ctrl+C to stop\n")

    try:
        publisher.run(port_name)
    except KeyboardInterrupt:
        publisher.stop()
        print("\nStopped")
    finally:
        client.loop_stop()
        client.disconnect()


if __name__ == "__main__":
    main()
