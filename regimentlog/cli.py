"""
CLI entrypoint for regimentlog.

`/main.py` delegates to `regimentlog.cli.main()` to keep service scripts stable.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from datetime import datetime
from typing import List, Optional

from regimentlog.database import RegimentDatabase
from regimentlog.errors import PersistenceError
from regimentlog.history import aggregate_history, format_history
from regimentlog.tracker import RegimentTracker, validate_piece_names
import regimentlog.config as config


def _configure_logging():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(config.LOG_FILE),
            logging.StreamHandler(sys.stdout),
        ],
    )


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    _configure_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Practice Regiment Tempo Logger")
    parser.add_argument("--db", type=str, default=config.DATABASE_PATH, help="Path to the SQLite database")
    parser.add_argument("--mqtt-host", type=str, default=config.MQTT_HOST, help="MQTT broker host")
    parser.add_argument("--mqtt-port", type=int, default=config.MQTT_PORT, help="MQTT broker port")
    parser.add_argument("--port", type=int, default=config.WEB_PORT, help="Web server port")
    parser.add_argument("--no-web", action="store_true", help="Run without the web server")
    parser.add_argument("--show-history", action="store_true", help="Show practice history and exit")
    parser.add_argument(
        "--create-regiment",
        nargs="*",
        metavar="PIECE",
        default=None,
        help="Create a regiment with the given piece names and exit",
    )

    args = parser.parse_args(argv)

    if args.show_history or args.create_regiment is not None:
        piece_names = None
        if args.create_regiment is not None:
            try:
                piece_names = validate_piece_names(args.create_regiment or config.DEFAULT_PIECE_NAMES)
            except ValueError as e:
                print(f"Error: {e}")
                return 1

        try:
            db = RegimentDatabase(args.db)
        except PersistenceError as e:
            print(f"Error: {e}")
            return 1

        try:
            if piece_names is not None:
                regiment_id = db.create_regiment(datetime.now(), piece_names)
                print(f"\nCreated regiment {regiment_id} with {len(piece_names)} piece(s).\n")

            if args.show_history:
                regiments = aggregate_history(db.fetch_all_hierarchy())
                print("\nPractice Regiments:")
                print("=" * 80)
                if regiments:
                    print(format_history(regiments))
                else:
                    print("No regiments yet.")
        except PersistenceError as e:
            print(f"Error: {e}")
            return 1
        finally:
            db.close()
        return 0

    tracker = RegimentTracker(
        db_path=args.db,
        enable_web_server=not args.no_web,
        web_port=args.port,
        mqtt_host=args.mqtt_host,
        mqtt_port=args.mqtt_port,
    )

    def signal_handler(signum, frame):
        logger.info("Received signal %s", signum)
        tracker.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    print("=" * 60)
    print("Practice Regiment Tempo Logger")
    print("=" * 60)
    print(f"MQTT broker: {args.mqtt_host}:{args.mqtt_port} (topic {config.MQTT_TOPIC})")
    if not args.no_web:
        print(f"Web interface: http://localhost:{args.port}")
    print("Listening for tempo telemetry...\n")

    tracker.start()
    return 0


if __name__ == "__main__":
    sys.exit(main())
