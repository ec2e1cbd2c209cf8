"""
Web server for regimentlog - HTTP commands for regiments and the active piece,
plus live tempo updates via WebSocket.
"""
import logging
import threading
import time
from flask import Flask, jsonify, request, make_response
from flask_socketio import SocketIO

from regimentlog.errors import LockContentionError, PersistenceError
from regimentlog.history import history_to_json
from regimentlog.models import parse_timestamp

logger = logging.getLogger(__name__)

SQLITE_INT_MIN = -2 ** 63
SQLITE_INT_MAX = 2 ** 63 - 1


class RegimentWebServer:
    """Web server for regimentlog with real-time tempo updates via WebSocket."""

    def __init__(self, tracker, host='0.0.0.0', port=5000):
        """
        Initialize web server.

        Args:
            tracker: Reference to RegimentTracker instance
            host: Host to bind to
            port: Port to bind to
        """
        self.tracker = tracker
        self.host = host
        self.port = port

        self.app = Flask(__name__)
        self.app.config['SECRET_KEY'] = 'regimentlog-secret-key-change-in-production'
        self.app.config['JSON_SORT_KEYS'] = False

        self.socketio = SocketIO(self.app, cors_allowed_origins='*')

        self._setup_routes()

        self.server_thread = None
        self.running = False

    def _setup_routes(self):
        """Setup Flask routes."""

        @self.app.route('/api/regiments', methods=['POST'])
        def create_full_regiment():
            """Create a regiment together with its pieces."""
            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                data = {}
            piece_names = data.get('pieces')

            if piece_names is not None and not isinstance(piece_names, list):
                return jsonify({'error': 'pieces must be a list of names'}), 400

            date = None
            if data.get('date'):
                try:
                    date = parse_timestamp(data['date'])
                except (TypeError, ValueError):
                    return jsonify({'error': f"Invalid date: {data['date']}"}), 400
                if date.tzinfo is not None:
                    date = date.astimezone().replace(tzinfo=None)

            try:
                regiment_id = self.tracker.create_full_regiment(piece_names, date=date)
            except ValueError as e:
                return jsonify({'error': str(e)}), 400
            except PersistenceError as e:
                return jsonify({'error': f"Failed to insert regiment: {e}"}), 500

            return jsonify({'success': True, 'regiment_id': regiment_id}), 201

        @self.app.route('/api/pieces/active', methods=['POST'])
        def mark_active_piece():
            """Mark a piece as the one being practiced."""
            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                data = {}
            piece_id = data.get('piece_id')

            if not isinstance(piece_id, int) or isinstance(piece_id, bool):
                return jsonify({'error': 'piece_id must be an integer'}), 400
            # SQLite integers are signed 64-bit
            if not SQLITE_INT_MIN <= piece_id <= SQLITE_INT_MAX:
                return jsonify({'error': 'piece_id is out of range'}), 400

            try:
                self.tracker.mark_active_piece(piece_id)
            except LockContentionError as e:
                return jsonify({'error': f"Failed to lock active piece: {e}"}), 503

            return jsonify({'success': True, 'piece_id': piece_id})

        @self.app.route('/api/pieces/active', methods=['GET'])
        def get_active_piece():
            """Get the piece currently being practiced."""
            try:
                piece_id = self.tracker.get_active_piece()
            except LockContentionError as e:
                return jsonify({'error': f"Failed to lock active piece: {e}"}), 503

            return jsonify({'piece_id': piece_id})

        @self.app.route('/api/pieces/active', methods=['DELETE'])
        def clear_active_piece():
            """Stop logging tempo against any piece."""
            try:
                self.tracker.clear_active_piece()
            except LockContentionError as e:
                return jsonify({'error': f"Failed to lock active piece: {e}"}), 503

            return jsonify({'success': True})

        @self.app.route('/api/history')
        def load_practice_history():
            """Get all regiments with their pieces and tempo logs."""
            try:
                regiments = self.tracker.load_practice_history()
            except PersistenceError as e:
                return jsonify({'error': f"Failed to load data: {e}"}), 500

            response = make_response(history_to_json(regiments))
            response.headers['Content-Type'] = 'application/json'
            return response

        @self.app.route('/api/status')
        def get_status():
            """Get telemetry listener and active piece status."""
            return jsonify(self.tracker.get_status())

    def notify_bpm(self, bpm: int):
        """Push a live tempo reading to connected clients."""
        self.socketio.emit('mqtt_bpm', {
            'bpm': bpm,
            'timestamp': time.time()
        })

    def start(self):
        """Start the web server in a background thread."""
        if self.running:
            logger.warning("Web server already running")
            return

        self.running = True

        def run_server():
            logger.info(f"Starting web server on {self.host}:{self.port}")
            self.socketio.run(self.app, host=self.host, port=self.port,
                              allow_unsafe_werkzeug=True, debug=False)

        self.server_thread = threading.Thread(target=run_server, daemon=True)
        self.server_thread.start()
        logger.info("Web server started in background thread")

    def stop(self):
        """Stop the web server."""
        self.running = False
        logger.info("Web server stopped")
