"""
Database module for storing practice regiments, their pieces and tempo logs.
"""
import sqlite3
import threading
from datetime import datetime
from typing import Optional, List, Sequence
import logging

from regimentlog.errors import PersistenceError
from regimentlog.models import (
    HierarchyRow,
    LogEntry,
    Piece,
    format_timestamp,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


class RegimentDatabase:
    """Manages SQLite database for practice regiment tracking."""

    def __init__(self, db_path: str = "practice.db"):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.conn: Optional[sqlite3.Connection] = None
        # One connection is shared by the telemetry thread and the web server
        self._lock = threading.RLock()
        self._init_database()

    def _init_database(self):
        """Initialize database connection and create tables if needed."""
        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute('PRAGMA foreign_keys = ON')

            with self.conn:
                self.conn.execute('''
                    CREATE TABLE IF NOT EXISTS practice_regiment (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        date TEXT NOT NULL
                    )
                ''')

                self.conn.execute('''
                    CREATE TABLE IF NOT EXISTS practice_piece (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        practice_regiment_id INTEGER NOT NULL
                            REFERENCES practice_regiment(id),
                        name TEXT NOT NULL
                    )
                ''')

                self.conn.execute('''
                    CREATE TABLE IF NOT EXISTS practice_piece_log (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        practice_piece_id INTEGER NOT NULL
                            REFERENCES practice_piece(id),
                        bpm INTEGER NOT NULL,
                        timestamp TEXT NOT NULL
                    )
                ''')

                self.conn.execute('''
                    CREATE INDEX IF NOT EXISTS idx_regiment_date
                    ON practice_regiment(date)
                ''')

                self.conn.execute('''
                    CREATE INDEX IF NOT EXISTS idx_log_piece_time
                    ON practice_piece_log(practice_piece_id, timestamp)
                ''')
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to open database {self.db_path}: {e}") from e

        logger.info(f"Database initialized at {self.db_path}")

    def create_regiment(self, timestamp: datetime, piece_names: Sequence[str]) -> int:
        """
        Insert a regiment and all of its pieces in a single transaction.

        Args:
            timestamp: When the practice regiment takes place
            piece_names: Names of the pieces, in display order

        Returns:
            ID of the new regiment

        Raises:
            PersistenceError: If any insert fails; nothing is persisted then
        """
        with self._lock:
            try:
                with self.conn:
                    cursor = self.conn.execute('''
                        INSERT INTO practice_regiment (date) VALUES (?)
                    ''', (format_timestamp(timestamp),))
                    regiment_id = cursor.lastrowid

                    self.conn.executemany('''
                        INSERT INTO practice_piece (practice_regiment_id, name)
                        VALUES (?, ?)
                    ''', [(regiment_id, name) for name in piece_names])
            except (sqlite3.Error, OverflowError) as e:
                logger.error(f"Failed to insert regiment: {e}")
                raise PersistenceError(f"Failed to insert regiment: {e}") from e

        logger.info(f"Saved regiment {regiment_id} with {len(piece_names)} pieces")
        return regiment_id

    def latest_log_entry(self, piece_id: int) -> Optional[LogEntry]:
        """
        Get the most recently appended tempo log entry for a piece.

        Args:
            piece_id: ID of the practice piece

        Returns:
            The latest LogEntry, or None if the piece has no entries
        """
        with self._lock:
            try:
                row = self.conn.execute('''
                    SELECT id, practice_piece_id, bpm, timestamp
                    FROM practice_piece_log
                    WHERE practice_piece_id = ?
                    ORDER BY id DESC
                    LIMIT 1
                ''', (piece_id,)).fetchone()
            except (sqlite3.Error, OverflowError) as e:
                raise PersistenceError(f"Failed to read latest log for piece {piece_id}: {e}") from e

        if row is None:
            return None

        return LogEntry(
            id=row['id'],
            piece_id=row['practice_piece_id'],
            bpm=row['bpm'],
            timestamp=parse_timestamp(row['timestamp']),
        )

    def append_log_entry(self, piece_id: int, bpm: int, timestamp: datetime) -> int:
        """
        Save a tempo sample for a piece.

        Returns:
            ID of the inserted log entry

        Raises:
            PersistenceError: If the piece does not exist or the write fails
        """
        with self._lock:
            try:
                with self.conn:
                    cursor = self.conn.execute('''
                        INSERT INTO practice_piece_log (practice_piece_id, bpm, timestamp)
                        VALUES (?, ?, ?)
                    ''', (piece_id, bpm, format_timestamp(timestamp)))
            except (sqlite3.Error, OverflowError) as e:
                raise PersistenceError(f"Failed to log {bpm} BPM for piece {piece_id}: {e}") from e

        log_id = cursor.lastrowid
        logger.info(f"Logged {bpm} BPM for piece {piece_id} (entry {log_id})")
        return log_id

    def fetch_all_hierarchy(self) -> List[HierarchyRow]:
        """
        Get every regiment with its pieces and log entries as flat join rows.

        Regiments are ordered newest first. Rows of one regiment are grouped
        together, pieces and logs in insertion order.
        """
        with self._lock:
            try:
                rows = self.conn.execute('''
                    SELECT
                        pr.id AS regiment_id,
                        pr.date AS regiment_date,
                        pp.id AS piece_id,
                        pp.name AS piece_name,
                        pl.id AS log_id,
                        pl.bpm AS log_bpm,
                        pl.timestamp AS log_timestamp
                    FROM practice_regiment pr
                    LEFT JOIN practice_piece pp ON pr.id = pp.practice_regiment_id
                    LEFT JOIN practice_piece_log pl ON pp.id = pl.practice_piece_id
                    ORDER BY pr.date DESC, pr.id DESC, pp.id ASC, pl.id ASC
                ''').fetchall()
            except (sqlite3.Error, OverflowError) as e:
                raise PersistenceError(f"Failed to load data: {e}") from e

        return [
            HierarchyRow(
                regiment_id=row['regiment_id'],
                regiment_date=parse_timestamp(row['regiment_date']),
                piece_id=row['piece_id'],
                piece_name=row['piece_name'],
                log_id=row['log_id'],
                log_bpm=row['log_bpm'],
                log_timestamp=parse_timestamp(row['log_timestamp']) if row['log_timestamp'] else None,
            )
            for row in rows
        ]

    def get_piece(self, piece_id: int) -> Optional[Piece]:
        """
        Get a piece by ID (without its logs).

        Returns:
            Piece or None if not found
        """
        with self._lock:
            try:
                row = self.conn.execute('''
                    SELECT id, practice_regiment_id, name
                    FROM practice_piece
                    WHERE id = ?
                ''', (piece_id,)).fetchone()
            except (sqlite3.Error, OverflowError) as e:
                raise PersistenceError(f"Failed to read piece {piece_id}: {e}") from e

        if row is None:
            return None
        return Piece(id=row['id'], name=row['name'], regiment_id=row['practice_regiment_id'])

    def count_regiments(self) -> int:
        """Get the number of stored regiments."""
        with self._lock:
            try:
                row = self.conn.execute('SELECT COUNT(*) AS n FROM practice_regiment').fetchone()
            except (sqlite3.Error, OverflowError) as e:
                raise PersistenceError(f"Failed to count regiments: {e}") from e
        return row['n']

    def close(self):
        """Close database connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
                logger.info("Database connection closed")
