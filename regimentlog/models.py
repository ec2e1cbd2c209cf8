"""
Regiment -> piece -> log entry data model.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Dict

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way it is stored in the database."""
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a stored timestamp (also accepts full ISO-8601)."""
    return datetime.fromisoformat(value)


@dataclass
class LogEntry:
    """One admitted tempo sample for a piece."""
    id: Optional[int]
    piece_id: int
    bpm: int
    timestamp: datetime

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'bpm': self.bpm,
            'timestamp': format_timestamp(self.timestamp),
        }


@dataclass
class Piece:
    """A named exercise practiced within a regiment."""
    id: int
    name: str
    regiment_id: Optional[int] = None
    logs: List[LogEntry] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'name': self.name,
            'logs': [log.to_dict() for log in self.logs],
        }


@dataclass
class Regiment:
    """A practice session holding an ordered set of pieces."""
    id: int
    date: datetime
    pieces: List[Piece] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'date': format_timestamp(self.date),
            'pieces': [piece.to_dict() for piece in self.pieces],
        }


@dataclass(frozen=True)
class HierarchyRow:
    """
    One row of the regiments/pieces/log_entries outer join.

    Piece fields are None for a regiment without pieces; log fields are None
    for a piece without log entries.
    """
    regiment_id: int
    regiment_date: datetime
    piece_id: Optional[int] = None
    piece_name: Optional[str] = None
    log_id: Optional[int] = None
    log_bpm: Optional[int] = None
    log_timestamp: Optional[datetime] = None
