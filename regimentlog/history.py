"""
Rebuilds the regiment -> piece -> log tree from flat join rows.
"""
import json
from typing import Dict, Iterable, List

from regimentlog.models import HierarchyRow, LogEntry, Piece, Regiment


def aggregate_history(rows: Iterable[HierarchyRow]) -> List[Regiment]:
    """
    Group outer-join rows into regiments with nested pieces and logs.

    Regiments are returned in the order they first appear in rows, so the
    store's newest-first ordering is preserved. Rows without a piece only
    contribute the regiment itself; rows without a log only contribute
    the piece.
    """
    regiments: Dict[int, Regiment] = {}

    for row in rows:
        regiment = regiments.get(row.regiment_id)
        if regiment is None:
            regiment = Regiment(id=row.regiment_id, date=row.regiment_date)
            regiments[row.regiment_id] = regiment

        if row.piece_id is None:
            continue

        # Pieces per regiment are few, a linear scan is fine
        piece = next((p for p in regiment.pieces if p.id == row.piece_id), None)
        if piece is None:
            piece = Piece(id=row.piece_id, name=row.piece_name, regiment_id=row.regiment_id)
            regiment.pieces.append(piece)

        if row.log_id is not None:
            piece.logs.append(LogEntry(
                id=row.log_id,
                piece_id=row.piece_id,
                bpm=row.log_bpm,
                timestamp=row.log_timestamp,
            ))

    return list(regiments.values())


def history_to_json(regiments: List[Regiment]) -> str:
    """Serialize a practice history tree for the UI."""
    return json.dumps([regiment.to_dict() for regiment in regiments], ensure_ascii=False)


def format_history(regiments: List[Regiment]) -> str:
    """Render a practice history as indented plain text."""
    lines = []
    for regiment in regiments:
        lines.append(f"Regiment ID: {regiment.id} ({regiment.date:%Y-%m-%d %H:%M})")
        for piece in regiment.pieces:
            lines.append(f"    Piece Name: {piece.name} [id {piece.id}]")
            if piece.logs:
                bpms = [log.bpm for log in piece.logs]
                lines.append(f"        {len(bpms)} log entries, "
                             f"last {bpms[-1]} BPM, max {max(bpms)} BPM")
    return "\n".join(lines)
