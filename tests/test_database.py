from datetime import datetime, timedelta

import pytest

from regimentlog.database import RegimentDatabase
from regimentlog.errors import PersistenceError


T0 = datetime(2026, 10, 17, 9, 0, 0)


def test_create_regiment_persists_all_pieces(db):
    """A regiment and every named piece are stored, pieces in order."""
    regiment_id = db.create_regiment(T0, ["Scales", "Etude", "Sonata"])

    rows = db.fetch_all_hierarchy()

    assert {row.regiment_id for row in rows} == {regiment_id}
    assert [row.piece_name for row in rows] == ["Scales", "Etude", "Sonata"]
    assert all(row.regiment_date == T0 for row in rows)
    assert all(row.log_id is None for row in rows)


def test_create_regiment_rolls_back_on_failed_piece(db):
    """When one piece insert fails nothing of the regiment is left behind."""
    db.create_regiment(T0, ["Existing"])

    with pytest.raises(PersistenceError):
        db.create_regiment(T0 + timedelta(days=1), ["Scales", None, "Sonata"])

    assert db.count_regiments() == 1
    assert [row.piece_name for row in db.fetch_all_hierarchy()] == ["Existing"]


def test_create_regiment_without_pieces(db):
    """A regiment with no pieces yields one row with empty piece fields."""
    regiment_id = db.create_regiment(T0, [])

    rows = db.fetch_all_hierarchy()

    assert len(rows) == 1
    assert rows[0].regiment_id == regiment_id
    assert rows[0].piece_id is None
    assert rows[0].piece_name is None


def test_latest_log_entry_none_without_logs(db):
    db.create_regiment(T0, ["Scales"])
    piece_id = db.fetch_all_hierarchy()[0].piece_id

    assert db.latest_log_entry(piece_id) is None


def test_latest_log_entry_returns_most_recent(db):
    """The most recently appended entry is returned."""
    db.create_regiment(T0, ["Scales"])
    piece_id = db.fetch_all_hierarchy()[0].piece_id

    db.append_log_entry(piece_id, 80, T0 + timedelta(minutes=1))
    db.append_log_entry(piece_id, 92, T0 + timedelta(minutes=2))

    latest = db.latest_log_entry(piece_id)

    assert latest.bpm == 92
    assert latest.timestamp == T0 + timedelta(minutes=2)
    assert latest.piece_id == piece_id


def test_append_log_entry_to_missing_piece_fails(db):
    """The foreign key on log entries is enforced."""
    with pytest.raises(PersistenceError):
        db.append_log_entry(9999, 100, T0)

    assert db.fetch_all_hierarchy() == []


def test_fetch_all_hierarchy_newest_regiment_first(db):
    older = db.create_regiment(T0, ["A"])
    newer = db.create_regiment(T0 + timedelta(days=7), ["B"])
    middle = db.create_regiment(T0 + timedelta(days=3), ["C"])

    regiment_ids = [row.regiment_id for row in db.fetch_all_hierarchy()]

    assert regiment_ids == [newer, middle, older]


def test_fetch_all_hierarchy_piece_without_logs(db):
    """A piece without logs still appears, with empty log fields."""
    db.create_regiment(T0, ["Logged", "Silent"])
    rows = db.fetch_all_hierarchy()
    logged_id = rows[0].piece_id
    db.append_log_entry(logged_id, 70, T0)
    db.append_log_entry(logged_id, 75, T0 + timedelta(seconds=30))

    rows = db.fetch_all_hierarchy()

    assert [(row.piece_name, row.log_bpm) for row in rows] == [
        ("Logged", 70),
        ("Logged", 75),
        ("Silent", None),
    ]


def test_get_piece(db):
    db.create_regiment(T0, ["Scales"])
    row = db.fetch_all_hierarchy()[0]

    piece = db.get_piece(row.piece_id)

    assert piece.name == "Scales"
    assert piece.regiment_id == row.regiment_id
    assert db.get_piece(row.piece_id + 100) is None


def test_data_survives_reopen(tmp_path):
    path = str(tmp_path / "practice.db")
    first = RegimentDatabase(path)
    first.create_regiment(T0, ["Scales"])
    first.close()

    second = RegimentDatabase(path)
    try:
        assert second.count_regiments() == 1
    finally:
        second.close()


def test_operations_after_close_raise_persistence_error(tmp_path):
    database = RegimentDatabase(str(tmp_path / "practice.db"))
    database.conn.close()

    with pytest.raises(PersistenceError):
        database.create_regiment(T0, ["Scales"])


def test_ids_beyond_sqlite_integer_range_raise_persistence_error(db):
    with pytest.raises(PersistenceError):
        db.latest_log_entry(2 ** 64)
    with pytest.raises(PersistenceError):
        db.append_log_entry(2 ** 64, 100, T0)
    with pytest.raises(PersistenceError):
        db.get_piece(2 ** 64)


def test_latest_log_entry_follows_insertion_order(db):
    """A later insert is the latest entry even with an earlier timestamp."""
    db.create_regiment(T0, ["Scales"])
    piece_id = db.fetch_all_hierarchy()[0].piece_id
    db.append_log_entry(piece_id, 100, T0 + timedelta(minutes=50))
    db.append_log_entry(piece_id, 120, T0 + timedelta(minutes=5))

    assert db.latest_log_entry(piece_id).bpm == 120
