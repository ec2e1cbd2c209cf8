from datetime import datetime, timedelta

from regimentlog.admission import should_log
from regimentlog.models import LogEntry


T0 = datetime(2026, 10, 17, 9, 0, 0)


def _previous(bpm, timestamp=T0):
    return LogEntry(id=1, piece_id=1, bpm=bpm, timestamp=timestamp)


def test_first_sample_is_logged():
    assert should_log(120, T0, None) is True


def test_unchanged_tempo_within_interval_is_skipped():
    assert should_log(120, T0 + timedelta(minutes=4), _previous(120)) is False


def test_unchanged_tempo_after_interval_is_logged():
    assert should_log(120, T0 + timedelta(minutes=6), _previous(120)) is True


def test_unchanged_tempo_exactly_at_interval_is_skipped():
    """The interval must be exceeded, not just reached."""
    assert should_log(120, T0 + timedelta(minutes=5), _previous(120)) is False


def test_tempo_change_is_logged_immediately():
    assert should_log(121, T0 + timedelta(seconds=1), _previous(120)) is True


def test_single_blip_is_logged():
    """No debounce: a one-sample change and the return are both logged."""
    assert should_log(140, T0 + timedelta(seconds=1), _previous(120)) is True
    assert should_log(120, T0 + timedelta(seconds=2), _previous(140, T0 + timedelta(seconds=1))) is True


def test_custom_interval():
    previous = _previous(90)

    assert should_log(90, T0 + timedelta(seconds=31), previous, interval=timedelta(seconds=30)) is True
    assert should_log(90, T0 + timedelta(seconds=29), previous, interval=timedelta(seconds=30)) is False
