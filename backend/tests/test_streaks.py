from datetime import date, datetime, timedelta, timezone

from microlearn.services import StreakSnapshot, activity_date, advance_streak


def test_first_completion_starts_streak():
    s = advance_streak(None, date(2024, 1, 10))
    assert s == StreakSnapshot(1, 1, 1, date(2024, 1, 10))


def test_consecutive_day_extends_streak():
    prev = StreakSnapshot(3, 5, 12, date(2024, 1, 10))
    s = advance_streak(prev, date(2024, 1, 11))
    assert s == StreakSnapshot(4, 5, 13, date(2024, 1, 11))


def test_same_day_keeps_streak_but_counts_lesson():
    prev = StreakSnapshot(4, 5, 13, date(2024, 1, 11))
    s = advance_streak(prev, date(2024, 1, 11))
    assert s.current_streak == 4
    assert s.total_lessons_completed == 14
    assert s.last_activity_date == date(2024, 1, 11)


def test_gap_resets_streak_and_keeps_longest():
    prev = StreakSnapshot(3, 5, 9, date(2024, 1, 1))
    s = advance_streak(prev, date(2024, 1, 10))
    assert s.current_streak == 1
    assert s.longest_streak == 5
    assert s.total_lessons_completed == 10


def test_missing_last_activity_resets():
    prev = StreakSnapshot(0, 2, 4, None)
    s = advance_streak(prev, date(2024, 1, 10))
    assert (s.current_streak, s.longest_streak) == (1, 2)


def test_longest_tracks_maximum_current_over_sequence():
    days = [date(2024, 3, 1) + timedelta(days=n) for n in (0, 1, 2, 2, 3, 6, 7, 8, 9, 10, 20)]
    snap = None
    seen_max = 0
    for d in days:
        snap = advance_streak(snap, d)
        seen_max = max(seen_max, snap.current_streak)
        assert snap.longest_streak == seen_max
        assert snap.longest_streak >= snap.current_streak
    assert snap.total_lessons_completed == len(days)
    assert seen_max == 5


def test_activity_date_uses_caller_offset():
    late_utc = datetime(2024, 1, 10, 23, 30, tzinfo=timezone.utc)
    assert activity_date(late_utc, 0) == date(2024, 1, 10)
    assert activity_date(late_utc, 60) == date(2024, 1, 11)
    assert activity_date(datetime(2024, 1, 10, 2, 0, tzinfo=timezone.utc), -300) == date(2024, 1, 9)


def test_same_day_leaves_current_streak_exactly_as_stored():
    prev = StreakSnapshot(0, 2, 5, date(2024, 1, 11))
    s = advance_streak(prev, date(2024, 1, 11))
    assert s.current_streak == 0
    assert s.longest_streak == 2
    assert s.total_lessons_completed == 6
