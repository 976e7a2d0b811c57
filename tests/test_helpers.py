from datetime import datetime, timedelta, timezone

from utils.helpers import (
    days_remaining,
    ensure_aware,
    format_timestamp,
    local_midnight,
    mask_secret,
    seconds_to_human_readable
)


def test_days_remaining_counts_from_local_midnight():
    now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
    expiry = local_midnight(now) + timedelta(days=5)
    assert days_remaining(expiry, now) == 5


def test_days_remaining_is_stable_within_a_day():
    expiry = datetime(2026, 3, 20, 8, 30, tzinfo=timezone.utc)
    early = datetime(2026, 3, 10, 0, 1, tzinfo=timezone.utc)
    late = datetime(2026, 3, 10, 23, 59, tzinfo=timezone.utc)
    assert days_remaining(expiry, early) == days_remaining(expiry, late) == 11


def test_days_remaining_negative_after_expiry():
    now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
    expiry = datetime(2026, 3, 7, 0, 0, tzinfo=timezone.utc)
    assert days_remaining(expiry, now) == -3


def test_days_remaining_uses_configured_timezone():
    # 2026-03-10 23:30 UTC is already 2026-03-11 in Kolkata
    now = datetime(2026, 3, 10, 23, 30, tzinfo=timezone.utc)
    expiry = datetime(2026, 3, 15, 0, 0, tzinfo=timezone.utc)
    assert days_remaining(expiry, now, "UTC") == 5
    assert days_remaining(expiry, now, "Asia/Kolkata") == 5
    assert local_midnight(now, "Asia/Kolkata").day == 11


def test_naive_datetimes_are_utc():
    naive = datetime(2026, 1, 1, 12, 0)
    assert ensure_aware(naive).tzinfo is timezone.utc
    assert format_timestamp(naive, "UTC", "%Y-%m-%d %H:%M") == "2026-01-01 12:00"


def test_seconds_to_human_readable():
    assert seconds_to_human_readable(0) == "0s"
    assert seconds_to_human_readable(9015) == "2h 30m 15s"
    assert seconds_to_human_readable(90061) == "1d 1h 1m 1s"


def test_mask_secret():
    assert mask_secret("abcdef123") == "abcd*****"
    assert mask_secret("abc") == "***"
    assert mask_secret("") is None
