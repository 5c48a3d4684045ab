# ============================================================================
# FORMATTING HELPER TESTS
# ============================================================================

from datetime import datetime, timedelta, timezone

import pytest

from peertrack.utils.formatting import format_age, format_duration, format_size


@pytest.mark.parametrize(
    "size, expected",
    [
        (0, "0 B"),
        (-5, "0 B"),
        (512, "512 B"),
        (1024, "1.0 KB"),
        (10_000, "9.8 KB"),
        (5 * 1024**3, "5.0 GB"),
        (3 * 1024**5, "3072.0 TB"),
    ],
)
def test_format_size(size, expected):
    assert format_size(size) == expected


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "0s"), (59.9, "59s"), (60, "1m"), (3725, "1h 2m 5s"), (7200, "2h")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_format_age():
    now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert format_age(now - timedelta(minutes=90), now) == "1h 30m ago"
    assert format_age(now + timedelta(seconds=30), now) == "0s ago"
