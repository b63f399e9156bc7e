"""Tests for time utilities."""

from datetime import datetime, timezone

from bizchat.infra.time import normalize_timestamp, utc_now


class TestUtcNow:
    """Tests for utc_now()."""

    def test_returns_utc_datetime(self):
        now = utc_now()
        assert now.tzinfo == timezone.utc

    def test_returns_current_time(self):
        before = datetime.now(timezone.utc)
        now = utc_now()
        after = datetime.now(timezone.utc)

        assert before <= now <= after


class TestNormalizeTimestamp:
    def test_epoch_seconds_string(self):
        assert normalize_timestamp("1704067200") == "2024-01-01T00:00:00+00:00"

    def test_epoch_seconds_int(self):
        assert normalize_timestamp(1704067200) == "2024-01-01T00:00:00+00:00"

    def test_zulu_suffix(self):
        assert normalize_timestamp("2026-03-04T05:06:07Z") == "2026-03-04T05:06:07+00:00"

    def test_naive_assumed_utc(self):
        assert normalize_timestamp("2026-01-02 10:00:00") == "2026-01-02T10:00:00+00:00"

    def test_offset_converted_to_utc(self):
        assert normalize_timestamp("2026-01-02T15:30:00+05:30") == "2026-01-02T10:00:00+00:00"

    def test_missing_or_invalid_falls_back_to_now(self):
        before = datetime.now(timezone.utc)
        for value in (None, "", "yesterday-ish"):
            parsed = datetime.fromisoformat(normalize_timestamp(value))
            assert parsed >= before.replace(microsecond=0)
