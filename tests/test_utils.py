"""Tests for shared utility functions."""

from datetime import datetime, timezone

import pytest

from repairdesk.errors import InvalidInput
from repairdesk.utils import (
    is_valid_phone,
    normalize_phone,
    parse_schedule_time,
    sanitize_text,
    split_message,
)


class TestNormalizePhone:
    def test_strips_spaces(self):
        assert normalize_phone("8 912 345 67 89") == "89123456789"

    def test_strips_dashes_and_parentheses(self):
        assert normalize_phone("8 (912) 345-67-89") == "89123456789"

    def test_preserves_leading_plus(self):
        assert normalize_phone("+7 912 345 67 89") == "+79123456789"

    def test_strips_whitespace(self):
        assert normalize_phone("  89123456789  ") == "89123456789"


class TestPhoneValidation:
    @pytest.mark.parametrize("value", [
        "+79123456789",
        "89123456789",
        "79123456789",
        "9123456789",
        "+7 (912) 345-67-89",
    ])
    def test_valid(self, value):
        assert is_valid_phone(value)

    @pytest.mark.parametrize("value", ["", "12345", "+7812345678", "+791234567890", "phone"])
    def test_invalid(self, value):
        assert not is_valid_phone(value)


class TestSanitizeText:
    def test_removes_tags(self):
        assert sanitize_text("<b>Hi</b> <script>x</script>there") == "Hi xthere"

    def test_strips_whitespace(self):
        assert sanitize_text("  hello  ") == "hello"

    def test_plain_text_unchanged(self):
        assert sanitize_text("2 < 3") == "2 < 3"


class TestParseScheduleTime:
    def test_returns_aware_business_time(self):
        parsed = parse_schedule_time("15.03.2025 16:00", "Europe/Moscow")
        assert parsed.tzinfo is not None
        assert parsed == datetime(2025, 3, 15, 13, 0, tzinfo=timezone.utc)

    def test_surrounding_whitespace_ignored(self):
        assert parse_schedule_time(" 01.04.2025 09:30 ", "UTC").hour == 9

    @pytest.mark.parametrize("value", ["2025-03-15 16:00", "15.03.2025", "32.01.2025 10:00", ""])
    def test_bad_format(self, value):
        with pytest.raises(InvalidInput):
            parse_schedule_time(value, "UTC")


class TestSplitMessage:
    def test_short_text_single_chunk(self):
        assert split_message("hello", 100) == ["hello"]

    def test_splits_on_lines(self):
        text = "\n".join(f"line {i}" for i in range(50))
        chunks = split_message(text, 60)
        assert len(chunks) > 1
        assert all(len(c) <= 60 for c in chunks)
        assert "".join(chunks) == text

    def test_hard_wraps_long_line(self):
        chunks = split_message("x" * 250, 100)
        assert [len(c) for c in chunks] == [100, 100, 50]
