"""Tests for time span and boolean parsing."""

import pytest

from tidesync.engine.config_store import DAYS, HOURS, MINUTES, SECONDS, WEEKS
from tidesync.engine.parsing import format_time_span, parse_bool, parse_time_span
from tidesync.exceptions import InvalidConfig


class TestParseTimeSpan:
    """Tests for parse_time_span()."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("1 second", SECONDS),
            ("30 seconds", 30 * SECONDS),
            ("5 minutes", 5 * MINUTES),
            ("1 hour", HOURS),
            ("2 days", 2 * DAYS),
            ("1 week", WEEKS),
            ("3  hours", 3 * HOURS),
            ("30000", 30000),
            ("  15 minutes ", 15 * MINUTES),
        ],
    )
    def test_valid_spans(self, text, expected):
        """Unit forms and bare milliseconds are accepted."""
        assert parse_time_span(text) == expected

    @pytest.mark.parametrize("text", ["", "five minutes", "5 fortnights", "5minutes", "-5", "1.5 hours"])
    def test_invalid_spans(self, text):
        """Anything else is an InvalidConfig."""
        with pytest.raises(InvalidConfig):
            parse_time_span(text)


class TestFormatTimeSpan:
    """Tests for format_time_span()."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            (0, "0"),
            (SECONDS, "1 second"),
            (90 * SECONDS, "90 seconds"),
            (5 * MINUTES, "5 minutes"),
            (HOURS, "1 hour"),
            (2 * WEEKS, "2 weeks"),
            (1500, "1500"),
        ],
    )
    def test_largest_exact_unit(self, value, expected):
        """The largest unit dividing the value exactly is used."""
        assert format_time_span(value) == expected

    def test_output_parses_back(self):
        """Formatted spans are valid parse_time_span input."""
        for value in (1500, 5 * MINUTES, 3 * DAYS):
            assert parse_time_span(format_time_span(value)) == value


class TestParseBool:
    """Tests for parse_bool()."""

    def test_true_and_false(self):
        assert parse_bool("true") is True
        assert parse_bool("false") is False

    @pytest.mark.parametrize("text", ["True", "yes", "1", "", "FALSE"])
    def test_other_spellings_rejected(self, text):
        """Only the exact lowercase words are accepted."""
        with pytest.raises(InvalidConfig):
            parse_bool(text)
