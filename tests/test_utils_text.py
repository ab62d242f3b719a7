"""Tests for text utility functions."""

from __future__ import annotations

from ragmark.utils.text import normalize_whitespace, split_lines, truncate_words


class TestSplitLines:
    """Test split_lines chunker."""

    def test_empty_text(self) -> None:
        """Empty input yields no chunks."""
        assert split_lines("") == []

    def test_trims_and_drops_blank_lines(self) -> None:
        """Lines are trimmed and blank lines dropped."""
        assert split_lines("  a  \nb\n\n") == ["a", "b"]

    def test_unescapes_html_entities(self) -> None:
        """HTML entities are unescaped."""
        assert split_lines("a &amp; b") == ["a & b"]

    def test_preserves_order(self) -> None:
        """Chunks keep source order."""
        text = "third\n\nfirst\n  second  "
        assert split_lines(text) == ["third", "first", "second"]

    def test_whitespace_only(self) -> None:
        """Whitespace-only text yields no chunks."""
        assert split_lines(" \n\t\n   ") == []

    def test_idempotent_on_clean_input(self) -> None:
        """Re-splitting joined output gives the same chunks."""
        chunks = split_lines("  one \n\n two &lt;tag&gt;\nthree")
        assert split_lines("\n".join(chunks)) == chunks

    def test_windows_line_endings(self) -> None:
        """Carriage returns are trimmed with other whitespace."""
        assert split_lines("a\r\nb\r\n") == ["a", "b"]


class TestNormalizeWhitespace:
    """Test normalize_whitespace function."""

    def test_normalize_simple(self) -> None:
        """Should join and strip lines."""
        lines = ["  Line 1  ", "  Line 2  ", "  Line 3  "]
        assert normalize_whitespace(lines) == "Line 1\nLine 2\nLine 3"

    def test_normalize_empty_lines(self) -> None:
        """Should skip empty lines."""
        lines = ["Line 1", "", "  ", "Line 2", "\n", "Line 3"]
        assert normalize_whitespace(lines) == "Line 1\nLine 2\nLine 3"

    def test_normalize_all_empty(self) -> None:
        """Should return empty string for all empty lines."""
        assert normalize_whitespace(["", "  ", "\n", "\t"]) == ""


class TestTruncateWords:
    """Test truncate_words helper."""

    def test_short_text_unchanged(self) -> None:
        assert truncate_words("a  b\nc", 5) == "a b c"

    def test_long_text_truncated(self) -> None:
        assert truncate_words("one two three four", 2) == "one two ..."
