"""
Unit tests for ultima.utils module.

Tests utility functions for formatting, identifiers, and filename handling.
"""

import time

from ultima.utils import (
    format_size,
    format_timestamp,
    generate_random_id,
    sanitize_filename,
)


class TestRandomId:
    """Test random identifier generation."""

    def test_default_length(self):
        """Test that identifiers are nine lowercase alphanumerics."""
        value = generate_random_id()
        assert len(value) == 9
        assert value.isalnum()
        assert value == value.lower()

    def test_custom_length(self):
        assert len(generate_random_id(20)) == 20

    def test_uniqueness(self):
        """Test that identifiers do not repeat in practice."""
        assert len({generate_random_id() for _ in range(1000)}) == 1000


class TestFormatting:
    """Test display formatting helpers."""

    def test_format_timestamp(self):
        """Test hour:minute formatting of local time."""
        now = time.time()
        assert format_timestamp(now) == time.strftime("%H:%M", time.localtime(now))

    def test_format_timestamp_out_of_range(self):
        assert format_timestamp(1e20) == ""

    def test_format_size(self):
        assert format_size(0) == "0 B"
        assert format_size(1023) == "1023 B"
        assert format_size(1024) == "1.0 KiB"
        assert format_size(1536) == "1.5 KiB"
        assert format_size(5 * 1024 * 1024) == "5.0 MiB"
        assert format_size(3 * 1024**4) == "3072.0 GiB"


class TestFilenameSanitization:
    """Test filename sanitization."""

    def test_safe_filename(self):
        """Test that safe filenames are unchanged."""
        assert sanitize_filename("document.pdf") == "document.pdf"
        assert sanitize_filename("my_file-2.txt") == "my_file-2.txt"

    def test_unsafe_characters(self):
        """Test that path separators and reserved characters are replaced."""
        assert sanitize_filename("../secret") == "_secret"
        assert sanitize_filename("a/b\\c") == "a_b_c"
        assert sanitize_filename('x<>:"|?*y') == "x_______y"
        assert sanitize_filename("nul\0byte") == "nul_byte"

    def test_empty_result(self):
        """Test that names stripping to nothing get a placeholder."""
        assert sanitize_filename("") == "unnamed"
        assert sanitize_filename(" . ") == "unnamed"
