"""
Tests for imageflow.formatting module.
"""

import pytest

from imageflow.formatting import format_bytes, format_percent, format_seconds


@pytest.mark.unit
class TestFormatBytes:
    """Tests for format_bytes function."""

    def test_zero(self):
        assert format_bytes(0) == "0 Bytes"

    def test_bytes(self):
        assert format_bytes(1) == "1.00 Bytes"
        assert format_bytes(512) == "512.00 Bytes"
        assert format_bytes(1023) == "1023.00 Bytes"

    def test_kilobytes(self):
        assert format_bytes(1024) == "1.00 KB"
        assert format_bytes(1536) == "1.50 KB"
        # 1537 bytes = 1.5009765625 KB
        assert format_bytes(1537) == "1.50 KB"

    def test_megabytes_and_gigabytes(self):
        assert format_bytes(1024 * 1024) == "1.00 MB"
        assert format_bytes(5 * 1024 * 1024 + 512 * 1024) == "5.50 MB"
        assert format_bytes(1024 ** 3) == "1.00 GB"

    def test_beyond_gigabytes_stays_in_gigabytes(self):
        assert format_bytes(2 * 1024 ** 4) == "2048.00 GB"

    def test_negative_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            format_bytes(-1)

    def test_non_integer_rejected(self):
        with pytest.raises(ValueError):
            format_bytes(1.5)
        with pytest.raises(ValueError):
            format_bytes(True)


@pytest.mark.unit
def test_format_percent_and_seconds():
    assert format_percent(42.0) == "42.0%"
    assert format_percent(-12.345) == "-12.3%"
    assert format_seconds(1.26) == "1.3s"
