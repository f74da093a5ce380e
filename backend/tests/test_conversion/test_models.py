"""
Tests for imageflow.conversion.models module.
"""

import pytest

from imageflow.conversion.models import (
    BatchConfig,
    ConversionItem,
    ItemStatus,
    SourceFile,
    converted_filename,
)


@pytest.mark.unit
class TestConvertedFilename:
    def test_jpeg_uses_jpg_extension(self):
        assert converted_filename("photo.png", "jpeg") == "photo_converted.jpg"

    def test_other_formats_use_format_name(self):
        assert converted_filename("photo.jpg", "webp") == "photo_converted.webp"
        assert converted_filename("photo.jpg", "png") == "photo_converted.png"

    def test_only_last_extension_is_replaced(self):
        assert converted_filename("holiday.2024.tiff", "png") == "holiday.2024_converted.png"

    def test_name_without_extension_is_kept(self):
        assert converted_filename("README", "jpeg") == "README_converted.jpg"


@pytest.mark.unit
class TestConversionItem:
    def test_new_item_is_pending(self):
        item = ConversionItem(item_id="1", source_name="a.png", source_bytes=b"abc")

        assert item.status is ItemStatus.PENDING
        assert item.source_size == 3
        assert item.converted_size == 0
        assert item.converted_bytes is None
        assert item.key == ("a.png", 3)
        assert item.reduction_pct is None
        assert item.converted_name is None

    def test_completed_item_requires_bytes(self):
        with pytest.raises(ValueError):
            ConversionItem(item_id="1", source_name="a.png", source_bytes=b"abc", status=ItemStatus.COMPLETED)

    def test_bytes_only_allowed_when_completed(self):
        with pytest.raises(ValueError):
            ConversionItem(item_id="1", source_name="a.png", source_bytes=b"abc", converted_bytes=b"x")

    def test_error_message_only_on_error(self):
        with pytest.raises(ValueError):
            ConversionItem(item_id="1", source_name="a.png", source_bytes=b"abc", error="boom")

    def test_completed_item_reduction(self):
        item = ConversionItem(
            item_id="1",
            source_name="a.png",
            source_bytes=b"x" * 200,
            status=ItemStatus.COMPLETED,
            converted_bytes=b"y" * 50,
            output_format="jpeg",
        )

        assert item.converted_size == 50
        assert item.reduction_pct == pytest.approx(75.0)
        assert item.converted_name == "a_converted.jpg"

    def test_grown_output_gives_negative_reduction(self):
        item = ConversionItem(
            item_id="1",
            source_name="a.jpg",
            source_bytes=b"x" * 100,
            status=ItemStatus.COMPLETED,
            converted_bytes=b"y" * 150,
            output_format="png",
        )

        assert item.reduction_pct == pytest.approx(-50.0)

    def test_to_dict_has_display_label(self):
        item = ConversionItem(item_id="1", source_name="a.png", source_bytes=b"abc")
        data = item.to_dict()

        assert data["status"] == "pending"
        assert data["status_label"] == "Pending"
        assert data["source_size"] == 3
        assert "source_bytes" not in data


@pytest.mark.unit
def test_status_labels():
    assert ItemStatus.PROCESSING.label == "Processing..."
    assert ItemStatus.COMPLETED.label == "Completed"
    assert ItemStatus.ERROR.label == "Error"
    assert ItemStatus.COMPLETED.is_terminal
    assert ItemStatus.ERROR.is_terminal
    assert not ItemStatus.PENDING.is_terminal


@pytest.mark.unit
def test_source_file_size():
    assert SourceFile("a.png", b"12345").size == 5


@pytest.mark.unit
class TestBatchConfig:
    def test_defaults(self):
        config = BatchConfig()

        assert config.output_format == "jpeg"
        assert config.quality == pytest.approx(0.8)

    def test_jpg_alias_and_case(self):
        config = BatchConfig()
        config.set_output_format("JPG")

        assert config.output_format == "jpeg"

    def test_unknown_format_rejected(self):
        config = BatchConfig()
        with pytest.raises(ValueError, match="Unsupported output format"):
            config.set_output_format("gif")
        assert config.output_format == "jpeg"

    @pytest.mark.parametrize("quality", [-0.1, 1.01, "high", None, True])
    def test_invalid_quality_rejected(self, quality):
        config = BatchConfig()
        with pytest.raises(ValueError):
            config.set_quality(quality)

    @pytest.mark.parametrize("quality", [0, 0.0, 0.55, 1, 1.0])
    def test_valid_quality(self, quality):
        config = BatchConfig()
        config.set_quality(quality)

        assert config.quality == pytest.approx(float(quality))

    def test_to_dict(self):
        assert BatchConfig("png", 0.5).to_dict() == {"output_format": "png", "quality": 0.5}
