"""Conversion items, batch settings and output naming."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from imageflow.config import DEFAULT_OUTPUT_FORMAT, DEFAULT_QUALITY
from imageflow.conversion.formats import can_encode, extension_for, normalize_format


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (ItemStatus.COMPLETED, ItemStatus.ERROR)


_STATUS_LABELS = {
    ItemStatus.PENDING: "Pending",
    ItemStatus.PROCESSING: "Processing...",
    ItemStatus.COMPLETED: "Completed",
    ItemStatus.ERROR: "Error",
}


@dataclass(frozen=True)
class SourceFile:
    """Raw file handed in by the caller."""

    name: str
    data: bytes = field(repr=False)
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


def converted_filename(source_name: str, output_format: str) -> str:
    """Download name for a converted file: photo.png + jpeg -> photo_converted.jpg."""
    stem = source_name.rsplit(".", 1)[0] if "." in source_name else source_name
    return f"{stem}_converted.{extension_for(output_format)}"


@dataclass(frozen=True)
class ConversionItem:
    """One admitted file and where it is in its conversion lifecycle.

    Values are immutable; the registry swaps in a new value on every status
    change. ``converted_bytes`` is present exactly when the status is
    COMPLETED.
    """

    item_id: str
    source_name: str
    source_bytes: bytes = field(repr=False)
    content_type: Optional[str] = None
    status: ItemStatus = ItemStatus.PENDING
    converted_bytes: Optional[bytes] = field(default=None, repr=False)
    output_format: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self):
        completed = self.status is ItemStatus.COMPLETED
        if completed != (self.converted_bytes is not None):
            raise ValueError(
                f"converted_bytes must be set only for completed items "
                f"(status={self.status.value}, has_bytes={self.converted_bytes is not None})"
            )
        if self.error is not None and self.status is not ItemStatus.ERROR:
            raise ValueError(f"error message is only valid for errored items, status={self.status.value}")

    @property
    def source_size(self) -> int:
        return len(self.source_bytes)

    @property
    def converted_size(self) -> int:
        return len(self.converted_bytes) if self.converted_bytes is not None else 0

    @property
    def key(self) -> tuple[str, int]:
        return (self.source_name, self.source_size)

    @property
    def converted_name(self) -> Optional[str]:
        if self.output_format is None:
            return None
        return converted_filename(self.source_name, self.output_format)

    @property
    def reduction_pct(self) -> Optional[float]:
        """Size reduction of this file in percent; negative when the output grew."""
        if self.status is not ItemStatus.COMPLETED:
            return None
        if self.source_size == 0:
            return 0.0
        return (self.source_size - self.converted_size) / self.source_size * 100.0

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "filename": self.source_name,
            "content_type": self.content_type,
            "status": self.status.value,
            "status_label": self.status.label,
            "source_size": self.source_size,
            "converted_size": self.converted_size,
            "output_format": self.output_format,
            "converted_name": self.converted_name,
            "reduction_pct": self.reduction_pct,
            "error": self.error,
        }


class BatchConfig:
    """Output format and quality for the next conversions.

    Read each time an item is converted, so a change made during a run
    applies to the items that have not been processed yet.
    """

    def __init__(self, output_format: str = DEFAULT_OUTPUT_FORMAT, quality: float = DEFAULT_QUALITY):
        self.output_format = self.validate_output_format(output_format)
        self.quality = self.validate_quality(quality)

    @staticmethod
    def validate_output_format(output_format: str) -> str:
        fmt = normalize_format(output_format)
        if not can_encode(fmt):
            raise ValueError(f"Unsupported output format: {output_format!r}")
        return fmt

    @staticmethod
    def validate_quality(quality: float) -> float:
        if isinstance(quality, bool) or not isinstance(quality, (int, float)):
            raise ValueError(f"quality must be a number between 0 and 1, got {quality!r}")
        if not (0.0 <= quality <= 1.0):
            raise ValueError(f"quality must be between 0 and 1, got {quality}")
        return float(quality)

    def set_output_format(self, output_format: str) -> None:
        self.output_format = self.validate_output_format(output_format)

    def set_quality(self, quality: float) -> None:
        self.quality = self.validate_quality(quality)

    def to_dict(self) -> dict:
        return {"output_format": self.output_format, "quality": self.quality}

    def __repr__(self) -> str:
        return f"BatchConfig(output_format={self.output_format!r}, quality={self.quality})"
