"""Summary of a finished batch run."""
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from imageflow.conversion.models import ConversionItem, ItemStatus
from imageflow.formatting import format_bytes, format_percent, format_seconds


@dataclass(frozen=True)
class BatchStatistics:
    total_files: int
    original_size: int
    compressed_size: int
    start_time: datetime
    end_time: datetime
    completed_files: int = 0
    failed_files: int = 0
    cancelled: bool = False

    @property
    def processing_time_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    @property
    def total_reduction_pct(self) -> float:
        """Batch-wide size reduction; negative when the outputs are larger than the inputs."""
        if self.original_size == 0:
            return 0.0
        return (self.original_size - self.compressed_size) / self.original_size * 100.0

    @property
    def average_reduction_pct(self) -> float:
        return self.total_reduction_pct / max(self.total_files, 1)

    def to_dict(self) -> dict:
        return {
            "total_files": self.total_files,
            "completed_files": self.completed_files,
            "failed_files": self.failed_files,
            "cancelled": self.cancelled,
            "original_size": self.original_size,
            "compressed_size": self.compressed_size,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "processing_time_seconds": self.processing_time_seconds,
            "total_reduction_pct": self.total_reduction_pct,
            "average_reduction_pct": self.average_reduction_pct,
            "display": {
                "original_size": format_bytes(self.original_size),
                "compressed_size": format_bytes(self.compressed_size),
                "processing_time": format_seconds(self.processing_time_seconds),
                "total_reduction": format_percent(self.total_reduction_pct),
                "average_reduction": format_percent(self.average_reduction_pct),
            },
        }


def compute_statistics(
    items: Sequence[ConversionItem],
    start_time: datetime,
    end_time: datetime,
    cancelled: bool = False,
) -> BatchStatistics:
    """Build statistics for ``items`` as they stand after a run.

    Every item counts toward the original size; only completed items count
    toward the compressed size.
    """
    completed = [i for i in items if i.status is ItemStatus.COMPLETED]
    return BatchStatistics(
        total_files=len(items),
        original_size=sum(i.source_size for i in items),
        compressed_size=sum(i.converted_size for i in completed),
        start_time=start_time,
        end_time=end_time,
        completed_files=len(completed),
        failed_files=sum(1 for i in items if i.status is ItemStatus.ERROR),
        cancelled=cancelled,
    )
