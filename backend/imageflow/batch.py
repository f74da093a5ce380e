"""Batch run: converts every queued item in order, one at a time."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from imageflow.config import ITEM_DELAY_SECONDS
from imageflow.conversion.engine import ConversionEngine
from imageflow.conversion.models import BatchConfig, ItemStatus
from imageflow.errors import BatchInProgressError, ConversionError, EmptyBatchError
from imageflow.registry import ItemRegistry
from imageflow.statistics import BatchStatistics, compute_statistics

logger = logging.getLogger("imageflow.batch")

ProgressListener = Callable[[int, int], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchOrchestrator:
    """Drives the engine across the registry and keeps the last run's statistics.

    Each run starts by re-queueing every item as pending, so running twice
    reconverts everything with the current settings. A second ``run`` while
    one is active raises BatchInProgressError.
    """

    def __init__(
        self,
        registry: ItemRegistry,
        config: BatchConfig,
        engine: Optional[ConversionEngine] = None,
        item_delay: float = ITEM_DELAY_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if item_delay < 0:
            raise ValueError(f"item_delay must be non-negative, got {item_delay}")
        self.registry = registry
        self.config = config
        self.engine = engine or ConversionEngine()
        self.item_delay = item_delay
        self._clock = clock
        self._listeners: list[ProgressListener] = []
        self._running = False
        self._cancel_requested = False
        self._completed = 0
        self._total = 0
        self.statistics: Optional[BatchStatistics] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def progress(self) -> float:
        """Fraction of the current (or last) run that is done, 0-1."""
        if self._total == 0:
            return 0.0
        return self._completed / self._total

    @property
    def progress_counts(self) -> tuple[int, int]:
        return (self._completed, self._total)

    def add_progress_listener(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def remove_progress_listener(self, listener: ProgressListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def cancel(self) -> None:
        """Stop the active run after the item being converted finishes."""
        if self._running:
            logger.info("Cancellation requested")
            self._cancel_requested = True

    def reset(self) -> None:
        self.statistics = None
        self._completed = 0
        self._total = 0

    async def run(self) -> BatchStatistics:
        if self._running:
            raise BatchInProgressError("A batch run is already in progress")
        if len(self.registry) == 0:
            raise EmptyBatchError("No items to convert")
        self._running = True
        self._cancel_requested = False
        try:
            return await self._run()
        finally:
            self._running = False
            self._cancel_requested = False

    async def _run(self) -> BatchStatistics:
        item_ids = [item.item_id for item in self.registry.list()]
        for item_id in item_ids:
            self.registry.transition(item_id, ItemStatus.PENDING)
        self._completed = 0
        self._total = len(item_ids)
        start_time = self._clock()
        logger.info("Batch started: %s item(s)", self._total)

        cancelled = False
        for item_id in item_ids:
            if self._cancel_requested:
                cancelled = True
                logger.info("Batch cancelled with %s of %s item(s) done", self._completed, self._total)
                break
            await self._convert_item(item_id)
            self._completed += 1
            self._notify()
            # Always yield between items so observers see each update
            await asyncio.sleep(self.item_delay)

        end_time = self._clock()
        stats = compute_statistics(
            [self.registry.get(item_id) for item_id in item_ids],
            start_time,
            end_time,
            cancelled=cancelled,
        )
        self.statistics = stats
        logger.info(
            "Batch finished: %s completed, %s failed, %s -> %s bytes in %.1fs",
            stats.completed_files,
            stats.failed_files,
            stats.original_size,
            stats.compressed_size,
            stats.processing_time_seconds,
        )
        return stats

    async def _convert_item(self, item_id: str) -> None:
        item = self.registry.transition(item_id, ItemStatus.PROCESSING)
        output_format = self.config.output_format
        quality = self.config.quality
        try:
            data = await self.engine.convert(item.source_bytes, output_format, quality)
        except ConversionError as e:
            logger.warning("Conversion failed for %s: %s", item.source_name, e)
            self.registry.transition(item_id, ItemStatus.ERROR, error=str(e))
            return
        except Exception as e:
            logger.exception("Unexpected error converting %s: %s", item.source_name, e)
            self.registry.transition(item_id, ItemStatus.ERROR, error=str(e) or type(e).__name__)
            return
        self.registry.transition(
            item_id,
            ItemStatus.COMPLETED,
            converted_bytes=data,
            output_format=output_format,
        )
        logger.info("Converted %s -> %s (%s -> %s bytes)", item.source_name, output_format, item.source_size, len(data))

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._completed, self._total)
            except Exception:
                logger.exception("Progress listener failed")
