"""Caller-owned conversion session: one registry, one config, one orchestrator."""
from __future__ import annotations

import logging
import time
import uuid
from typing import Callable, Iterable, Optional

from imageflow.batch import BatchOrchestrator, ProgressListener
from imageflow.config import DEFAULT_OUTPUT_FORMAT, DEFAULT_QUALITY, ITEM_DELAY_SECONDS, SESSION_TTL_SECONDS
from imageflow.conversion.engine import ConversionEngine
from imageflow.conversion.models import BatchConfig, ConversionItem, SourceFile
from imageflow.errors import BatchInProgressError
from imageflow.registry import ItemRegistry
from imageflow.statistics import BatchStatistics

logger = logging.getLogger("imageflow.session")


class ConversionSession:
    """Public surface used by a presentation layer.

    Usage::

        session = ConversionSession()
        session.admit([SourceFile("a.png", data)])
        session.set_output_format("webp")
        stats = await session.run()
        for name, blob in session.get_all_converted_items():
            ...
    """

    def __init__(
        self,
        engine: Optional[ConversionEngine] = None,
        *,
        output_format: str = DEFAULT_OUTPUT_FORMAT,
        quality: float = DEFAULT_QUALITY,
        item_delay: float = ITEM_DELAY_SECONDS,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.registry = ItemRegistry()
        self.config = BatchConfig(output_format, quality)
        self.orchestrator = BatchOrchestrator(self.registry, self.config, engine, item_delay=item_delay)

    # Registry

    def admit(self, files: Iterable[SourceFile]) -> list[ConversionItem]:
        self._ensure_idle("add files")
        return self.registry.admit(files)

    def clear(self) -> None:
        self._ensure_idle("clear files")
        self.registry.clear()
        self.orchestrator.reset()
        logger.info("Session %s cleared", self.session_id)

    def list(self) -> list[ConversionItem]:
        return self.registry.list()

    def get_item(self, item_id: str) -> Optional[ConversionItem]:
        return self.registry.find(item_id)

    # Config

    def set_output_format(self, output_format: str) -> None:
        self.config.set_output_format(output_format)

    def set_quality(self, quality: float) -> None:
        self.config.set_quality(quality)

    # Runs

    async def run(self) -> BatchStatistics:
        return await self.orchestrator.run()

    def cancel(self) -> None:
        self.orchestrator.cancel()

    def add_progress_listener(self, listener: ProgressListener) -> None:
        self.orchestrator.add_progress_listener(listener)

    def remove_progress_listener(self, listener: ProgressListener) -> None:
        self.orchestrator.remove_progress_listener(listener)

    @property
    def is_running(self) -> bool:
        return self.orchestrator.is_running

    @property
    def progress(self) -> float:
        return self.orchestrator.progress

    @property
    def progress_counts(self) -> tuple[int, int]:
        return self.orchestrator.progress_counts

    @property
    def statistics(self) -> Optional[BatchStatistics]:
        return self.orchestrator.statistics

    # Results

    def get_converted_item(self, name: str) -> bytes:
        """Converted bytes by source file name or converted file name."""
        for item in self.registry.converted():
            if name in (item.source_name, item.converted_name):
                return item.converted_bytes
        raise KeyError(name)

    def get_all_converted_items(self) -> list[tuple[str, bytes]]:
        return [(item.converted_name, item.converted_bytes) for item in self.registry.converted()]

    def _ensure_idle(self, action: str) -> None:
        if self.orchestrator.is_running:
            raise BatchInProgressError(f"Cannot {action} while a batch is running")


class SessionStore:
    """Sessions keyed by id, for the HTTP layer.

    Sessions idle for longer than ``ttl_seconds`` are dropped on the next
    access to the store, unless a run is in progress. ``ttl_seconds <= 0``
    keeps sessions until they are dropped explicitly.
    """

    def __init__(
        self,
        engine: Optional[ConversionEngine] = None,
        ttl_seconds: float = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._engine = engine or ConversionEngine()
        self._ttl = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, ConversionSession] = {}
        self._last_seen: dict[str, float] = {}

    def get(self, session_id: str) -> Optional[ConversionSession]:
        """Existing session for the id, or None. Never creates one."""
        self._sweep()
        session = self._sessions.get(session_id)
        if session is not None:
            self._last_seen[session_id] = self._clock()
        return session

    def get_or_create(self, session_id: str) -> ConversionSession:
        session = self.get(session_id)
        if session is None:
            session = ConversionSession(self._engine, session_id=session_id)
            self._sessions[session_id] = session
            self._last_seen[session_id] = self._clock()
            logger.info("Session %s created", session_id)
        return session

    def drop(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        if session is None:
            return False
        if session.is_running:
            raise BatchInProgressError("Cannot drop a session while a batch is running")
        del self._sessions[session_id]
        self._last_seen.pop(session_id, None)
        return True

    def _sweep(self) -> None:
        if self._ttl <= 0:
            return
        now = self._clock()
        expired = [
            sid
            for sid, seen in self._last_seen.items()
            if now - seen > self._ttl and not self._sessions[sid].is_running
        ]
        for sid in expired:
            del self._sessions[sid]
            del self._last_seen[sid]
        if expired:
            logger.info("Expired %s idle session(s)", len(expired))

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions
