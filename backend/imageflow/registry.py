"""Queued items of a session, deduplicated by (name, size)."""
from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import Iterable, Iterator, Optional

from imageflow.conversion.models import ConversionItem, ItemStatus, SourceFile
from imageflow.errors import InvalidTransitionError

logger = logging.getLogger("imageflow.registry")

_ALLOWED_TRANSITIONS = {
    ItemStatus.PENDING: {ItemStatus.PROCESSING, ItemStatus.PENDING},
    ItemStatus.PROCESSING: {ItemStatus.COMPLETED, ItemStatus.ERROR, ItemStatus.PENDING},
    ItemStatus.COMPLETED: {ItemStatus.PENDING},
    ItemStatus.ERROR: {ItemStatus.PENDING},
}


class ItemRegistry:
    """Ordered store of ConversionItems.

    Items are addressed by ``item_id``; ``transition`` is the only place an
    item's status changes.
    """

    def __init__(self):
        self._items: list[ConversionItem] = []
        self._positions: dict[str, int] = {}
        self._keys: set[tuple[str, int]] = set()

    def admit(self, files: Iterable[SourceFile]) -> list[ConversionItem]:
        """Add files as pending items, skipping any whose (name, size) is already queued."""
        admitted: list[ConversionItem] = []
        for f in files:
            key = (f.name, f.size)
            if key in self._keys:
                logger.debug("Skipping duplicate %s (%s bytes)", f.name, f.size)
                continue
            item = ConversionItem(
                item_id=uuid.uuid4().hex,
                source_name=f.name,
                source_bytes=f.data,
                content_type=f.content_type,
            )
            self._positions[item.item_id] = len(self._items)
            self._items.append(item)
            self._keys.add(key)
            admitted.append(item)
        if admitted:
            logger.info("Admitted %s item(s), %s queued", len(admitted), len(self._items))
        return admitted

    def clear(self) -> None:
        self._items.clear()
        self._positions.clear()
        self._keys.clear()

    def list(self) -> list[ConversionItem]:
        return list(self._items)

    def get(self, item_id: str) -> ConversionItem:
        return self._items[self._positions[item_id]]

    def find(self, item_id: str) -> Optional[ConversionItem]:
        pos = self._positions.get(item_id)
        return self._items[pos] if pos is not None else None

    def converted(self) -> list[ConversionItem]:
        """Completed items in admission order."""
        return [item for item in self._items if item.status is ItemStatus.COMPLETED]

    def transition(
        self,
        item_id: str,
        status: ItemStatus,
        *,
        converted_bytes: Optional[bytes] = None,
        output_format: Optional[str] = None,
        error: Optional[str] = None,
    ) -> ConversionItem:
        pos = self._positions[item_id]
        current = self._items[pos]
        if status not in _ALLOWED_TRANSITIONS[current.status]:
            raise InvalidTransitionError(
                f"{current.source_name}: {current.status.value} -> {status.value} is not allowed"
            )
        completed = status is ItemStatus.COMPLETED
        updated = dataclasses.replace(
            current,
            status=status,
            converted_bytes=converted_bytes if completed else None,
            output_format=output_format if completed else None,
            error=error if status is ItemStatus.ERROR else None,
        )
        self._items[pos] = updated
        return updated

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ConversionItem]:
        return iter(list(self._items))
