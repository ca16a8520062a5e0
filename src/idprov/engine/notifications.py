"""Delayed notification queue."""

from __future__ import annotations

from typing import Iterator

import structlog

from idprov.resources.base import ResourceKey

logger = structlog.get_logger()


class NotificationQueue:
    """
    Pending delayed notifications, de-duplicated by (target, action).

    A pair fires at most once per run: queuing it again while pending or
    after it fired is a no-op.
    """

    def __init__(self) -> None:
        self._pending: list[tuple[ResourceKey, str]] = []
        self._seen: set[tuple[ResourceKey, str]] = set()

    def add(self, target: ResourceKey, action: str, *, source: str | None = None) -> bool:
        pair = (target, action)
        if pair in self._seen:
            logger.debug("notification_deduplicated", target=str(target), action=action, source=source)
            return False
        self._seen.add(pair)
        self._pending.append(pair)
        logger.debug("notification_queued", target=str(target), action=action, source=source)
        return True

    def drain(self) -> Iterator[tuple[ResourceKey, str]]:
        """Yield pending pairs in queue order until none remain, including ones queued meanwhile."""
        while self._pending:
            yield self._pending.pop(0)

    def __len__(self) -> int:
        return len(self._pending)
