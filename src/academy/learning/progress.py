"""
Client-side progress: store interface, optimistic overlay, write sync.

The overlay keeps three sets per chapter:

- committed: confirmed by the store (a successful write or read)
- pending: applied locally, write in flight
- unsynced: applied locally, write failed after the retry budget

``completed = committed | pending | unsynced``. Only a confirmed rejection
(``ProgressRejected``) removes an entry; transport failures never roll
back what the learner already sees.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum

import structlog

from academy.errors import NetworkFailure, ProgressRejected

logger = structlog.get_logger()

ChapterProgress = dict[str, set[str]]


@dataclass(frozen=True)
class WriteAck:
    already_completed: bool = False


class ProgressStore(ABC):
    """Persistent per-user, per-module progress."""

    @abstractmethod
    async def read(self, user: str, module: str) -> ChapterProgress:
        """chapterId -> completed section ids. Raises NetworkFailure."""
        ...

    @abstractmethod
    async def write(self, user: str, chapter_id: str, section_id: str, module: str) -> WriteAck:
        """Record one completion. Duplicates are acknowledged, not rejected.

        Raises NetworkFailure (transient) or ProgressRejected (final).
        """
        ...


class InMemoryProgressStore(ProgressStore):
    """Process-local store for offline sessions and tests."""

    def __init__(self) -> None:
        self._data: dict[tuple[str, str], ChapterProgress] = defaultdict(lambda: defaultdict(set))
        self.writes: list[tuple[str, str, str, str]] = []

    async def read(self, user: str, module: str) -> ChapterProgress:
        return {chapter: set(ids) for chapter, ids in self._data[(user, module)].items() if ids}

    async def write(self, user: str, chapter_id: str, section_id: str, module: str) -> WriteAck:
        self.writes.append((user, chapter_id, section_id, module))
        chapter = self._data[(user, module)][chapter_id]
        already = section_id in chapter
        chapter.add(section_id)
        return WriteAck(already_completed=already)


class ProgressOverlay:
    """Committed/pending/unsynced completion sets for one module."""

    def __init__(self) -> None:
        self.committed: ChapterProgress = defaultdict(set)
        self.pending: ChapterProgress = defaultdict(set)
        self.unsynced: ChapterProgress = defaultdict(set)

    def completed(self, chapter_id: str) -> set[str]:
        return self.committed[chapter_id] | self.pending[chapter_id] | self.unsynced[chapter_id]

    def is_completed(self, chapter_id: str, section_id: str) -> bool:
        return section_id in self.completed(chapter_id)

    def stage(self, chapter_id: str, section_id: str) -> None:
        if section_id not in self.committed[chapter_id]:
            self.unsynced[chapter_id].discard(section_id)
            self.pending[chapter_id].add(section_id)

    def confirm(self, chapter_id: str, section_id: str) -> None:
        self.pending[chapter_id].discard(section_id)
        self.unsynced[chapter_id].discard(section_id)
        self.committed[chapter_id].add(section_id)

    def reject(self, chapter_id: str, section_id: str) -> None:
        self.pending[chapter_id].discard(section_id)
        self.unsynced[chapter_id].discard(section_id)

    def mark_unsynced(self, chapter_id: str, section_id: str) -> None:
        self.pending[chapter_id].discard(section_id)
        if section_id not in self.committed[chapter_id]:
            self.unsynced[chapter_id].add(section_id)

    def reconcile(self, snapshot: ChapterProgress) -> None:
        """Fold a successful read in. Local entries the store already has become committed."""
        for chapter_id, section_ids in snapshot.items():
            self.committed[chapter_id] |= set(section_ids)
            self.pending[chapter_id] -= self.committed[chapter_id]
            self.unsynced[chapter_id] -= self.committed[chapter_id]

    def chapter_ids(self) -> list[str]:
        ids = set(self.committed) | set(self.pending) | set(self.unsynced)
        return sorted(chapter_id for chapter_id in ids if self.completed(chapter_id))

    def unsynced_entries(self) -> list[tuple[str, str]]:
        return [(chapter_id, sid) for chapter_id, ids in self.unsynced.items() for sid in sorted(ids)]

    @property
    def has_unsynced(self) -> bool:
        return any(self.unsynced.values())


class SyncResult(str, Enum):
    COMMITTED = "committed"
    ALREADY_COMPLETED = "already-completed"
    REJECTED = "rejected"
    UNSYNCED = "unsynced"


class ProgressSync:
    """Drives one learner's module progress between the overlay and the store.

    ``user`` is None when no wallet is connected: completions are then kept
    locally as unsynced and never written.
    """

    def __init__(
        self,
        store: ProgressStore,
        user: str | None,
        module: str,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        max_backoff_seconds: float = 4.0,
    ) -> None:
        self.store = store
        self.user = user
        self.module = module
        self.overlay = ProgressOverlay()
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds

    def completed(self, chapter_id: str) -> set[str]:
        return self.overlay.completed(chapter_id)

    @property
    def has_unsynced(self) -> bool:
        return self.overlay.has_unsynced

    async def load(self) -> ChapterProgress:
        """Read from the store and reconcile. Read failures fail open."""
        if self.user is not None:
            try:
                snapshot = await self.store.read(self.user, self.module)
            except NetworkFailure as exc:
                logger.warning("progress_read_failed", module=self.module, error=exc.message)
            else:
                self.overlay.reconcile(snapshot)
        return {chapter_id: self.completed(chapter_id) for chapter_id in self.overlay.chapter_ids()}

    def stage(self, chapter_id: str, section_id: str) -> None:
        """Optimistic local update."""
        if self.user is None:
            self.overlay.mark_unsynced(chapter_id, section_id)
        else:
            self.overlay.stage(chapter_id, section_id)

    async def persist(self, chapter_id: str, section_id: str) -> SyncResult:
        """Write a staged completion, retrying transport failures with bounded backoff."""
        if self.user is None:
            return SyncResult.UNSYNCED

        delay = self.backoff_seconds
        attempt = 1
        while True:
            try:
                ack = await self.store.write(self.user, chapter_id, section_id, self.module)
            except ProgressRejected as exc:
                logger.warning(
                    "progress_write_rejected",
                    module=self.module,
                    chapter=chapter_id,
                    section=section_id,
                    error=exc.message,
                )
                self.overlay.reject(chapter_id, section_id)
                return SyncResult.REJECTED
            except NetworkFailure as exc:
                if attempt == self.max_attempts:
                    logger.warning(
                        "progress_write_unsynced",
                        module=self.module,
                        chapter=chapter_id,
                        section=section_id,
                        attempts=attempt,
                        error=exc.message,
                    )
                    self.overlay.mark_unsynced(chapter_id, section_id)
                    return SyncResult.UNSYNCED
                logger.info("progress_write_retry", section=section_id, attempt=attempt, delay=delay)
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_backoff_seconds)
                attempt += 1
            else:
                self.overlay.confirm(chapter_id, section_id)
                return SyncResult.ALREADY_COMPLETED if ack.already_completed else SyncResult.COMMITTED

    async def flush_unsynced(self) -> int:
        """Retry every unsynced completion once through ``persist``. Returns how many landed."""
        if self.user is None:
            return 0
        landed = 0
        for chapter_id, section_id in self.overlay.unsynced_entries():
            self.overlay.stage(chapter_id, section_id)
            result = await self.persist(chapter_id, section_id)
            if result in (SyncResult.COMMITTED, SyncResult.ALREADY_COMPLETED):
                landed += 1
        return landed
