"""
Learning session: one learner viewing one chapter.

Owns the navigator, the completion gate and the progress sync for that
view. Every awaited engine call runs as a task bound to the session;
``close()`` cancels whatever is still in flight and abandons a completion
held for identity verification.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from types import TracebackType
from typing import TypeVar

import structlog

from academy.config import Settings, get_settings
from academy.curriculum import Chapter
from academy.learning.gate import CompletionGate, GateResult
from academy.learning.identity import IdentityLinkService, VerifiedIdentity
from academy.learning.navigator import AdvanceOutcome, SectionNavigator
from academy.learning.progress import ProgressStore, ProgressSync

logger = structlog.get_logger()

T = TypeVar("T")

ChapterListener = Callable[[Chapter], None]


@dataclass(frozen=True)
class CompletionUpdate:
    result: GateResult
    advance: AdvanceOutcome | None = None

    @property
    def chapter_complete(self) -> bool:
        return self.advance is AdvanceOutcome.CHAPTER_COMPLETE


class LearningSession:
    def __init__(
        self,
        chapter: Chapter,
        module_id: str,
        store: ProgressStore,
        identity: IdentityLinkService,
        wallet: str | None = None,
        return_to: str | None = None,
        max_attempts: int = 3,
        backoff_seconds: float = 0.5,
        max_backoff_seconds: float = 4.0,
    ) -> None:
        self.chapter = chapter
        self.module_id = module_id
        self.wallet = wallet.lower() if wallet else None
        self.sync = ProgressSync(
            store,
            self.wallet,
            module_id,
            max_attempts=max_attempts,
            backoff_seconds=backoff_seconds,
            max_backoff_seconds=max_backoff_seconds,
        )
        self.gate = CompletionGate(self.sync, identity, self.wallet, return_to=return_to)
        self.navigator = SectionNavigator(chapter)
        self.closed = False
        self._listeners: list[ChapterListener] = []
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        chapter: Chapter,
        module_id: str,
        store: ProgressStore,
        identity: IdentityLinkService,
        wallet: str | None = None,
        return_to: str | None = None,
        settings: Settings | None = None,
    ) -> LearningSession:
        settings = settings or get_settings()
        return cls(
            chapter,
            module_id,
            store,
            identity,
            wallet=wallet,
            return_to=return_to,
            max_attempts=settings.progress_write_max_attempts,
            backoff_seconds=settings.progress_write_backoff_seconds,
            max_backoff_seconds=settings.progress_write_max_backoff_seconds,
        )

    async def __aenter__(self) -> LearningSession:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # --- Listeners ---

    def on_chapter_complete(self, listener: ChapterListener) -> None:
        self._listeners.append(listener)

    def _emit_chapter_complete(self) -> None:
        logger.info("chapter_complete", module=self.module_id, chapter=self.chapter.id)
        for listener in self._listeners:
            listener(self.chapter)

    # --- Operations ---

    async def open(self) -> None:
        await self._run(self.sync.load)
        self._refresh_navigator()

    async def complete_section(self, section_id: str | None = None) -> CompletionUpdate:
        """Complete ``section_id`` (default: the current section)."""
        if section_id is None:
            current = self.navigator.current_section()
            if current is None:
                msg = "Chapter has no sections"
                raise ValueError(msg)
            section = current
        else:
            section = self.chapter.sections[self.chapter.index_of(section_id)]
        if not section.is_available:
            msg = f"Section {section.id!r} is not available"
            raise ValueError(msg)

        result = await self._run(lambda: self.gate.attempt(self.chapter, section))
        return self._apply(result)

    async def complete_identity(self, correlation: str, identity: VerifiedIdentity) -> CompletionUpdate:
        """Feed the verification round trip back in. Replays the held completion once."""
        result = await self._run(lambda: self.gate.complete_identity(correlation, identity))
        return self._apply(result)

    async def flush_unsynced(self) -> int:
        landed = await self._run(self.sync.flush_unsynced)
        self._refresh_navigator()
        return landed

    @property
    def has_unsynced(self) -> bool:
        return self.sync.has_unsynced

    def progress_percentage(self) -> float:
        return self.navigator.progress_percentage()

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.gate.cancel()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("learning_session_closed", chapter=self.chapter.id, cancelled=len(tasks))

    # --- Internals ---

    async def _run(self, factory: Callable[[], Awaitable[T]]) -> T:
        if self.closed:
            msg = "Learning session is closed"
            raise RuntimeError(msg)

        async def _call() -> T:
            return await factory()

        task = asyncio.create_task(_call())
        self._tasks.add(task)
        try:
            return await task
        finally:
            self._tasks.discard(task)

    def _refresh_navigator(self) -> None:
        self.navigator.set_completed(self.sync.completed(self.chapter.id))

    def _apply(self, result: GateResult) -> CompletionUpdate:
        self._refresh_navigator()
        if not result.committed:
            return CompletionUpdate(result=result)
        advance = self.navigator.advance_after_completion(result.section_id)
        if advance is AdvanceOutcome.CHAPTER_COMPLETE:
            self._emit_chapter_complete()
        return CompletionUpdate(result=result, advance=advance)
