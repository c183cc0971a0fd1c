"""Progress service: section completions per (wallet, module).

Completions are insert-only. A completion that already exists is reported
as ``alreadyCompleted`` rather than an error, so clients may retry writes
freely. Every derived figure (chapter completion, percentages, module
completion) counts available sections only. Chapters unlock in order: each
needs every available section of the one before it.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.curriculum import Chapter, CurriculumModule, get_module
from academy.db.models import SectionCompletion

logger = structlog.get_logger()


def require_module(module_id: str) -> CurriculumModule:
    """Resolve a module id or alias. Raises LookupError if unknown."""
    module = get_module(module_id)
    if module is None:
        msg = f"Unknown module: {module_id}"
        raise LookupError(msg)
    return module


def chapter_progress(chapter: Chapter, completed: set[str]) -> dict:
    """Available-only progress figures for one chapter."""
    available = chapter.available_section_ids
    done = len(available & completed)
    total = len(available)
    return {
        "completed": done,
        "total": total,
        "percentage": round(done / total * 100) if total else 0,
    }


def is_module_completed(module: CurriculumModule, completed_by_chapter: dict[str, set[str]]) -> bool:
    """Every chapter that has available sections is complete."""
    gradable = [ch for ch in module.chapters if ch.available_section_ids]
    if not gradable:
        return False
    return all(ch.is_complete(completed_by_chapter.get(ch.id, set())) for ch in gradable)


def is_chapter_accessible(
    module: CurriculumModule, chapter_id: str, completed_by_chapter: dict[str, set[str]]
) -> bool:
    """The first chapter is open. Later ones need every available section of the previous chapter.

    Raises:
        LookupError: Unknown chapter.
    """
    ids = [ch.id for ch in module.chapters]
    if chapter_id not in ids:
        msg = f"Unknown chapter: {chapter_id}"
        raise LookupError(msg)
    index = ids.index(chapter_id)
    if index == 0:
        return True
    previous = module.chapters[index - 1]
    return previous.available_section_ids <= completed_by_chapter.get(previous.id, set())


class ProgressService:
    """Reads and writes learner progress for the curriculum catalog."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def completed_by_chapter(self, wallet: str, module: CurriculumModule) -> dict[str, set[str]]:
        """chapterId -> completed section ids, restricted to the chapter's sections."""
        result = await self.db.execute(
            select(SectionCompletion.chapter_id, SectionCompletion.section_id).where(
                SectionCompletion.wallet_address == wallet,
                SectionCompletion.module_id == module.id,
            )
        )
        raw: dict[str, set[str]] = defaultdict(set)
        for chapter_id, section_id in result.all():
            raw[chapter_id].add(section_id)

        completed: dict[str, set[str]] = {}
        for chapter in module.chapters:
            ids = raw.get(chapter.id, set()) & set(chapter.section_ids)
            if ids:
                completed[chapter.id] = ids
        return completed

    async def get_progress(self, wallet: str, module_id: str) -> dict:
        """Full progress document for one learner and module."""
        module = require_module(module_id)
        completed = await self.completed_by_chapter(wallet, module)

        chapters: dict[str, list[str]] = {}
        progress_by_chapter: dict[str, dict] = {}
        completed_chapters: list[dict] = []
        total_points = 0

        for chapter in module.chapters:
            done = completed.get(chapter.id, set())
            if done:
                # Sequence order, not storage order
                chapters[chapter.id] = [sid for sid in chapter.section_ids if sid in done]
            progress_by_chapter[chapter.id] = chapter_progress(chapter, done)
            if chapter.is_complete(done):
                completed_chapters.append(
                    {
                        "chapterId": chapter.id,
                        "level": chapter.level,
                        "difficulty": chapter.difficulty.value,
                        "points": chapter.points,
                    }
                )
                total_points += chapter.points

        return {
            "userAddress": wallet,
            "module": module.id,
            "chapters": chapters,
            "completedChapters": completed_chapters,
            "progressByChapter": progress_by_chapter,
            "accessibleChapters": [
                ch.id for ch in module.chapters if is_chapter_accessible(module, ch.id, completed)
            ],
            "totalPoints": total_points,
            "isCompleted": is_module_completed(module, completed),
        }

    async def record_completion(
        self,
        wallet: str,
        module_id: str,
        chapter_id: str,
        section_id: str,
        finalize_chapter: bool = False,
    ) -> dict:
        """Record a section completion. Idempotent per (wallet, module, chapter, section).

        With ``finalize_chapter`` every available section of the chapter is
        recorded, which backfills learners who finished a chapter before
        per-section tracking existed.
        """
        module = require_module(module_id)
        chapter = module.get_chapter(chapter_id)
        if chapter is None:
            msg = f"Unknown chapter: {chapter_id}"
            raise LookupError(msg)
        section = chapter.get_section(section_id)
        if section is None:
            msg = f"Unknown section: {section_id}"
            raise LookupError(msg)
        if not section.is_available:
            msg = f"Section {section_id} is not available"
            raise ValueError(msg)

        targets = [section_id]
        if finalize_chapter:
            targets = [s.id for s in chapter.sections if s.is_available]

        existing = await self.completed_by_chapter(wallet, module)
        already = existing.get(chapter.id, set())
        new_ids = [sid for sid in targets if sid not in already]

        now = datetime.now(timezone.utc)
        for sid in new_ids:
            self.db.add(
                SectionCompletion(
                    wallet_address=wallet,
                    module_id=module.id,
                    chapter_id=chapter.id,
                    section_id=sid,
                    completed_at=now,
                )
            )

        already_completed = section_id in already
        completed = already | set(new_ids)
        if new_ids:
            try:
                await self.db.flush()
            except IntegrityError:
                # Concurrent write for the same completion won
                await self.db.rollback()
                already_completed = True
                new_ids = []
                completed = await self._reload_chapter(wallet, module, chapter)

        logger.info(
            "section_completion_recorded",
            module=module.id,
            chapter=chapter.id,
            section=section_id,
            inserted=len(new_ids),
            finalize=finalize_chapter,
        )

        return {
            "success": True,
            "alreadyCompleted": already_completed,
            "chapterId": chapter.id,
            "sectionId": section_id,
            "chapters": {chapter.id: [sid for sid in chapter.section_ids if sid in completed]},
            "chapterCompleted": chapter.is_complete(completed),
        }

    async def _reload_chapter(self, wallet: str, module: CurriculumModule, chapter: Chapter) -> set[str]:
        completed = await self.completed_by_chapter(wallet, module)
        return completed.get(chapter.id, set())

    async def is_completed(self, wallet: str, module_id: str) -> bool:
        module = require_module(module_id)
        return is_module_completed(module, await self.completed_by_chapter(wallet, module))
