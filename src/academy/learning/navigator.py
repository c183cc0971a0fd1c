"""Section navigator: cursor over one chapter's ordered sections.

Only available sections are reachable. Coming-soon sections are skipped
by navigation and never count toward the percentage, though a recorded
completion of one stays in the completed set. A section opens once every
earlier story section is completed.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from academy.curriculum import Chapter, Section, SectionType


class AdvanceOutcome(str, Enum):
    """What the cursor did after a section completed."""

    CHAPTER_COMPLETE = "chapter-complete"
    MOVED = "moved"
    STAYED = "stayed"


class SectionNavigator:
    def __init__(
        self,
        chapter: Chapter,
        completed: Iterable[str] = (),
        current_index: int | None = None,
    ) -> None:
        self.chapter = chapter
        self._completed: set[str] = set()
        self.set_completed(completed)
        if current_index is None:
            first = self.next_available(-1)
            current_index = first if first is not None else 0
        self.current_index = current_index

    @property
    def sections(self) -> tuple[Section, ...]:
        return self.chapter.sections

    @property
    def completed(self) -> frozenset[str]:
        return frozenset(self._completed)

    def set_completed(self, section_ids: Iterable[str]) -> None:
        """Replace the completed set. Ids that are not sections of the chapter are dropped."""
        self._completed = set(section_ids) & set(self.chapter.section_ids)

    def current_section(self) -> Section | None:
        if 0 <= self.current_index < len(self.sections):
            return self.sections[self.current_index]
        return None

    def next_available(self, from_index: int) -> int | None:
        """Index of the nearest available section after ``from_index``."""
        for index in range(from_index + 1, len(self.sections)):
            if self.sections[index].is_available:
                return index
        return None

    def previous_available(self, from_index: int) -> int | None:
        """Index of the nearest available section before ``from_index``."""
        for index in range(min(from_index, len(self.sections)) - 1, -1, -1):
            if self.sections[index].is_available:
                return index
        return None

    def progress_percentage(self) -> float:
        available = self.chapter.available_section_ids
        if not available:
            return 0.0
        return len(self._completed & available) / len(available) * 100

    def is_chapter_complete(self) -> bool:
        return self.chapter.is_complete(self._completed)

    def can_access_section(self, index: int) -> bool:
        """The first section is open. Later ones need every earlier available story section completed."""
        if index == 0:
            return True
        return all(
            section.id in self._completed
            for section in self.sections[:index]
            if section.type is SectionType.STORY and section.is_available
        )

    def go_next(self) -> bool:
        """Move to the next available section. False at the end."""
        target = self.next_available(self.current_index)
        if target is None:
            return False
        self.current_index = target
        return True

    def go_previous(self) -> bool:
        target = self.previous_available(self.current_index)
        if target is None:
            return False
        self.current_index = target
        return True

    def go_to(self, section_id: str) -> None:
        """Jump to a section. Raises KeyError if absent, ValueError if unavailable."""
        index = self.chapter.index_of(section_id)
        if not self.sections[index].is_available:
            msg = f"Section {section_id!r} is not available"
            raise ValueError(msg)
        self.current_index = index

    def advance_after_completion(self, section_id: str) -> AdvanceOutcome:
        """Move the cursor after ``section_id`` completed.

        Completing the last available section in sequence order completes
        the chapter; otherwise the cursor moves to the next available one.
        """
        index = self.chapter.index_of(section_id)
        if self.sections[index].is_available and self.next_available(index) is None:
            return AdvanceOutcome.CHAPTER_COMPLETE
        target = self.next_available(index)
        if target is None:
            return AdvanceOutcome.STAYED
        self.current_index = target
        return AdvanceOutcome.MOVED
