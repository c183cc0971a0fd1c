"""Curriculum graph: modules, chapters and sections."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SectionType(str, Enum):
    """Closed set of section kinds."""

    THEORY = "theory"
    QUIZ = "quiz"
    CHALLENGE = "challenge"
    STORY = "story"
    CODE_EXAMPLE = "code-example"
    HANDS_ON = "hands-on"


class Availability(str, Enum):
    AVAILABLE = "available"
    COMING_SOON = "coming-soon"


class Difficulty(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"


# Must cover every SectionType member; checked in tests.
IDENTITY_REQUIRED: dict[SectionType, bool] = {
    SectionType.THEORY: False,
    SectionType.QUIZ: True,
    SectionType.CHALLENGE: True,
    SectionType.STORY: False,
    SectionType.CODE_EXAMPLE: False,
    SectionType.HANDS_ON: False,
}

CHAPTER_POINTS: dict[Difficulty, int] = {
    Difficulty.BEGINNER: 10,
    Difficulty.INTERMEDIATE: 20,
    Difficulty.ADVANCED: 30,
}


def requires_identity(section_type: SectionType) -> bool:
    """Whether completing a section of this type needs a verified identity link."""
    try:
        return IDENTITY_REQUIRED[section_type]
    except KeyError:
        msg = f"Unhandled section type: {section_type!r}"
        raise ValueError(msg) from None


@dataclass(frozen=True)
class Section:
    """Atomic learning unit. ``content`` is opaque to the engine."""

    id: str
    type: SectionType
    title: str = ""
    status: Availability = Availability.AVAILABLE
    content: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def is_available(self) -> bool:
        return self.status is Availability.AVAILABLE

    @property
    def requires_identity(self) -> bool:
        return requires_identity(self.type)


@dataclass(frozen=True)
class Chapter:
    """Ordered list of sections."""

    id: str
    title: str
    sections: tuple[Section, ...]
    level: int = 1
    difficulty: Difficulty = Difficulty.BEGINNER
    status: Availability = Availability.AVAILABLE

    @property
    def section_ids(self) -> tuple[str, ...]:
        return tuple(s.id for s in self.sections)

    @property
    def available_section_ids(self) -> frozenset[str]:
        return frozenset(s.id for s in self.sections if s.is_available)

    @property
    def points(self) -> int:
        return CHAPTER_POINTS[self.difficulty]

    def get_section(self, section_id: str) -> Section | None:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def index_of(self, section_id: str) -> int:
        """Position of a section in sequence order. Raises KeyError if absent."""
        for index, section in enumerate(self.sections):
            if section.id == section_id:
                return index
        msg = f"Section {section_id!r} not in chapter {self.id!r}"
        raise KeyError(msg)

    def is_complete(self, completed: set[str] | frozenset[str]) -> bool:
        """All available sections are completed. Chapters with none never complete."""
        available = self.available_section_ids
        return bool(available) and available <= completed


@dataclass(frozen=True)
class CurriculumModule:
    """Top-level learning module."""

    id: str
    title: str
    chapters: tuple[Chapter, ...]

    def get_chapter(self, chapter_id: str) -> Chapter | None:
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        return None
