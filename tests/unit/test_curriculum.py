"""Curriculum graph and catalog tests."""

from __future__ import annotations

import pytest

from academy.curriculum import Availability, Chapter, Section, SectionType, get_module, normalize_module_id
from academy.curriculum.catalog import MODULES
from academy.curriculum.models import IDENTITY_REQUIRED, requires_identity


def _chapter(*sections: Section) -> Chapter:
    return Chapter(id="ch", title="Chapter", sections=sections)


class TestIdentityRequirement:
    def test_table_covers_every_section_type(self) -> None:
        assert set(IDENTITY_REQUIRED) == set(SectionType)

    @pytest.mark.parametrize("section_type", [SectionType.QUIZ, SectionType.CHALLENGE])
    def test_quiz_and_challenge_are_gated(self, section_type: SectionType) -> None:
        assert requires_identity(section_type) is True

    @pytest.mark.parametrize(
        "section_type",
        [SectionType.THEORY, SectionType.STORY, SectionType.CODE_EXAMPLE, SectionType.HANDS_ON],
    )
    def test_reading_sections_are_not_gated(self, section_type: SectionType) -> None:
        assert requires_identity(section_type) is False

    def test_section_property_delegates(self) -> None:
        assert Section(id="q", type=SectionType.QUIZ).requires_identity is True


class TestChapter:
    def test_available_ids_skip_coming_soon(self) -> None:
        chapter = _chapter(
            Section(id="s1", type=SectionType.THEORY),
            Section(id="s2", type=SectionType.QUIZ),
            Section(id="s3", type=SectionType.THEORY, status=Availability.COMING_SOON),
        )
        assert chapter.available_section_ids == frozenset({"s1", "s2"})

    def test_complete_ignores_coming_soon_sections(self) -> None:
        chapter = _chapter(
            Section(id="s1", type=SectionType.THEORY),
            Section(id="s2", type=SectionType.THEORY, status=Availability.COMING_SOON),
        )
        assert chapter.is_complete({"s1"}) is True

    def test_chapter_without_available_sections_never_completes(self) -> None:
        chapter = _chapter(Section(id="s1", type=SectionType.STORY, status=Availability.COMING_SOON))
        assert chapter.is_complete(set()) is False
        assert chapter.is_complete({"s1"}) is False

    def test_index_of_unknown_section(self) -> None:
        with pytest.raises(KeyError):
            _chapter(Section(id="s1", type=SectionType.THEORY)).index_of("missing")


class TestCatalog:
    def test_alias_resolves_to_canonical_module(self) -> None:
        assert normalize_module_id("defi-arbitrum") == "master-defi"
        assert get_module("defi-arbitrum") is MODULES["master-defi"]

    def test_unknown_module(self) -> None:
        assert get_module("does-not-exist") is None

    def test_chapter_levels_follow_order(self) -> None:
        module = get_module("cross-chain")
        assert module is not None
        assert [ch.level for ch in module.chapters] == [1, 2, 3]

    def test_points_by_difficulty(self) -> None:
        module = get_module("cross-chain")
        assert module is not None
        assert [ch.points for ch in module.chapters] == [10, 20, 30]

    def test_section_ids_unique_within_each_module(self) -> None:
        for module in MODULES.values():
            ids = [s.id for ch in module.chapters for s in ch.sections]
            assert len(ids) == len(set(ids)), module.id
