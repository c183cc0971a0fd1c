"""Curriculum graph and the static module catalog."""

from academy.curriculum.catalog import get_module, normalize_module_id
from academy.curriculum.models import (
    Availability,
    Chapter,
    CurriculumModule,
    Difficulty,
    Section,
    SectionType,
    requires_identity,
)

__all__ = [
    "Availability",
    "Chapter",
    "CurriculumModule",
    "Difficulty",
    "Section",
    "SectionType",
    "get_module",
    "normalize_module_id",
    "requires_identity",
]
