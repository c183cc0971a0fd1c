"""Eligibility calculator.

Derives per-level completion counts from challenge completion records.
Used by the service to answer eligibility queries and by the learner
engine to re-derive ``is_eligible`` from the counts it receives.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class CertificationLevel:
    level_key: str
    level: int
    name: str
    required_challenges: tuple[str, ...]
    description: str = ""

    @property
    def required_count(self) -> int:
        return len(self.required_challenges)


@dataclass(frozen=True)
class ChallengeRecord:
    """One learner's result for one challenge."""

    challenge_id: str
    completed: bool
    detail: dict[str, Any] | None = field(default=None, compare=False, hash=False)


@dataclass(frozen=True)
class ChallengeDetail:
    id: str
    completed: bool
    detail: dict[str, Any] | None = None


@dataclass(frozen=True)
class LevelEligibility:
    level_key: str
    level: int
    name: str
    completed_count: int
    required_count: int
    challenge_details: tuple[ChallengeDetail, ...] = ()
    description: str = ""

    @property
    def is_eligible(self) -> bool:
        return is_eligible_counts(self.completed_count, self.required_count)


@dataclass(frozen=True)
class EligibilityReport:
    levels: tuple[LevelEligibility, ...]
    total_completed_challenges: int

    @property
    def highest_eligible(self) -> LevelEligibility | None:
        eligible = [lvl for lvl in self.levels if lvl.is_eligible]
        if not eligible:
            return None
        return max(eligible, key=lambda lvl: lvl.level)

    def for_level(self, level: int) -> LevelEligibility | None:
        for entry in self.levels:
            if entry.level == level:
                return entry
        return None


def is_eligible_counts(completed_count: int, required_count: int) -> bool:
    """``>=`` rather than ``==`` so over-reported counts never lock a learner out."""
    return completed_count >= required_count


class EligibilityCalculator:
    """Evaluate certification levels against a learner's challenge records."""

    def __init__(self, levels: Iterable[CertificationLevel]) -> None:
        self.levels = tuple(sorted(levels, key=lambda lvl: lvl.level))

    @staticmethod
    def _index(records: Iterable[ChallengeRecord]) -> dict[str, ChallengeRecord]:
        # A completed record wins over an incomplete one for the same challenge
        index: dict[str, ChallengeRecord] = {}
        for record in records:
            current = index.get(record.challenge_id)
            if current is None or (record.completed and not current.completed):
                index[record.challenge_id] = record
        return index

    def completed_required_count(
        self,
        level: CertificationLevel,
        records: Mapping[str, ChallengeRecord] | Iterable[ChallengeRecord],
    ) -> int:
        index = records if isinstance(records, Mapping) else self._index(records)
        count = 0
        for challenge_id in level.required_challenges:
            record = index.get(challenge_id)
            if record is not None and record.completed:
                count += 1
        return count

    def is_eligible(
        self,
        level: CertificationLevel,
        records: Mapping[str, ChallengeRecord] | Iterable[ChallengeRecord],
    ) -> bool:
        return is_eligible_counts(self.completed_required_count(level, records), level.required_count)

    def evaluate(self, records: Iterable[ChallengeRecord]) -> EligibilityReport:
        """Build the per-level report for one learner."""
        index = self._index(records)
        levels = []
        for level in self.levels:
            details = []
            for challenge_id in level.required_challenges:
                rec = index.get(challenge_id)
                completed = rec is not None and rec.completed
                details.append(
                    ChallengeDetail(
                        id=challenge_id,
                        completed=completed,
                        detail=rec.detail if completed and rec is not None else None,
                    )
                )
            levels.append(
                LevelEligibility(
                    level_key=level.level_key,
                    level=level.level,
                    name=level.name,
                    description=level.description,
                    completed_count=sum(1 for d in details if d.completed),
                    required_count=level.required_count,
                    challenge_details=tuple(details),
                )
            )
        return EligibilityReport(
            levels=tuple(levels),
            # Display aggregate only: overlapping levels count a shared challenge once per level
            total_completed_challenges=sum(lvl.completed_count for lvl in levels),
        )
