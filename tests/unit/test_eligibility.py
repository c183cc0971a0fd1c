"""Eligibility calculator tests."""

from __future__ import annotations

from academy.certification.eligibility import (
    CertificationLevel,
    ChallengeRecord,
    EligibilityCalculator,
    LevelEligibility,
    is_eligible_counts,
)
from academy.certification.levels import CERTIFICATION_LEVELS, get_level

FIVE = CertificationLevel(
    level_key="core",
    level=2,
    name="Core",
    required_challenges=("c1", "c2", "c3", "c4", "c5"),
)
THREE = CertificationLevel(level_key="basics", level=1, name="Basics", required_challenges=("c1", "c2", "c3"))


def _done(*ids: str) -> list[ChallengeRecord]:
    return [ChallengeRecord(challenge_id=cid, completed=True, detail={"challengeId": cid}) for cid in ids]


class TestCounts:
    def test_five_of_five_is_eligible(self) -> None:
        calc = EligibilityCalculator([FIVE])
        assert calc.is_eligible(FIVE, _done("c1", "c2", "c3", "c4", "c5")) is True

    def test_four_of_five_is_not_eligible(self) -> None:
        calc = EligibilityCalculator([FIVE])
        assert calc.completed_required_count(FIVE, _done("c1", "c2", "c3", "c4")) == 4
        assert calc.is_eligible(FIVE, _done("c1", "c2", "c3", "c4")) is False

    def test_unrelated_challenges_do_not_count(self) -> None:
        calc = EligibilityCalculator([THREE])
        assert calc.completed_required_count(THREE, _done("c1", "zzz")) == 1

    def test_over_reported_count_stays_eligible(self) -> None:
        assert is_eligible_counts(4, 3) is True
        entry = LevelEligibility(level_key="x", level=1, name="X", completed_count=6, required_count=5)
        assert entry.is_eligible is True

    def test_completed_record_wins_over_incomplete_duplicate(self) -> None:
        calc = EligibilityCalculator([THREE])
        records = [
            ChallengeRecord(challenge_id="c1", completed=False),
            ChallengeRecord(challenge_id="c1", completed=True),
        ]
        assert calc.completed_required_count(THREE, records) == 1


class TestReport:
    def test_per_level_details(self) -> None:
        report = EligibilityCalculator([FIVE, THREE]).evaluate(_done("c1", "c2", "c3"))
        basics = report.for_level(1)
        core = report.for_level(2)
        assert basics is not None and core is not None
        assert (basics.completed_count, basics.required_count, basics.is_eligible) == (3, 3, True)
        assert (core.completed_count, core.required_count, core.is_eligible) == (3, 5, False)
        assert [d.id for d in core.challenge_details] == ["c1", "c2", "c3", "c4", "c5"]
        assert core.challenge_details[0].detail == {"challengeId": "c1"}
        assert core.challenge_details[4].detail is None

    def test_total_is_sum_across_levels(self) -> None:
        report = EligibilityCalculator([FIVE, THREE]).evaluate(_done("c1", "c2"))
        assert report.total_completed_challenges == 4

    def test_highest_eligible_level(self) -> None:
        report = EligibilityCalculator([FIVE, THREE]).evaluate(_done("c1", "c2", "c3", "c4", "c5"))
        assert report.highest_eligible is not None
        assert report.highest_eligible.level == 2

    def test_no_eligible_level(self) -> None:
        report = EligibilityCalculator([FIVE, THREE]).evaluate([])
        assert report.highest_eligible is None


class TestLevelCatalog:
    def test_seven_levels_in_order(self) -> None:
        assert [lvl.level for lvl in CERTIFICATION_LEVELS] == [1, 2, 3, 4, 5, 6, 7]

    def test_level_lookup(self) -> None:
        level = get_level(2)
        assert level is not None
        assert level.level_key == "core-stylus"
        assert level.required_count == 5
        assert get_level(99) is None
