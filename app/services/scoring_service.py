"""Weighted checklist scoring.

Every checklist item on steps 2..7 contributes ``weight * rating`` points
out of a possible ``weight * 5``. Items with weight 0 are left out of both
sides. When nothing is weighted the percentage is ``None``, which callers
must keep apart from a real 0%.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from app.domain.checklist import MAX_RATING
from app.domain.models import ChecklistItem, ScoreRead, ScoreTier
from app.domain.state_machine import VEHICLE_INFO_STEP

GOOD_THRESHOLD = 70
CAUTION_THRESHOLD = 40


class ScorableStep(Protocol):
    step_number: int
    checklist: Sequence[ChecklistItem]


@dataclass(frozen=True)
class ScoreResult:
    earned: int
    max_possible: int

    @property
    def percentage(self) -> int | None:
        if self.max_possible <= 0:
            return None
        # Half-up rounding of 100 * earned / max_possible in integer arithmetic.
        return (200 * self.earned + self.max_possible) // (2 * self.max_possible)

    @property
    def tier(self) -> ScoreTier | None:
        return score_tier(self.percentage)

    def to_read(self) -> ScoreRead:
        return ScoreRead(
            earned=self.earned,
            max_possible=self.max_possible,
            percentage=self.percentage,
            tier=self.tier,
        )


def score_tier(percentage: int | None) -> ScoreTier | None:
    if percentage is None:
        return None
    if percentage >= GOOD_THRESHOLD:
        return ScoreTier.GOOD
    if percentage >= CAUTION_THRESHOLD:
        return ScoreTier.CAUTION
    return ScoreTier.POOR


def score_items(items: Iterable[ChecklistItem]) -> ScoreResult:
    earned = 0
    max_possible = 0
    for item in items:
        if item.weight <= 0:
            continue
        earned += item.weight * item.rating
        max_possible += item.weight * MAX_RATING
    return ScoreResult(earned=earned, max_possible=max_possible)


def compute_score(steps: Iterable[ScorableStep]) -> ScoreResult:
    earned = 0
    max_possible = 0
    for step in steps:
        if step.step_number == VEHICLE_INFO_STEP:
            continue
        partial = score_items(step.checklist)
        earned += partial.earned
        max_possible += partial.max_possible
    return ScoreResult(earned=earned, max_possible=max_possible)
