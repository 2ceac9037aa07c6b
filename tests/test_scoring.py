from __future__ import annotations

from dataclasses import dataclass, field

from app.domain.models import ChecklistItem, ScoreTier
from app.services.scoring_service import ScoreResult, compute_score, score_items, score_tier


@dataclass
class _Step:
    step_number: int
    checklist: list[ChecklistItem] = field(default_factory=list)


def _item(name: str, rating: int, weight: int = 1) -> ChecklistItem:
    return ChecklistItem(item=name, checked=rating > 0, rating=rating, weight=weight)


def test_score_items_weights_ratings() -> None:
    result = score_items([_item("a", 5, 2), _item("b", 3, 1), _item("c", 0, 1)])

    assert result.earned == 13
    assert result.max_possible == 20
    assert result.percentage == 65
    assert result.tier == ScoreTier.CAUTION


def test_excluded_items_never_count() -> None:
    steps = [_Step(2, [_item("a", 4), _item("b", 0, 0)])]
    baseline = compute_score(steps)

    steps[0].checklist[1] = _item("b", 5, 0)
    changed = compute_score(steps)

    assert changed == baseline
    assert baseline.earned == 4
    assert baseline.max_possible == 5


def test_vehicle_info_step_is_ignored() -> None:
    steps = [
        _Step(1, [_item("odometer", 1, 2)]),
        _Step(2, [_item("paint", 5)]),
    ]

    result = compute_score(steps)

    assert result.earned == 5
    assert result.max_possible == 5
    assert result.percentage == 100


def test_score_is_order_independent_and_repeatable() -> None:
    steps = [
        _Step(2, [_item("a", 3), _item("b", 4, 2)]),
        _Step(5, [_item("c", 1)]),
        _Step(7, [_item("d", 5, 2), _item("e", 2, 0)]),
    ]

    first = compute_score(steps)
    second = compute_score(list(reversed(steps)))

    assert first == second
    assert first == compute_score(steps)


def test_percentage_is_none_without_weighted_items() -> None:
    result = compute_score([_Step(2, [_item("a", 5, 0)]), _Step(3)])

    assert result.max_possible == 0
    assert result.percentage is None
    assert result.tier is None


def test_zero_percent_is_a_real_score() -> None:
    result = compute_score([_Step(2, [_item("a", 0), _item("b", 0)])])

    assert result.percentage == 0
    assert result.tier == ScoreTier.POOR


def test_percentage_rounds_half_up() -> None:
    assert ScoreResult(earned=1, max_possible=8).percentage == 13
    assert ScoreResult(earned=1, max_possible=3).percentage == 33
    assert ScoreResult(earned=2, max_possible=3).percentage == 67


def test_score_tier_boundaries() -> None:
    assert score_tier(70) == ScoreTier.GOOD
    assert score_tier(69) == ScoreTier.CAUTION
    assert score_tier(40) == ScoreTier.CAUTION
    assert score_tier(39) == ScoreTier.POOR
    assert score_tier(None) is None


def test_to_read_carries_tier() -> None:
    read = ScoreResult(earned=40, max_possible=50).to_read()

    assert read.percentage == 80
    assert read.tier == ScoreTier.GOOD
