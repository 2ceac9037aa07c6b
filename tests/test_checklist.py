from __future__ import annotations

import pytest

from app.domain.checklist import (
    ChecklistRuleError,
    WeightLimitError,
    change_weight,
    ensure_active_limit,
    merge_submitted,
    reconcile,
    resolve_step_weights,
    set_rating,
    toggle_checked,
)
from app.domain.models import CategoryDomain, ChecklistItem, ChecklistPreferenceItem, StepTemplate
from app.domain.templates import AUTO_STEPS
from app.services.template_service import resolve_template

EXTERIOR = list(AUTO_STEPS[1].checklist_items)


def test_checking_unrated_item_rates_it_five() -> None:
    item = toggle_checked(ChecklistItem(item="Panel gaps even"))

    assert item.checked is True
    assert item.rating == 5


def test_checking_keeps_existing_rating_and_unchecking_clears_it() -> None:
    item = ChecklistItem(item="Panel gaps even", rating=3)

    checked = toggle_checked(item)
    unchecked = toggle_checked(checked)

    assert checked.rating == 3
    assert unchecked.checked is False
    assert unchecked.rating == 0


def test_rating_drives_checked_state() -> None:
    item = ChecklistItem(item="Horn")

    assert set_rating(item, 2).checked is True
    assert set_rating(set_rating(item, 2), 0).checked is False
    with pytest.raises(ChecklistRuleError):
        set_rating(item, 6)


def test_reconcile_repairs_inconsistent_items() -> None:
    assert reconcile(ChecklistItem(item="a", checked=False, rating=4)).checked is True
    assert reconcile(ChecklistItem(item="b", checked=True, rating=0)).rating == 5
    assert reconcile(ChecklistItem(item="c")) == ChecklistItem(item="c")


def test_merge_keeps_stored_weights_and_unsent_items() -> None:
    stored = [
        ChecklistItem(item="a", weight=2),
        ChecklistItem(item="b", weight=0, rating=1, checked=True),
    ]
    submitted = [ChecklistItem(item="a", rating=4, weight=1, note="scuffed")]

    merged = merge_submitted(stored, submitted)

    assert merged[0] == ChecklistItem(item="a", checked=True, rating=4, weight=2, note="scuffed")
    assert merged[1] == stored[1]


def test_merge_rejects_unknown_items() -> None:
    with pytest.raises(ChecklistRuleError):
        merge_submitted([ChecklistItem(item="a")], [ChecklistItem(item="z")])


def test_default_weights_activate_first_five_items() -> None:
    weights = resolve_step_weights(EXTERIOR, {})

    assert len(EXTERIOR) == 8
    assert [weights[name] for name in EXTERIOR] == [1, 1, 1, 1, 1, 0, 0, 0]


def test_saved_preferences_exclude_unlisted_items() -> None:
    weights = resolve_step_weights(EXTERIOR, {EXTERIOR[6]: 2})

    assert weights[EXTERIOR[6]] == 2
    assert sum(1 for value in weights.values() if value > 0) == 1


def test_promotion_rejected_when_five_items_active() -> None:
    weights = resolve_step_weights(EXTERIOR, {})
    before = dict(weights)

    for new_weight in (1, 2):
        with pytest.raises(WeightLimitError):
            change_weight(weights, EXTERIOR[5], new_weight)

    assert weights == before


def test_demotion_then_promotion_succeeds() -> None:
    weights = change_weight(resolve_step_weights(EXTERIOR, {}), EXTERIOR[0], 0)
    weights = change_weight(weights, EXTERIOR[7], 2)

    assert weights[EXTERIOR[0]] == 0
    assert weights[EXTERIOR[7]] == 2
    assert sum(1 for value in weights.values() if value > 0) == 5


def test_change_weight_validates_input() -> None:
    weights = resolve_step_weights(EXTERIOR, {})

    with pytest.raises(ChecklistRuleError):
        change_weight(weights, EXTERIOR[0], 3)
    with pytest.raises(ChecklistRuleError):
        change_weight(weights, "Sunroof", 1)


def test_active_limit_counts_per_step() -> None:
    ok = [ChecklistPreferenceItem(step_number=2, item_name=name, weight=1) for name in EXTERIOR[:5]]
    ok.append(ChecklistPreferenceItem(step_number=3, item_name="Horn", weight=2))
    ensure_active_limit(ok)

    too_many = [ChecklistPreferenceItem(step_number=2, item_name=name, weight=1) for name in EXTERIOR[:6]]
    with pytest.raises(WeightLimitError):
        ensure_active_limit(too_many)


def test_resolve_template_orders_steps_and_applies_preferences() -> None:
    templates = [
        StepTemplate(
            domain=CategoryDomain.AUTO,
            step_number=seed.step_number,
            step_name=seed.step_name,
            checklist_items=list(seed.checklist_items),
            photo_required=seed.photo_required,
            max_photos=seed.max_photos,
        )
        for seed in reversed(AUTO_STEPS)
    ]
    prefs = [ChecklistPreferenceItem(step_number=2, item_name=EXTERIOR[7], weight=2)]

    steps = resolve_template(templates, prefs)

    assert [step.step_number for step in steps] == [1, 2, 3, 4, 5, 6, 7]
    assert steps[0].checklist_items == []
    exterior = {item.item: item.weight for item in steps[1].checklist_items}
    assert exterior[EXTERIOR[7]] == 2
    assert exterior[EXTERIOR[0]] == 0
    interior = steps[2].checklist_items
    assert [item.weight for item in interior[:5]] == [1, 1, 1, 1, 1]
    assert steps[6].max_photos == 0
