"""Checklist item rules.

A checklist item couples two fields: ``checked`` and ``rating``. Every
mutation goes through the functions here so the pair never diverges:

* checking an unrated item rates it 5
* unchecking an item clears its rating
* any rating above 0 checks the item, a rating of 0 unchecks it

Weights are set per user through checklist preferences and never change
through these functions.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from app.domain.models import ChecklistItem, ChecklistPreferenceItem

MAX_ACTIVE_PER_STEP = 5
DEFAULT_CHECKED_RATING = 5
MAX_RATING = 5
WEIGHT_EXCLUDED = 0
WEIGHT_NORMAL = 1
WEIGHT_HIGH = 2


class ChecklistRuleError(ValueError):
    pass


class WeightLimitError(ChecklistRuleError):
    pass


def toggle_checked(item: ChecklistItem) -> ChecklistItem:
    if item.checked:
        return item.model_copy(update={"checked": False, "rating": 0})
    return item.model_copy(update={"checked": True, "rating": item.rating or DEFAULT_CHECKED_RATING})


def set_rating(item: ChecklistItem, rating: int) -> ChecklistItem:
    if rating < 0 or rating > MAX_RATING:
        raise ChecklistRuleError(f"rating must be between 0 and {MAX_RATING}")
    return item.model_copy(update={"rating": rating, "checked": rating > 0})


def reconcile(item: ChecklistItem) -> ChecklistItem:
    """Bring a client-submitted item back in line with the checked/rating rules."""
    if item.rating > 0:
        return item if item.checked else item.model_copy(update={"checked": True})
    if item.checked:
        return item.model_copy(update={"rating": DEFAULT_CHECKED_RATING})
    return item


def parse_checklist(raw: Any) -> list[ChecklistItem]:
    if not isinstance(raw, list):
        return []
    items: list[ChecklistItem] = []
    for entry in raw:
        if isinstance(entry, ChecklistItem):
            items.append(entry)
        elif isinstance(entry, Mapping):
            items.append(ChecklistItem.model_validate(entry))
    return items


def dump_checklist(items: Iterable[ChecklistItem]) -> list[dict[str, Any]]:
    return [item.model_dump() for item in items]


def merge_submitted(stored: Sequence[ChecklistItem], submitted: Sequence[ChecklistItem]) -> list[ChecklistItem]:
    """Apply submitted check/note/rating values onto the stored snapshot.

    Items are matched by text. Stored weights always win; stored items the
    client did not send keep their values.
    """
    by_text = {item.item: item for item in submitted}
    known = {item.item for item in stored}
    unknown = [text for text in by_text if text not in known]
    if unknown:
        raise ChecklistRuleError(f"unknown checklist items: {', '.join(sorted(unknown))}")

    merged: list[ChecklistItem] = []
    for item in stored:
        incoming = by_text.get(item.item)
        if incoming is None:
            merged.append(item)
            continue
        updated = item.model_copy(
            update={
                "checked": incoming.checked,
                "note": incoming.note,
                "rating": incoming.rating,
            }
        )
        merged.append(reconcile(updated))
    return merged


def default_weights(item_names: Sequence[str]) -> dict[str, int]:
    return {
        name: WEIGHT_NORMAL if index < MAX_ACTIVE_PER_STEP else WEIGHT_EXCLUDED
        for index, name in enumerate(item_names)
    }


def resolve_step_weights(item_names: Sequence[str], step_preferences: Mapping[str, int]) -> dict[str, int]:
    """Weights for one step's items.

    With no saved preference for the step the first five items are active.
    Once the step has any saved preference, unlisted items are excluded.
    """
    if not step_preferences:
        return default_weights(item_names)
    return {name: step_preferences.get(name, WEIGHT_EXCLUDED) for name in item_names}


def group_preferences(preferences: Iterable[ChecklistPreferenceItem]) -> dict[int, dict[str, int]]:
    grouped: dict[int, dict[str, int]] = defaultdict(dict)
    for pref in preferences:
        grouped[pref.step_number][pref.item_name] = pref.weight
    return dict(grouped)


def count_active(weights: Mapping[str, int]) -> int:
    return sum(1 for weight in weights.values() if weight > WEIGHT_EXCLUDED)


def ensure_active_limit(preferences: Iterable[ChecklistPreferenceItem]) -> None:
    for step_number, weights in sorted(group_preferences(preferences).items()):
        if count_active(weights) > MAX_ACTIVE_PER_STEP:
            raise WeightLimitError(
                f"step {step_number} has more than {MAX_ACTIVE_PER_STEP} active checklist items"
            )


def change_weight(weights: Mapping[str, int], item_name: str, weight: int) -> dict[str, int]:
    """Return a new weight map with one item changed.

    Promoting an inactive item is rejected when the step already has the
    maximum number of active items; the input map is never modified.
    """
    if weight not in (WEIGHT_EXCLUDED, WEIGHT_NORMAL, WEIGHT_HIGH):
        raise ChecklistRuleError("weight must be 0, 1 or 2")
    if item_name not in weights:
        raise ChecklistRuleError(f"unknown checklist item: {item_name}")
    current = weights[item_name]
    if weight > WEIGHT_EXCLUDED and current == WEIGHT_EXCLUDED and count_active(weights) >= MAX_ACTIVE_PER_STEP:
        raise WeightLimitError(
            f"at most {MAX_ACTIVE_PER_STEP} checklist items per step can be active; exclude another item first"
        )
    updated = dict(weights)
    updated[item_name] = weight
    return updated
