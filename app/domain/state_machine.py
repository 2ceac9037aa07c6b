from __future__ import annotations

from enum import StrEnum

VEHICLE_INFO_STEP = 1
FIRST_WIZARD_STEP = 2
STEP_COUNT = 7


class InspectionStatus(StrEnum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PASSED = "passed"


# PASSED is only ever written by external data fixes; the wizard never produces it.
ALLOWED_TRANSITIONS: dict[InspectionStatus, set[InspectionStatus]] = {
    InspectionStatus.IN_PROGRESS: {InspectionStatus.COMPLETED},
    InspectionStatus.COMPLETED: set(),
    InspectionStatus.PASSED: set(),
}

FINAL_STATUSES = frozenset({InspectionStatus.COMPLETED, InspectionStatus.PASSED})


def can_transition(source: InspectionStatus, target: InspectionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(source, set())


def is_final(status: InspectionStatus) -> bool:
    return status in FINAL_STATUSES


class StepStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class WizardOutcome(StrEnum):
    MOVED = "moved"
    SAVED = "saved"
    EXIT = "exit"
    COMPLETED = "completed"


def next_step(current: int, last_step: int = STEP_COUNT) -> int | None:
    if current >= last_step:
        return None
    return current + 1


def previous_step(current: int) -> int | None:
    if current <= FIRST_WIZARD_STEP:
        return None
    return current - 1


def resume_step(persisted: int, last_step: int = STEP_COUNT) -> int:
    return min(max(persisted, FIRST_WIZARD_STEP), last_step)
