"""Step navigation for an in-progress inspection.

The wizard walks steps 2..7; step 1 (vehicle info) is captured when the
inspection is created. Every move saves the step the inspector is leaving
before the resume pointer changes, so a failed save never moves the pointer.
"""

from __future__ import annotations

import logging

from app.domain.models import (
    Inspection,
    StepUpdate,
    WizardAdvanceRequest,
    WizardStepPayload,
    WizardTransitionRead,
)
from app.domain.state_machine import (
    FIRST_WIZARD_STEP,
    STEP_COUNT,
    InspectionStatus,
    StepStatus,
    WizardOutcome,
    is_final,
    next_step,
    previous_step,
    resume_step,
)
from app.infra.tenant import InspectorContext
from app.services.errors import ConflictError, ValidationError
from app.services.inspection_service import InspectionService

logger = logging.getLogger(__name__)


class WizardService:
    def __init__(self, inspections: InspectionService | None = None) -> None:
        self._inspections = inspections or InspectionService()

    def _current(self, ctx: InspectorContext, inspection_id: str) -> Inspection:
        inspection = self._inspections.get_inspection_row(ctx, inspection_id)
        if is_final(inspection.status):
            raise ConflictError(f"inspection is {inspection.status}; the wizard is closed")
        return inspection

    @staticmethod
    def _active_step(inspection: Inspection, payload: WizardStepPayload) -> int:
        step_number = payload.step_number if payload.step_number is not None else resume_step(inspection.current_step)
        if step_number < FIRST_WIZARD_STEP or step_number > STEP_COUNT:
            raise ValidationError(f"wizard steps run from {FIRST_WIZARD_STEP} to {STEP_COUNT}")
        return step_number

    def _save(
        self,
        ctx: InspectorContext,
        inspection_id: str,
        step_number: int,
        payload: WizardStepPayload,
        status: StepStatus | None,
    ) -> None:
        self._inspections.save_step(
            ctx,
            inspection_id,
            step_number,
            StepUpdate(
                checklist=payload.checklist,
                notes=payload.notes,
                rating=payload.rating or None,
                status=status,
            ),
        )

    def _transition(
        self,
        ctx: InspectorContext,
        inspection_id: str,
        outcome: WizardOutcome,
        step_number: int,
        status: InspectionStatus,
    ) -> WizardTransitionRead:
        detail = self._inspections.get_inspection(ctx, inspection_id)
        return WizardTransitionRead(
            inspection_id=inspection_id,
            outcome=outcome,
            step_number=step_number,
            status=status,
            score=detail.score,
        )

    def advance(self, ctx: InspectorContext, inspection_id: str, payload: WizardAdvanceRequest) -> WizardTransitionRead:
        """Save the active step as completed and move forward.

        On the last step this finishes the inspection instead; the overall
        rating and decision are checked before anything is written.
        """
        inspection = self._current(ctx, inspection_id)
        step_number = self._active_step(inspection, payload)
        following = next_step(step_number)

        if following is None:
            if payload.overall_rating <= 0:
                raise ValidationError("an overall rating is required to finish the inspection")
            if payload.decision is None:
                raise ValidationError("a decision is required to finish the inspection")
            self._save(ctx, inspection_id, step_number, payload, StepStatus.COMPLETED)
            self._inspections.complete_inspection(
                ctx,
                inspection_id,
                payload.overall_rating,
                payload.decision,
                payload.general_notes,
            )
            logger.info("inspection %s completed with decision %s", inspection_id, payload.decision)
            return self._transition(ctx, inspection_id, WizardOutcome.COMPLETED, step_number, InspectionStatus.COMPLETED)

        self._save(ctx, inspection_id, step_number, payload, StepStatus.COMPLETED)
        self._inspections.set_current_step(ctx, inspection_id, following)
        return self._transition(ctx, inspection_id, WizardOutcome.MOVED, following, InspectionStatus.IN_PROGRESS)

    def retreat(self, ctx: InspectorContext, inspection_id: str, payload: WizardStepPayload) -> WizardTransitionRead:
        """Save the active step without completing it and move back one step.

        From the first wizard step the outcome is ``exit`` and the pointer
        stays where it is.
        """
        inspection = self._current(ctx, inspection_id)
        step_number = self._active_step(inspection, payload)
        self._save(ctx, inspection_id, step_number, payload, None)

        preceding = previous_step(step_number)
        if preceding is None:
            return self._transition(ctx, inspection_id, WizardOutcome.EXIT, step_number, InspectionStatus.IN_PROGRESS)
        self._inspections.set_current_step(ctx, inspection_id, preceding)
        return self._transition(ctx, inspection_id, WizardOutcome.MOVED, preceding, InspectionStatus.IN_PROGRESS)

    def save(self, ctx: InspectorContext, inspection_id: str, payload: WizardStepPayload) -> WizardTransitionRead:
        inspection = self._current(ctx, inspection_id)
        step_number = self._active_step(inspection, payload)
        self._save(ctx, inspection_id, step_number, payload, StepStatus.COMPLETED)
        return self._transition(ctx, inspection_id, WizardOutcome.SAVED, step_number, InspectionStatus.IN_PROGRESS)

    def jump_to(self, ctx: InspectorContext, inspection_id: str, step_number: int | None = None) -> WizardTransitionRead:
        """Resume at the saved pointer, or move to any wizard step."""
        inspection = self._current(ctx, inspection_id)
        if step_number is None:
            target = resume_step(inspection.current_step)
        elif FIRST_WIZARD_STEP <= step_number <= STEP_COUNT:
            target = step_number
        else:
            raise ValidationError(f"wizard steps run from {FIRST_WIZARD_STEP} to {STEP_COUNT}")
        if inspection.current_step != target:
            self._inspections.set_current_step(ctx, inspection_id, target)
        return self._transition(ctx, inspection_id, WizardOutcome.MOVED, target, InspectionStatus.IN_PROGRESS)
