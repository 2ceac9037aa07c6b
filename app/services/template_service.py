from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlmodel import Session, select

from app.domain.checklist import (
    ChecklistRuleError,
    change_weight,
    ensure_active_limit,
    group_preferences,
    resolve_step_weights,
)
from app.domain.models import (
    Category,
    CategoryCreate,
    CategoryDomain,
    ChecklistConfigItem,
    ChecklistItem,
    ChecklistPreference,
    ChecklistPreferenceItem,
    StepDefinition,
    StepTemplate,
    now_utc,
)
from app.domain.state_machine import VEHICLE_INFO_STEP
from app.domain.templates import BUILTIN_STEP_TEMPLATES
from app.infra.db import get_engine
from app.infra.events import event_bus
from app.infra.tenant import InspectorContext
from app.services.errors import NotFoundError, ValidationError, commit_or_raise

logger = logging.getLogger(__name__)


def resolve_template(
    templates: Iterable[StepTemplate],
    preferences: Iterable[ChecklistPreferenceItem],
) -> list[StepDefinition]:
    """Turn stored step templates plus one user's weights into step definitions.

    Steps come back ordered by step number. The vehicle info step never
    carries checklist items.
    """
    grouped = group_preferences(preferences)
    resolved: list[StepDefinition] = []
    for template in sorted(templates, key=lambda item: item.step_number):
        item_names = [] if template.step_number == VEHICLE_INFO_STEP else list(template.checklist_items)
        weights = resolve_step_weights(item_names, grouped.get(template.step_number, {}))
        resolved.append(
            StepDefinition(
                step_number=template.step_number,
                step_name=template.step_name,
                instructions=template.instructions,
                checklist_items=[ChecklistItem(item=name, weight=weights[name]) for name in item_names],
                photo_required=template.photo_required,
                max_photos=template.max_photos,
            )
        )
    return resolved


class TemplateService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def create_category(self, payload: CategoryCreate) -> Category:
        subdomain = payload.subdomain.strip().lower()
        if not subdomain or not payload.name.strip():
            raise ValidationError("category name and subdomain are required")
        with self._session() as session:
            row = Category(name=payload.name.strip(), subdomain=subdomain, domain=payload.domain)
            session.add(row)
            commit_or_raise(session, conflict_message="subdomain already in use")
            session.refresh(row)
        event_bus.publish_dict("category.created", row.id, {"category_id": row.id, "domain": row.domain})
        return row

    def list_categories(self) -> list[Category]:
        with self._session() as session:
            return list(session.exec(select(Category).order_by(Category.name)).all())

    def get_category(self, tenant_id: str) -> Category:
        with self._session() as session:
            row = session.get(Category, tenant_id)
            if row is None:
                raise NotFoundError("category not found")
            return row

    def _load_templates(self, session: Session, domain: CategoryDomain) -> list[StepTemplate]:
        rows = list(
            session.exec(
                select(StepTemplate).where(StepTemplate.domain == domain).order_by(StepTemplate.step_number)
            ).all()
        )
        if rows:
            return rows
        for seed in BUILTIN_STEP_TEMPLATES[domain]:
            session.add(
                StepTemplate(
                    domain=domain,
                    step_number=seed.step_number,
                    step_name=seed.step_name,
                    checklist_items=list(seed.checklist_items),
                    instructions=seed.instructions,
                    photo_required=seed.photo_required,
                    max_photos=seed.max_photos,
                )
            )
        commit_or_raise(session)
        logger.info("seeded built-in step templates for %s", domain)
        return list(
            session.exec(
                select(StepTemplate).where(StepTemplate.domain == domain).order_by(StepTemplate.step_number)
            ).all()
        )

    def get_step_templates(self, tenant_id: str) -> list[StepTemplate]:
        with self._session() as session:
            category = session.get(Category, tenant_id)
            if category is None:
                raise NotFoundError("category not found")
            return self._load_templates(session, category.domain)

    def _load_preferences(self, session: Session, ctx: InspectorContext) -> list[ChecklistPreference]:
        return list(
            session.exec(
                select(ChecklistPreference)
                .where(ChecklistPreference.tenant_id == ctx.tenant_id)
                .where(ChecklistPreference.user_id == ctx.user_id)
                .order_by(ChecklistPreference.step_number, ChecklistPreference.item_name)
            ).all()
        )

    def load_preferences(self, ctx: InspectorContext) -> list[ChecklistPreference]:
        with self._session() as session:
            return self._load_preferences(session, ctx)

    def resolve_for(self, ctx: InspectorContext) -> list[StepDefinition]:
        templates = self.get_step_templates(ctx.tenant_id)
        preferences = [_to_item(row) for row in self.load_preferences(ctx)]
        return resolve_template(templates, preferences)

    def checklist_config(self, ctx: InspectorContext) -> list[ChecklistConfigItem]:
        return [
            ChecklistConfigItem(
                step_number=step.step_number,
                step_name=step.step_name,
                item_name=item.item,
                weight=item.weight,
            )
            for step in self.resolve_for(ctx)
            for item in step.checklist_items
        ]

    def _validate_items(self, templates: list[StepTemplate], prefs: Iterable[ChecklistPreferenceItem]) -> None:
        known = {
            (template.step_number, name)
            for template in templates
            if template.step_number != VEHICLE_INFO_STEP
            for name in template.checklist_items
        }
        for pref in prefs:
            if (pref.step_number, pref.item_name) not in known:
                raise ValidationError(f"unknown checklist item for step {pref.step_number}: {pref.item_name}")

    def save_preferences(
        self,
        ctx: InspectorContext,
        prefs: list[ChecklistPreferenceItem],
    ) -> list[ChecklistPreference]:
        """Replace every saved weight for the user in one transaction."""
        templates = self.get_step_templates(ctx.tenant_id)
        self._validate_items(templates, prefs)
        try:
            ensure_active_limit(prefs)
        except ChecklistRuleError as exc:
            raise ValidationError(str(exc)) from exc

        deduplicated = {(pref.step_number, pref.item_name): pref for pref in prefs}
        with self._session() as session:
            for row in self._load_preferences(session, ctx):
                session.delete(row)
            session.flush()
            for pref in deduplicated.values():
                session.add(
                    ChecklistPreference(
                        tenant_id=ctx.tenant_id,
                        user_id=ctx.user_id,
                        step_number=pref.step_number,
                        item_name=pref.item_name,
                        weight=pref.weight,
                    )
                )
            commit_or_raise(session)
            rows = self._load_preferences(session, ctx)
        event_bus.publish_dict(
            "checklist.preferences.saved",
            ctx.tenant_id,
            {"user_id": ctx.user_id, "count": len(rows)},
            actor_id=ctx.user_id,
        )
        return rows

    def update_preference(self, ctx: InspectorContext, change: ChecklistPreferenceItem) -> list[ChecklistConfigItem]:
        """Change one item's weight, materializing the step's current weights.

        Promoting an item on a step that already has the maximum number of
        active items is rejected and nothing is written.
        """
        steps = {step.step_number: step for step in self.resolve_for(ctx)}
        step = steps.get(change.step_number)
        if step is None or change.step_number == VEHICLE_INFO_STEP:
            raise ValidationError(f"step {change.step_number} has no configurable checklist")
        current = {item.item: item.weight for item in step.checklist_items}
        try:
            updated = change_weight(current, change.item_name, change.weight)
        except ChecklistRuleError as exc:
            raise ValidationError(str(exc)) from exc

        with self._session() as session:
            existing = {
                row.item_name: row
                for row in self._load_preferences(session, ctx)
                if row.step_number == change.step_number
            }
            for item_name, weight in updated.items():
                row = existing.get(item_name)
                if row is None:
                    session.add(
                        ChecklistPreference(
                            tenant_id=ctx.tenant_id,
                            user_id=ctx.user_id,
                            step_number=change.step_number,
                            item_name=item_name,
                            weight=weight,
                        )
                    )
                elif row.weight != weight:
                    row.weight = weight
                    row.updated_at = now_utc()
                    session.add(row)
            commit_or_raise(session)

        event_bus.publish_dict(
            "checklist.preferences.saved",
            ctx.tenant_id,
            {"user_id": ctx.user_id, "step_number": change.step_number, "item_name": change.item_name},
            actor_id=ctx.user_id,
        )
        return [
            ChecklistConfigItem(
                step_number=step.step_number,
                step_name=step.step_name,
                item_name=item_name,
                weight=weight,
            )
            for item_name, weight in updated.items()
        ]


def _to_item(row: ChecklistPreference) -> ChecklistPreferenceItem:
    return ChecklistPreferenceItem(step_number=row.step_number, item_name=row.item_name, weight=row.weight)
