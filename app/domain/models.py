from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic import Field as PydanticField
from sqlalchemy import JSON, Column, ForeignKeyConstraint, Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from app.domain.state_machine import InspectionStatus, StepStatus, WizardOutcome


def now_utc() -> datetime:
    return datetime.now(UTC)


class EventRecord(SQLModel, table=True):
    __tablename__ = "events"

    event_id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    event_type: str = Field(index=True)
    tenant_id: str = Field(index=True)
    ts: datetime = Field(default_factory=now_utc, index=True)
    actor_id: str | None = Field(default=None, index=True)
    correlation_id: str | None = Field(default=None, index=True)
    payload: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    tenant_id: str = Field(index=True)
    actor_id: str | None = Field(default=None, index=True)
    action: str
    resource: str
    method: str
    status_code: int
    ts: datetime = Field(default_factory=now_utc, index=True)
    detail: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )


class EventEnvelope(BaseModel):
    event_id: str = PydanticField(default_factory=lambda: str(uuid4()))
    event_type: str
    tenant_id: str
    ts: datetime = PydanticField(default_factory=now_utc)
    actor_id: str | None = None
    correlation_id: str | None = None
    payload: dict[str, Any]


class CategoryDomain(StrEnum):
    AUTO = "auto"
    GARAGE = "garage"
    HOUSE = "house"


class Decision(StrEnum):
    INTERESTED = "interested"
    PASS = "pass"


class Verdict(StrEnum):
    OK = "ok"
    WARNING = "warning"
    ISSUE = "issue"


class ReportType(StrEnum):
    OBD2 = "obd2"
    CARFAX = "carfax"
    AUTOCHECK = "autocheck"


class IssueCategory(StrEnum):
    SAFETY = "safety"
    ENGINE = "engine"
    TRANSMISSION = "transmission"
    ELECTRICAL = "electrical"
    BODY = "body"
    OTHER = "other"


class IssueSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ScoreTier(StrEnum):
    GOOD = "good"
    CAUTION = "caution"
    POOR = "poor"


class Category(SQLModel, table=True):
    __tablename__ = "categories"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str = Field(max_length=100, index=True)
    subdomain: str = Field(max_length=50, index=True, unique=True)
    domain: CategoryDomain = Field(default=CategoryDomain.AUTO, index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class StepTemplate(SQLModel, table=True):
    __tablename__ = "inspection_step_templates"
    __table_args__ = (
        UniqueConstraint("domain", "step_number", name="uq_inspection_step_templates_domain_step"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    domain: CategoryDomain = Field(index=True)
    step_number: int = Field(index=True)
    step_name: str = Field(max_length=100)
    checklist_items: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    instructions: str = ""
    photo_required: bool = Field(default=False)
    max_photos: int = Field(default=0)


class ChecklistPreference(SQLModel, table=True):
    __tablename__ = "checklist_preferences"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "user_id",
            "step_number",
            "item_name",
            name="uq_checklist_preferences_user_item",
        ),
        Index("ix_checklist_preferences_tenant_user", "tenant_id", "user_id"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    tenant_id: str = Field(foreign_key="categories.id", index=True)
    user_id: str = Field(index=True)
    step_number: int
    item_name: str = Field(max_length=200)
    weight: int = Field(default=1)
    updated_at: datetime = Field(default_factory=now_utc)


class Inspection(SQLModel, table=True):
    __tablename__ = "inspections"
    __table_args__ = (
        Index("ix_inspections_tenant_user", "tenant_id", "user_id"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    tenant_id: str = Field(foreign_key="categories.id", index=True)
    user_id: str = Field(index=True)
    vehicle_year: int | None = None
    vehicle_make: str = Field(max_length=100)
    vehicle_model: str = Field(max_length=100)
    vehicle_trim: str = ""
    vehicle_mileage: int | None = None
    vehicle_vin: str = ""
    vehicle_color: str = ""
    status: InspectionStatus = Field(default=InspectionStatus.IN_PROGRESS, index=True)
    current_step: int = Field(default=1)
    overall_rating: int | None = None
    decision: Decision | None = None
    notes: str = ""
    report_url: str | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)
    updated_at: datetime = Field(default_factory=now_utc)


class InspectionStep(SQLModel, table=True):
    __tablename__ = "inspection_steps"
    __table_args__ = (
        UniqueConstraint("inspection_id", "step_number", name="uq_inspection_steps_inspection_step"),
        ForeignKeyConstraint(
            ["inspection_id"],
            ["inspections.id"],
            ondelete="CASCADE",
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    tenant_id: str = Field(index=True)
    inspection_id: str = Field(index=True)
    step_number: int
    step_name: str = Field(max_length=100)
    instructions: str = ""
    status: StepStatus = Field(default=StepStatus.PENDING)
    checklist: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    notes: str = ""
    rating: int | None = None
    photo_required: bool = Field(default=False)
    max_photos: int = Field(default=0)
    updated_at: datetime = Field(default_factory=now_utc)


class InspectionPhoto(SQLModel, table=True):
    __tablename__ = "inspection_photos"
    __table_args__ = (
        UniqueConstraint("step_id", "photo_order", name="uq_inspection_photos_step_order"),
        ForeignKeyConstraint(
            ["step_id"],
            ["inspection_steps.id"],
            ondelete="CASCADE",
        ),
        ForeignKeyConstraint(
            ["inspection_id"],
            ["inspections.id"],
            ondelete="CASCADE",
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    tenant_id: str = Field(index=True)
    inspection_id: str = Field(index=True)
    step_id: str = Field(index=True)
    object_key: str
    photo_url: str
    photo_order: int
    content_type: str = "image/jpeg"
    ai_analysis: str | None = None
    ai_verdict: Verdict | None = None
    ai_analyzed_at: datetime | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)


class CustomerReport(SQLModel, table=True):
    __tablename__ = "customer_reports"
    __table_args__ = (
        UniqueConstraint("inspection_id", "report_type", name="uq_customer_reports_inspection_type"),
        ForeignKeyConstraint(
            ["inspection_id"],
            ["inspections.id"],
            ondelete="CASCADE",
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    tenant_id: str = Field(index=True)
    inspection_id: str = Field(index=True)
    report_type: ReportType
    object_key: str
    file_url: str
    file_name: str = ""
    file_type: str = ""
    ai_analysis: str | None = None
    ai_verdict: Verdict | None = None
    ai_analyzed_at: datetime | None = None
    created_at: datetime = Field(default_factory=now_utc, index=True)


class VehicleKnownIssue(SQLModel, table=True):
    __tablename__ = "vehicle_known_issues"
    __table_args__ = (
        Index("ix_vehicle_known_issues_make_model", "make", "model"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    make: str = Field(max_length=100)
    model: str = Field(max_length=100)
    year_start: int
    year_end: int
    category: IssueCategory = Field(default=IssueCategory.OTHER)
    severity: IssueSeverity = Field(default=IssueSeverity.MEDIUM)
    title: str = Field(max_length=200)
    description: str = ""
    source: str = ""
    created_at: datetime = Field(default_factory=now_utc, index=True)


class InspectionKnownIssue(SQLModel, table=True):
    """Copy of a reference issue taken when the inspection was created."""

    __tablename__ = "inspection_known_issues"
    __table_args__ = (
        ForeignKeyConstraint(
            ["inspection_id"],
            ["inspections.id"],
            ondelete="CASCADE",
        ),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    inspection_id: str = Field(index=True)
    issue_id: str
    make: str
    model: str
    year_start: int
    year_end: int
    category: IssueCategory
    severity: IssueSeverity
    title: str
    description: str = ""
    source: str = ""
    snapshotted_at: datetime = Field(default_factory=now_utc)


class ORMReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class CategoryCreate(BaseModel):
    name: str
    subdomain: str
    domain: CategoryDomain = CategoryDomain.AUTO


class CategoryRead(ORMReadModel):
    id: str
    name: str
    subdomain: str
    domain: CategoryDomain
    created_at: datetime


class ChecklistItem(BaseModel):
    item: str
    checked: bool = False
    note: str = ""
    rating: int = PydanticField(default=0, ge=0, le=5)
    weight: int = PydanticField(default=1, ge=0, le=2)


class StepDefinition(BaseModel):
    step_number: int
    step_name: str
    instructions: str = ""
    checklist_items: list[ChecklistItem] = PydanticField(default_factory=list)
    photo_required: bool = False
    max_photos: int = 0


class StepTemplateRead(ORMReadModel):
    id: str
    domain: CategoryDomain
    step_number: int
    step_name: str
    checklist_items: list[str]
    instructions: str
    photo_required: bool
    max_photos: int


class ChecklistPreferenceItem(BaseModel):
    step_number: int = PydanticField(ge=1)
    item_name: str
    weight: int = PydanticField(ge=0, le=2)


class ChecklistPreferenceRead(ORMReadModel):
    step_number: int
    item_name: str
    weight: int
    updated_at: datetime


class ChecklistConfigItem(BaseModel):
    step_number: int
    step_name: str
    item_name: str
    weight: int


class VehicleDescriptor(BaseModel):
    vehicle_year: int | None = PydanticField(default=None, ge=1900, le=2100)
    vehicle_make: str
    vehicle_model: str
    vehicle_trim: str = ""
    vehicle_mileage: int | None = PydanticField(default=None, ge=0)
    vehicle_vin: str = ""
    vehicle_color: str = ""

    def describe(self) -> str:
        parts = [str(self.vehicle_year) if self.vehicle_year else "", self.vehicle_make, self.vehicle_model]
        if self.vehicle_trim:
            parts.append(self.vehicle_trim)
        return " ".join(part for part in parts if part).strip()


class InspectionCreate(VehicleDescriptor):
    pass


class KnownIssueCreate(BaseModel):
    make: str
    model: str
    year_start: int
    year_end: int
    category: IssueCategory = IssueCategory.OTHER
    severity: IssueSeverity = IssueSeverity.MEDIUM
    title: str
    description: str = ""
    source: str = ""


class KnownIssueRead(ORMReadModel):
    id: str
    make: str
    model: str
    year_start: int
    year_end: int
    category: IssueCategory
    severity: IssueSeverity
    title: str
    description: str
    source: str


class InspectionKnownIssueRead(ORMReadModel):
    issue_id: str
    make: str
    model: str
    year_start: int
    year_end: int
    category: IssueCategory
    severity: IssueSeverity
    title: str
    description: str
    source: str
    snapshotted_at: datetime


class StepUpdate(BaseModel):
    checklist: list[ChecklistItem] | None = None
    notes: str | None = None
    rating: int | None = PydanticField(default=None, ge=1, le=5)
    status: StepStatus | None = None


class PhotoRead(ORMReadModel):
    id: str
    inspection_id: str
    step_id: str
    photo_url: str
    photo_order: int
    content_type: str
    ai_analysis: str | None
    ai_verdict: Verdict | None
    ai_analyzed_at: datetime | None
    created_at: datetime
    analysis_pending: bool = False


class CustomerReportRead(ORMReadModel):
    id: str
    inspection_id: str
    report_type: ReportType
    file_url: str
    file_name: str
    file_type: str
    ai_analysis: str | None
    ai_verdict: Verdict | None
    ai_analyzed_at: datetime | None
    created_at: datetime
    analysis_pending: bool = False


class InspectionStepRead(ORMReadModel):
    id: str
    step_number: int
    step_name: str
    instructions: str
    status: StepStatus
    checklist: list[ChecklistItem]
    notes: str
    rating: int | None
    photo_required: bool
    max_photos: int
    photos: list[PhotoRead] = PydanticField(default_factory=list)


class ScoreRead(BaseModel):
    earned: int
    max_possible: int
    percentage: int | None
    tier: ScoreTier | None


class InspectionRead(ORMReadModel):
    id: str
    tenant_id: str
    user_id: str
    vehicle_year: int | None
    vehicle_make: str
    vehicle_model: str
    vehicle_trim: str
    vehicle_mileage: int | None
    vehicle_vin: str
    vehicle_color: str
    status: InspectionStatus
    current_step: int
    overall_rating: int | None
    decision: Decision | None
    notes: str
    report_url: str | None
    created_at: datetime
    updated_at: datetime


class InspectionSummaryRead(InspectionRead):
    score_percentage: int | None = None


class InspectionDetailRead(InspectionRead):
    steps: list[InspectionStepRead] = PydanticField(default_factory=list)
    known_issues: list[InspectionKnownIssueRead] = PydanticField(default_factory=list)
    customer_reports: list[CustomerReportRead] = PydanticField(default_factory=list)
    score: ScoreRead | None = None

    def step(self, step_number: int) -> InspectionStepRead | None:
        for item in self.steps:
            if item.step_number == step_number:
                return item
        return None


class InspectionDeleteResult(BaseModel):
    deleted: bool
    photo_file_paths: list[str] = PydanticField(default_factory=list)
    cleanup_failures: int = 0


class WizardStepPayload(BaseModel):
    step_number: int | None = None
    checklist: list[ChecklistItem] | None = None
    notes: str | None = None
    rating: int = PydanticField(default=0, ge=0, le=5)


class WizardAdvanceRequest(WizardStepPayload):
    overall_rating: int = PydanticField(default=0, ge=0, le=5)
    decision: Decision | None = None
    general_notes: str | None = None


class WizardJumpRequest(BaseModel):
    step_number: int | None = None


class WizardTransitionRead(BaseModel):
    inspection_id: str
    outcome: WizardOutcome
    step_number: int
    status: InspectionStatus
    score: ScoreRead


class AnalysisResult(BaseModel):
    analysis: str
    verdict: Verdict = Verdict.OK

    @field_validator("verdict", mode="before")
    @classmethod
    def _default_verdict(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in {item.value for item in Verdict}:
            return value.strip().lower()
        return Verdict.OK


class InspectionReportRead(BaseModel):
    inspection_id: str
    report_url: str
    object_key: str
