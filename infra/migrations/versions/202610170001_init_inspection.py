"""init inspection tables

Revision ID: 202610170001
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "202610170001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "events",
        sa.Column("event_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("correlation_id", sa.String(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("event_id"),
    )
    op.create_index("ix_events_event_type", "events", ["event_type"])
    op.create_index("ix_events_tenant_id", "events", ["tenant_id"])
    op.create_index("ix_events_ts", "events", ["ts"])
    op.create_index("ix_events_actor_id", "events", ["actor_id"])
    op.create_index("ix_events_correlation_id", "events", ["correlation_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("actor_id", sa.String(), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("resource", sa.String(), nullable=False),
        sa.Column("method", sa.String(), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("detail", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_ts", "audit_logs", ["ts"])

    op.create_table(
        "categories",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("subdomain", sa.String(length=50), nullable=False),
        sa.Column("domain", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_categories_name", "categories", ["name"])
    op.create_index("ix_categories_subdomain", "categories", ["subdomain"], unique=True)
    op.create_index("ix_categories_domain", "categories", ["domain"])
    op.create_index("ix_categories_created_at", "categories", ["created_at"])

    op.create_table(
        "inspection_step_templates",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("domain", sa.String(), nullable=False),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("step_name", sa.String(length=100), nullable=False),
        sa.Column("checklist_items", sa.JSON(), nullable=False),
        sa.Column("instructions", sa.String(), nullable=False),
        sa.Column("photo_required", sa.Boolean(), nullable=False),
        sa.Column("max_photos", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("domain", "step_number", name="uq_inspection_step_templates_domain_step"),
    )
    op.create_index("ix_inspection_step_templates_domain", "inspection_step_templates", ["domain"])
    op.create_index("ix_inspection_step_templates_step_number", "inspection_step_templates", ["step_number"])

    op.create_table(
        "checklist_preferences",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("item_name", sa.String(length=200), nullable=False),
        sa.Column("weight", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "tenant_id",
            "user_id",
            "step_number",
            "item_name",
            name="uq_checklist_preferences_user_item",
        ),
    )
    op.create_index("ix_checklist_preferences_tenant_id", "checklist_preferences", ["tenant_id"])
    op.create_index("ix_checklist_preferences_user_id", "checklist_preferences", ["user_id"])
    op.create_index("ix_checklist_preferences_tenant_user", "checklist_preferences", ["tenant_id", "user_id"])

    op.create_table(
        "inspections",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("vehicle_year", sa.Integer(), nullable=True),
        sa.Column("vehicle_make", sa.String(length=100), nullable=False),
        sa.Column("vehicle_model", sa.String(length=100), nullable=False),
        sa.Column("vehicle_trim", sa.String(), nullable=False),
        sa.Column("vehicle_mileage", sa.Integer(), nullable=True),
        sa.Column("vehicle_vin", sa.String(), nullable=False),
        sa.Column("vehicle_color", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("current_step", sa.Integer(), nullable=False),
        sa.Column("overall_rating", sa.Integer(), nullable=True),
        sa.Column("decision", sa.String(), nullable=True),
        sa.Column("notes", sa.String(), nullable=False),
        sa.Column("report_url", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_inspections_tenant_id", "inspections", ["tenant_id"])
    op.create_index("ix_inspections_user_id", "inspections", ["user_id"])
    op.create_index("ix_inspections_status", "inspections", ["status"])
    op.create_index("ix_inspections_created_at", "inspections", ["created_at"])
    op.create_index("ix_inspections_tenant_user", "inspections", ["tenant_id", "user_id"])

    op.create_table(
        "inspection_steps",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("inspection_id", sa.String(), nullable=False),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("step_name", sa.String(length=100), nullable=False),
        sa.Column("instructions", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("checklist", sa.JSON(), nullable=False),
        sa.Column("notes", sa.String(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("photo_required", sa.Boolean(), nullable=False),
        sa.Column("max_photos", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["inspection_id"], ["inspections.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("inspection_id", "step_number", name="uq_inspection_steps_inspection_step"),
    )
    op.create_index("ix_inspection_steps_tenant_id", "inspection_steps", ["tenant_id"])
    op.create_index("ix_inspection_steps_inspection_id", "inspection_steps", ["inspection_id"])

    op.create_table(
        "inspection_photos",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("inspection_id", sa.String(), nullable=False),
        sa.Column("step_id", sa.String(), nullable=False),
        sa.Column("object_key", sa.String(), nullable=False),
        sa.Column("photo_url", sa.String(), nullable=False),
        sa.Column("photo_order", sa.Integer(), nullable=False),
        sa.Column("content_type", sa.String(), nullable=False),
        sa.Column("ai_analysis", sa.String(), nullable=True),
        sa.Column("ai_verdict", sa.String(), nullable=True),
        sa.Column("ai_analyzed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["step_id"], ["inspection_steps.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["inspection_id"], ["inspections.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("step_id", "photo_order", name="uq_inspection_photos_step_order"),
    )
    op.create_index("ix_inspection_photos_tenant_id", "inspection_photos", ["tenant_id"])
    op.create_index("ix_inspection_photos_inspection_id", "inspection_photos", ["inspection_id"])
    op.create_index("ix_inspection_photos_step_id", "inspection_photos", ["step_id"])
    op.create_index("ix_inspection_photos_created_at", "inspection_photos", ["created_at"])

    op.create_table(
        "customer_reports",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("inspection_id", sa.String(), nullable=False),
        sa.Column("report_type", sa.String(), nullable=False),
        sa.Column("object_key", sa.String(), nullable=False),
        sa.Column("file_url", sa.String(), nullable=False),
        sa.Column("file_name", sa.String(), nullable=False),
        sa.Column("file_type", sa.String(), nullable=False),
        sa.Column("ai_analysis", sa.String(), nullable=True),
        sa.Column("ai_verdict", sa.String(), nullable=True),
        sa.Column("ai_analyzed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["inspection_id"], ["inspections.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("inspection_id", "report_type", name="uq_customer_reports_inspection_type"),
    )
    op.create_index("ix_customer_reports_tenant_id", "customer_reports", ["tenant_id"])
    op.create_index("ix_customer_reports_inspection_id", "customer_reports", ["inspection_id"])
    op.create_index("ix_customer_reports_created_at", "customer_reports", ["created_at"])

    op.create_table(
        "vehicle_known_issues",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("make", sa.String(length=100), nullable=False),
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column("year_start", sa.Integer(), nullable=False),
        sa.Column("year_end", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vehicle_known_issues_make_model", "vehicle_known_issues", ["make", "model"])
    op.create_index("ix_vehicle_known_issues_created_at", "vehicle_known_issues", ["created_at"])

    op.create_table(
        "inspection_known_issues",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("inspection_id", sa.String(), nullable=False),
        sa.Column("issue_id", sa.String(), nullable=False),
        sa.Column("make", sa.String(), nullable=False),
        sa.Column("model", sa.String(), nullable=False),
        sa.Column("year_start", sa.Integer(), nullable=False),
        sa.Column("year_end", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("snapshotted_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["inspection_id"], ["inspections.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_inspection_known_issues_inspection_id", "inspection_known_issues", ["inspection_id"])


def downgrade() -> None:
    op.drop_index("ix_inspection_known_issues_inspection_id", table_name="inspection_known_issues")
    op.drop_table("inspection_known_issues")

    op.drop_index("ix_vehicle_known_issues_created_at", table_name="vehicle_known_issues")
    op.drop_index("ix_vehicle_known_issues_make_model", table_name="vehicle_known_issues")
    op.drop_table("vehicle_known_issues")

    op.drop_index("ix_customer_reports_created_at", table_name="customer_reports")
    op.drop_index("ix_customer_reports_inspection_id", table_name="customer_reports")
    op.drop_index("ix_customer_reports_tenant_id", table_name="customer_reports")
    op.drop_table("customer_reports")

    op.drop_index("ix_inspection_photos_created_at", table_name="inspection_photos")
    op.drop_index("ix_inspection_photos_step_id", table_name="inspection_photos")
    op.drop_index("ix_inspection_photos_inspection_id", table_name="inspection_photos")
    op.drop_index("ix_inspection_photos_tenant_id", table_name="inspection_photos")
    op.drop_table("inspection_photos")

    op.drop_index("ix_inspection_steps_inspection_id", table_name="inspection_steps")
    op.drop_index("ix_inspection_steps_tenant_id", table_name="inspection_steps")
    op.drop_table("inspection_steps")

    op.drop_index("ix_inspections_tenant_user", table_name="inspections")
    op.drop_index("ix_inspections_created_at", table_name="inspections")
    op.drop_index("ix_inspections_status", table_name="inspections")
    op.drop_index("ix_inspections_user_id", table_name="inspections")
    op.drop_index("ix_inspections_tenant_id", table_name="inspections")
    op.drop_table("inspections")

    op.drop_index("ix_checklist_preferences_tenant_user", table_name="checklist_preferences")
    op.drop_index("ix_checklist_preferences_user_id", table_name="checklist_preferences")
    op.drop_index("ix_checklist_preferences_tenant_id", table_name="checklist_preferences")
    op.drop_table("checklist_preferences")

    op.drop_index("ix_inspection_step_templates_step_number", table_name="inspection_step_templates")
    op.drop_index("ix_inspection_step_templates_domain", table_name="inspection_step_templates")
    op.drop_table("inspection_step_templates")

    op.drop_index("ix_categories_created_at", table_name="categories")
    op.drop_index("ix_categories_domain", table_name="categories")
    op.drop_index("ix_categories_subdomain", table_name="categories")
    op.drop_index("ix_categories_name", table_name="categories")
    op.drop_table("categories")

    op.drop_index("ix_audit_logs_ts", table_name="audit_logs")
    op.drop_index("ix_audit_logs_actor_id", table_name="audit_logs")
    op.drop_index("ix_audit_logs_tenant_id", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_events_correlation_id", table_name="events")
    op.drop_index("ix_events_actor_id", table_name="events")
    op.drop_index("ix_events_ts", table_name="events")
    op.drop_index("ix_events_tenant_id", table_name="events")
    op.drop_index("ix_events_event_type", table_name="events")
    op.drop_table("events")
