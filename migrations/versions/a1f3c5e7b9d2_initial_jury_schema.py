"""initial jury schema

Revision ID: a1f3c5e7b9d2
Revises:
Create Date: 2026-10-17 09:12:41.208315

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1f3c5e7b9d2"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    cols = [sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()))
    return cols


def upgrade() -> None:
    """Users/RBAC/audit, cohort, startups, jurors, assignments, evaluations, email and lifecycle tables."""
    conn = op.get_bind()
    existing_tables = set(sa.inspect(conn).get_table_names())

    # ---------- Auth / RBAC / audit ----------
    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("full_name", sa.String(255), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(updated=False),
        )
    if "roles" not in existing_tables:
        op.create_table(
            "roles",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("key", sa.String(64), nullable=False, unique=True),
            sa.Column("name", sa.String(128), nullable=False),
            *_timestamps(updated=False),
        )
    if "permissions" not in existing_tables:
        op.create_table(
            "permissions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("key", sa.String(128), nullable=False, unique=True),
            sa.Column("name", sa.String(128), nullable=False),
            *_timestamps(updated=False),
        )
    if "user_roles" not in existing_tables:
        op.create_table(
            "user_roles",
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        )
    if "role_permissions" not in existing_tables:
        op.create_table(
            "role_permissions",
            sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
            sa.Column("permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
        )
    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
        )
        op.create_index("idx_audit_events_created", "audit_events", ["created_at"])
        op.create_index("idx_audit_events_action", "audit_events", ["action"])

    # ---------- Cohort ----------
    if "cohort_settings" not in existing_tables:
        op.create_table(
            "cohort_settings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("cohort_name", sa.String(255), nullable=False, server_default="Current Cohort"),
            sa.Column("screening_deadline", sa.Date(), nullable=True),
            sa.Column("pitching_deadline", sa.Date(), nullable=True),
            *_timestamps(),
        )
    if "rounds" not in existing_tables:
        op.create_table(
            "rounds",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(32), nullable=False, unique=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("started_at", sa.DateTime(), nullable=True),
            sa.Column("completed_at", sa.DateTime(), nullable=True),
            *_timestamps(),
        )

    # ---------- Startups / jurors ----------
    if "startups" not in existing_tables:
        op.create_table(
            "startups",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("contact_email", sa.String(320), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("contact_phone", sa.String(64), nullable=True),
            sa.Column("founder_names", sa.JSON(), nullable=True),
            sa.Column("industry", sa.String(255), nullable=True),
            sa.Column("stage", sa.String(64), nullable=True),
            sa.Column("location", sa.String(255), nullable=True),
            sa.Column("country", sa.String(128), nullable=True),
            sa.Column("region", sa.String(128), nullable=True),
            sa.Column("regions", sa.JSON(), nullable=True),
            sa.Column("verticals", sa.JSON(), nullable=True),
            sa.Column("other_vertical_description", sa.String(255), nullable=True),
            sa.Column("business_model", sa.String(255), nullable=True),
            sa.Column("founded_year", sa.Integer(), nullable=True),
            sa.Column("team_size", sa.Integer(), nullable=True),
            sa.Column("funding_goal", sa.Integer(), nullable=True),
            sa.Column("funding_raised", sa.Integer(), nullable=True),
            sa.Column("investment_currency", sa.String(8), nullable=True),
            sa.Column("internal_score", sa.Integer(), nullable=True),
            sa.Column("website", sa.String(512), nullable=True),
            sa.Column("pitch_deck_url", sa.String(512), nullable=True),
            sa.Column("demo_url", sa.String(512), nullable=True),
            sa.Column("linkedin_url", sa.String(512), nullable=True),
            *_timestamps(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_startups_name", "startups", ["name"])
        op.create_index("idx_startups_status", "startups", ["status"])
        op.create_index("idx_startups_stage", "startups", ["stage"])

    if "jurors" not in existing_tables:
        op.create_table(
            "jurors",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("job_title", sa.String(255), nullable=True),
            sa.Column("company", sa.String(255), nullable=True),
            sa.Column("linkedin_url", sa.String(512), nullable=True),
            sa.Column("calendly_link", sa.String(512), nullable=True),
            sa.Column("preferred_stages", sa.JSON(), nullable=True),
            sa.Column("target_verticals", sa.JSON(), nullable=True),
            sa.Column("preferred_regions", sa.JSON(), nullable=True),
            sa.Column("evaluation_limit", sa.Integer(), nullable=True),
            sa.Column("meeting_limit", sa.Integer(), nullable=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("invitation_token", sa.String(64), nullable=True),
            sa.Column("invitation_sent_at", sa.DateTime(), nullable=True),
            sa.Column("invitation_expires_at", sa.DateTime(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_jurors_email", "jurors", ["email"], unique=True)
        op.create_index("idx_jurors_invitation_token", "jurors", ["invitation_token"])

    # ---------- Assignments / evaluations ----------
    if "assignments" not in existing_tables:
        op.create_table(
            "assignments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("juror_id", sa.Integer(), sa.ForeignKey("jurors.id", ondelete="CASCADE"), nullable=False),
            sa.Column("startup_id", sa.Integer(), sa.ForeignKey("startups.id", ondelete="CASCADE"), nullable=False),
            sa.Column("round_name", sa.String(32), nullable=False),
            sa.Column("status", sa.String(32), nullable=False, server_default="assigned"),
            sa.Column("source", sa.String(32), nullable=False, server_default="manual"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.UniqueConstraint("juror_id", "startup_id", "round_name", name="uq_assignment_juror_startup_round"),
        )
        op.create_index("idx_assignments_round", "assignments", ["round_name"])
        op.create_index("idx_assignments_juror", "assignments", ["juror_id"])
        op.create_index("idx_assignments_startup", "assignments", ["startup_id"])

    if "pitch_requests" not in existing_tables:
        op.create_table(
            "pitch_requests",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("juror_id", sa.Integer(), sa.ForeignKey("jurors.id", ondelete="CASCADE"), nullable=False),
            sa.Column("startup_id", sa.Integer(), sa.ForeignKey("startups.id", ondelete="CASCADE"), nullable=False),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("meeting_scheduled_date", sa.DateTime(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_pitch_requests_status", "pitch_requests", ["status"])

    if "evaluations" not in existing_tables:
        op.create_table(
            "evaluations",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("juror_id", sa.Integer(), sa.ForeignKey("jurors.id", ondelete="CASCADE"), nullable=False),
            sa.Column("startup_id", sa.Integer(), sa.ForeignKey("startups.id", ondelete="CASCADE"), nullable=False),
            sa.Column("round_name", sa.String(32), nullable=False),
            sa.Column("status", sa.String(32), nullable=False, server_default="draft"),
            sa.Column("criteria_scores", sa.JSON(), nullable=True),
            sa.Column("overall_score", sa.Float(), nullable=True),
            sa.Column("strengths", sa.JSON(), nullable=True),
            sa.Column("improvement_areas", sa.Text(), nullable=True),
            sa.Column("pitch_development_aspects", sa.Text(), nullable=True),
            sa.Column("overall_notes", sa.Text(), nullable=True),
            sa.Column("guided_feedback", sa.JSON(), nullable=True),
            sa.Column("recommendation", sa.String(64), nullable=True),
            sa.Column("wants_pitch_session", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("investment_amount", sa.Integer(), nullable=True),
            sa.Column("submitted_at", sa.DateTime(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("juror_id", "startup_id", "round_name", name="uq_evaluation_juror_startup_round"),
        )
        op.create_index("idx_evaluations_round_status", "evaluations", ["round_name", "status"])
        op.create_index("idx_evaluations_startup", "evaluations", ["startup_id"])

    # ---------- Email ----------
    if "email_templates" not in existing_tables:
        op.create_table(
            "email_templates",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("category", sa.String(64), nullable=False),
            sa.Column("subject_template", sa.String(512), nullable=False),
            sa.Column("body_template", sa.Text(), nullable=False),
            sa.Column("variables", sa.JSON(), nullable=True),
            sa.Column("lifecycle_stage", sa.String(32), nullable=True),
            sa.Column("auto_trigger_events", sa.JSON(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("display_order", sa.Integer(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_email_templates_category", "email_templates", ["category"])
        op.create_index("idx_email_templates_stage", "email_templates", ["lifecycle_stage"])

    if "email_communications" not in existing_tables:
        op.create_table(
            "email_communications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("recipient_email", sa.String(320), nullable=False),
            sa.Column("recipient_type", sa.String(32), nullable=True),
            sa.Column("recipient_id", sa.Integer(), nullable=True),
            sa.Column("template_id", sa.Integer(), sa.ForeignKey("email_templates.id", ondelete="SET NULL"), nullable=True),
            sa.Column("template_category", sa.String(64), nullable=True),
            sa.Column("subject", sa.String(512), nullable=False),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("communication_type", sa.String(32), nullable=False, server_default="general"),
            sa.Column("content_hash", sa.String(64), nullable=False),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("resend_email_id", sa.String(128), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("sent_at", sa.DateTime(), nullable=True),
            sa.Column("delivered_at", sa.DateTime(), nullable=True),
            sa.Column("opened_at", sa.DateTime(), nullable=True),
            sa.Column("clicked_at", sa.DateTime(), nullable=True),
            sa.Column("bounced_at", sa.DateTime(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_email_comms_hash_created", "email_communications", ["content_hash", "created_at"])
        op.create_index("idx_email_comms_resend_id", "email_communications", ["resend_email_id"])
        op.create_index("idx_email_comms_recipient", "email_communications", ["recipient_type", "recipient_id"])
        op.create_index("idx_email_comms_status", "email_communications", ["status"])

    if "email_delivery_events" not in existing_tables:
        op.create_table(
            "email_delivery_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "communication_id",
                sa.Integer(),
                sa.ForeignKey("email_communications.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("event_type", sa.String(32), nullable=False),
            sa.Column("raw_payload", sa.JSON(), nullable=True),
            sa.Column("timestamp", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index(
            "ix_email_delivery_events_communication_id", "email_delivery_events", ["communication_id"]
        )

    # ---------- Lifecycle / workflows ----------
    if "lifecycle_participants" not in existing_tables:
        op.create_table(
            "lifecycle_participants",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("participant_type", sa.String(32), nullable=False),
            sa.Column("participant_id", sa.Integer(), nullable=False),
            sa.Column("lifecycle_stage", sa.String(32), nullable=False, server_default="screening"),
            sa.Column("stage_metadata", sa.JSON(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("participant_type", "participant_id", name="uq_lifecycle_participant"),
        )

    if "participant_workflows" not in existing_tables:
        op.create_table(
            "participant_workflows",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("participant_type", sa.String(32), nullable=False),
            sa.Column("participant_id", sa.Integer(), nullable=False),
            sa.Column("current_stage", sa.String(64), nullable=False, server_default="juror_onboarding"),
            sa.Column("stage_status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("stage_data", sa.JSON(), nullable=True),
            sa.Column("next_action_due", sa.DateTime(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("participant_type", "participant_id", name="uq_participant_workflow"),
        )

    if "workflow_triggers" not in existing_tables:
        op.create_table(
            "workflow_triggers",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("stage", sa.String(64), nullable=False),
            sa.Column("participant_type", sa.String(32), nullable=False),
            sa.Column("email_template_category", sa.String(64), nullable=False),
            sa.Column("delay_hours", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "communication_attempts" not in existing_tables:
        op.create_table(
            "communication_attempts",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "workflow_id",
                sa.Integer(),
                sa.ForeignKey("participant_workflows.id", ondelete="CASCADE"),
                nullable=True,
            ),
            sa.Column("participant_type", sa.String(32), nullable=False),
            sa.Column("participant_id", sa.Integer(), nullable=False),
            sa.Column("trigger_event", sa.String(64), nullable=False),
            sa.Column("template_category", sa.String(64), nullable=False),
            sa.Column("variables", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("scheduled_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("attempted_at", sa.DateTime(), nullable=True),
            sa.Column(
                "communication_id",
                sa.Integer(),
                sa.ForeignKey("email_communications.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index(
            "idx_comm_attempts_status_scheduled", "communication_attempts", ["status", "scheduled_at"]
        )


def downgrade() -> None:
    for table in (
        "communication_attempts",
        "workflow_triggers",
        "participant_workflows",
        "lifecycle_participants",
        "email_delivery_events",
        "email_communications",
        "email_templates",
        "evaluations",
        "pitch_requests",
        "assignments",
        "jurors",
        "startups",
        "rounds",
        "cohort_settings",
        "audit_events",
        "role_permissions",
        "user_roles",
        "permissions",
        "roles",
        "users",
    ):
        op.drop_table(table)
