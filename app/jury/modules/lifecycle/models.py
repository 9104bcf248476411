from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.jury.models import Base


class LifecycleParticipant(Base):
    """Communication lifecycle stage (screening/pitching/finals) per startup or juror."""

    __tablename__ = "lifecycle_participants"
    __table_args__ = (
        UniqueConstraint("participant_type", "participant_id", name="uq_lifecycle_participant"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    participant_type: Mapped[str] = mapped_column(String(32), nullable=False)  # startup, juror
    participant_id: Mapped[int] = mapped_column(Integer, nullable=False)
    lifecycle_stage: Mapped[str] = mapped_column(String(32), nullable=False, default="screening")
    stage_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class ParticipantWorkflow(Base):
    __tablename__ = "participant_workflows"
    __table_args__ = (
        UniqueConstraint("participant_type", "participant_id", name="uq_participant_workflow"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    participant_type: Mapped[str] = mapped_column(String(32), nullable=False)
    participant_id: Mapped[int] = mapped_column(Integer, nullable=False)
    current_stage: Mapped[str] = mapped_column(String(64), nullable=False, default="juror_onboarding")
    stage_status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    stage_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    next_action_due: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class WorkflowTrigger(Base):
    """Which template category to send when a participant enters a workflow stage."""

    __tablename__ = "workflow_triggers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    stage: Mapped[str] = mapped_column(String(64), nullable=False)
    participant_type: Mapped[str] = mapped_column(String(32), nullable=False)
    email_template_category: Mapped[str] = mapped_column(String(64), nullable=False)
    delay_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class CommunicationAttempt(Base):
    __tablename__ = "communication_attempts"
    __table_args__ = (Index("idx_comm_attempts_status_scheduled", "status", "scheduled_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    workflow_id: Mapped[int | None] = mapped_column(
        ForeignKey("participant_workflows.id", ondelete="CASCADE"), nullable=True
    )
    participant_type: Mapped[str] = mapped_column(String(32), nullable=False)
    participant_id: Mapped[int] = mapped_column(Integer, nullable=False)
    trigger_event: Mapped[str] = mapped_column(String(64), nullable=False)
    template_category: Mapped[str] = mapped_column(String(64), nullable=False)
    variables: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")  # pending, sent, failed
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    attempted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    communication_id: Mapped[int | None] = mapped_column(
        ForeignKey("email_communications.id", ondelete="SET NULL"), nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
