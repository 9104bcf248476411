from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.jury.models import Base


class EmailTemplate(Base):
    __tablename__ = "email_templates"
    __table_args__ = (
        Index("idx_email_templates_category", "category"),
        Index("idx_email_templates_stage", "lifecycle_stage"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    subject_template: Mapped[str] = mapped_column(String(512), nullable=False)
    body_template: Mapped[str] = mapped_column(Text, nullable=False)
    variables: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Lifecycle auto-send: fires when one of auto_trigger_events happens to a participant in lifecycle_stage.
    lifecycle_stage: Mapped[str | None] = mapped_column(String(32), nullable=True)
    auto_trigger_events: Mapped[list | None] = mapped_column(JSON, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class EmailCommunication(Base):
    __tablename__ = "email_communications"
    __table_args__ = (
        Index("idx_email_comms_hash_created", "content_hash", "created_at"),
        Index("idx_email_comms_resend_id", "resend_email_id"),
        Index("idx_email_comms_recipient", "recipient_type", "recipient_id"),
        Index("idx_email_comms_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recipient_email: Mapped[str] = mapped_column(String(320), nullable=False)
    recipient_type: Mapped[str | None] = mapped_column(String(32), nullable=True)  # startup, juror
    recipient_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    template_id: Mapped[int | None] = mapped_column(ForeignKey("email_templates.id", ondelete="SET NULL"), nullable=True)
    template_category: Mapped[str | None] = mapped_column(String(64), nullable=True)

    subject: Mapped[str] = mapped_column(String(512), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    communication_type: Mapped[str] = mapped_column(String(32), nullable=False, default="general")
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # pending, sent, delivered, delivery_delayed, bounced, complained, opened, clicked, failed
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")
    resend_email_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    clicked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    bounced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    events: Mapped[list["EmailDeliveryEvent"]] = relationship(
        "EmailDeliveryEvent",
        back_populates="communication",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="EmailDeliveryEvent.timestamp",
    )


class EmailDeliveryEvent(Base):
    __tablename__ = "email_delivery_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    communication_id: Mapped[int] = mapped_column(
        ForeignKey("email_communications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    raw_payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    communication: Mapped[EmailCommunication] = relationship("EmailCommunication", back_populates="events")
