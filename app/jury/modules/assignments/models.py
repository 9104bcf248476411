from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.jury.models import Base

if TYPE_CHECKING:
    from app.jury.modules.jurors.models import Juror
    from app.jury.modules.startups.models import Startup


class Assignment(Base):
    __tablename__ = "assignments"
    __table_args__ = (
        UniqueConstraint("juror_id", "startup_id", "round_name", name="uq_assignment_juror_startup_round"),
        Index("idx_assignments_round", "round_name"),
        Index("idx_assignments_juror", "juror_id"),
        Index("idx_assignments_startup", "startup_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    juror_id: Mapped[int] = mapped_column(ForeignKey("jurors.id", ondelete="CASCADE"), nullable=False)
    startup_id: Mapped[int] = mapped_column(ForeignKey("startups.id", ondelete="CASCADE"), nullable=False)
    round_name: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="assigned")
    source: Mapped[str] = mapped_column(String(32), nullable=False, default="manual")  # manual, auto

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    juror: Mapped["Juror"] = relationship("Juror", lazy="selectin")
    startup: Mapped["Startup"] = relationship("Startup", lazy="selectin")


class PitchRequest(Base):
    """A pitching call between a juror and a startup."""

    __tablename__ = "pitch_requests"
    __table_args__ = (Index("idx_pitch_requests_status", "status"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    juror_id: Mapped[int] = mapped_column(ForeignKey("jurors.id", ondelete="CASCADE"), nullable=False)
    startup_id: Mapped[int] = mapped_column(ForeignKey("startups.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")  # pending, scheduled, completed
    meeting_scheduled_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    juror: Mapped["Juror"] = relationship("Juror", lazy="selectin")
    startup: Mapped["Startup"] = relationship("Startup", lazy="selectin")
