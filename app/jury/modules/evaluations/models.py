from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.jury.models import Base

if TYPE_CHECKING:
    from app.jury.modules.jurors.models import Juror
    from app.jury.modules.startups.models import Startup


class Evaluation(Base):
    __tablename__ = "evaluations"
    __table_args__ = (
        UniqueConstraint("juror_id", "startup_id", "round_name", name="uq_evaluation_juror_startup_round"),
        Index("idx_evaluations_round_status", "round_name", "status"),
        Index("idx_evaluations_startup", "startup_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    juror_id: Mapped[int] = mapped_column(ForeignKey("jurors.id", ondelete="CASCADE"), nullable=False)
    startup_id: Mapped[int] = mapped_column(ForeignKey("startups.id", ondelete="CASCADE"), nullable=False)
    round_name: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft")  # draft, submitted

    # criterion key -> 0/1/2
    criteria_scores: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=dict)
    overall_score: Mapped[float | None] = mapped_column(Float, nullable=True)

    strengths: Mapped[list | None] = mapped_column(JSON, nullable=True)
    improvement_areas: Mapped[str | None] = mapped_column(Text, nullable=True)
    pitch_development_aspects: Mapped[str | None] = mapped_column(Text, nullable=True)
    overall_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    guided_feedback: Mapped[list | None] = mapped_column(JSON, nullable=True)  # ids from GUIDED_FEEDBACK_OPTIONS
    recommendation: Mapped[str | None] = mapped_column(String(64), nullable=True)
    wants_pitch_session: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    investment_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    juror: Mapped["Juror"] = relationship("Juror", lazy="selectin")
    startup: Mapped["Startup"] = relationship("Startup", lazy="selectin")
