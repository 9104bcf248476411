from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.jury.models import Base


class CohortSettings(Base):
    """Single-row table holding the current cohort's name and deadlines."""

    __tablename__ = "cohort_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cohort_name: Mapped[str] = mapped_column(String(255), nullable=False, default="Current Cohort")
    screening_deadline: Mapped[date | None] = mapped_column(Date, nullable=True)
    pitching_deadline: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class Round(Base):
    __tablename__ = "rounds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)  # screening, pitching
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")  # pending, active, completed
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
