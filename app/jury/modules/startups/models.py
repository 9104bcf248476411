from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.jury.models import Base


class Startup(Base):
    __tablename__ = "startups"
    __table_args__ = (
        Index("idx_startups_name", "name"),
        Index("idx_startups_status", "status"),
        Index("idx_startups_stage", "stage"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Required
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending")

    contact_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    founder_names: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # Profile used for matchmaking
    industry: Mapped[str | None] = mapped_column(String(255), nullable=True)
    stage: Mapped[str | None] = mapped_column(String(64), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    region: Mapped[str | None] = mapped_column(String(128), nullable=True)
    regions: Mapped[list | None] = mapped_column(JSON, nullable=True)
    verticals: Mapped[list | None] = mapped_column(JSON, nullable=True)
    other_vertical_description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    business_model: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Company facts
    founded_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    team_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    funding_goal: Mapped[int | None] = mapped_column(Integer, nullable=True)
    funding_raised: Mapped[int | None] = mapped_column(Integer, nullable=True)
    investment_currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    internal_score: Mapped[int | None] = mapped_column(Integer, nullable=True)  # out of 100

    # Links
    website: Mapped[str | None] = mapped_column(String(512), nullable=True)
    pitch_deck_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    demo_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @property
    def all_regions(self) -> list[str]:
        out = [r for r in (self.regions or []) if r]
        if self.region and self.region not in out:
            out.insert(0, self.region)
        return out
