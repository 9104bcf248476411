from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.jury.models import Base

if TYPE_CHECKING:
    from app.jury.models import User


class Juror(Base):
    __tablename__ = "jurors"
    __table_args__ = (
        Index("idx_jurors_email", "email", unique=True),
        Index("idx_jurors_invitation_token", "invitation_token"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)

    job_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    company: Mapped[str | None] = mapped_column(String(255), nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(String(512), nullable=True)
    calendly_link: Mapped[str | None] = mapped_column(String(512), nullable=True)

    # Matchmaking preferences
    preferred_stages: Mapped[list | None] = mapped_column(JSON, nullable=True)
    target_verticals: Mapped[list | None] = mapped_column(JSON, nullable=True)
    preferred_regions: Mapped[list | None] = mapped_column(JSON, nullable=True)

    # None means "use the cohort-wide dynamic limit"
    evaluation_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    meeting_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Set once the juror completes signup
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    invitation_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invitation_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    invitation_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped["User | None"] = relationship("User", lazy="selectin")

    @property
    def is_active_juror(self) -> bool:
        return self.user_id is not None

    @property
    def invitation_pending(self) -> bool:
        return self.user_id is None and self.invitation_token is not None


class CommunityManager(Base):
    """Invited programme staff. Becomes a cm-role User on signup."""

    __tablename__ = "community_managers"
    __table_args__ = (
        Index("idx_community_managers_email", "email", unique=True),
        Index("idx_community_managers_invitation_token", "invitation_token"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    organization: Mapped[str | None] = mapped_column(String(255), nullable=True)
    job_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(String(512), nullable=True)

    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    invitation_token: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invitation_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    invitation_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped["User | None"] = relationship("User", lazy="selectin")

    @property
    def invitation_pending(self) -> bool:
        return self.user_id is None and self.invitation_token is not None
