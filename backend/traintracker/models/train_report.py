"""TrainReport entity: one user's crossing/clear observation."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from traintracker.models.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TrainReport(Base):
    __tablename__ = "train_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    is_train_crossing: Mapped[bool] = mapped_column(Boolean, nullable=False)
    reported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )
    # Only set for crossing reports; clear reports never expire
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    user_ip_address: Mapped[str] = mapped_column(String(45), nullable=False, default="Unknown")
    user_agent: Mapped[str] = mapped_column(String(255), nullable=False, default="Unknown")
    session_id: Mapped[str] = mapped_column(String(64), nullable=False)

    def to_report(self):
        """Detach into the immutable value the consensus engine consumes."""
        from traintracker.modules.consensus import Report
        return Report(
            id=self.id,
            is_crossing=self.is_train_crossing,
            reported_at=self.reported_at,
            expires_at=self.expires_at,
        )
