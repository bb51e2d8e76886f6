from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String

from session_engine.models.base import Base


class Institution(Base):
    __tablename__ = "institutions"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


__all__ = ["Institution"]
