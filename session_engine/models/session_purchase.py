from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Integer, Numeric, String

from session_engine.models.base import Base


class SessionPurchase(Base):
    __tablename__ = "session_purchases"
    __table_args__ = (
        CheckConstraint("session_count > 0", name="ck_session_purchases_count_pos"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    institution_id = Column(String(64), ForeignKey("institutions.id"), nullable=False, index=True)
    session_count = Column(Integer, nullable=False)
    price_per_session = Column(Numeric(10, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    payment_id = Column(String(128), unique=True)
    pricing_version = Column(Integer)
    status = Column(
        Enum(
            "pending",
            "completed",
            "failed",
            "refunded",
            name="session_purchase_status",
        ),
        nullable=False,
        default="pending",
    )
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __mapper_args__ = {"version_id_col": version}


__all__ = ["SessionPurchase"]
