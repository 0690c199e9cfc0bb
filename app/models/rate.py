from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, text

from app.database import Base


class Rate(Base):
    """One version of the unit price pair for an activity, valid on [effective_from, effective_to)."""

    __tablename__ = "rates"

    __table_args__ = (
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="ck_rates_interval_order",
        ),
        CheckConstraint("cost_rate >= 0 AND bill_rate >= 0", name="ck_rates_nonnegative"),
        Index(
            "uq_rates_one_open_per_activity",
            "activity",
            unique=True,
            postgresql_where=text("effective_to IS NULL"),
            sqlite_where=text("effective_to IS NULL"),
        ),
        Index("ix_rates_activity_effective_from", "activity", "effective_from"),
    )

    id = Column(Integer, primary_key=True, index=True)
    activity = Column(String, nullable=False, index=True)

    effective_from = Column(DateTime, nullable=False)
    effective_to = Column(DateTime, nullable=True)

    cost_rate = Column(Integer, nullable=False)
    bill_rate = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
