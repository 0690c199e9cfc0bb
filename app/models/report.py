from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base


class Report(Base):
    """One worker's daily report; owns that day's work records."""

    __tablename__ = "reports"

    __table_args__ = (
        UniqueConstraint("worker_id", "report_date", name="uq_reports_worker_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    worker_id = Column(Integer, ForeignKey("workers.id"), nullable=False, index=True)
    report_date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    worker = relationship("Worker")
    records = relationship("WorkRecord", back_populates="report")
