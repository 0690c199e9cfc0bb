from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from app.database import Base


class WorkOrderActivityMemo(Base):
    __tablename__ = "work_order_activity_memos"

    __table_args__ = (
        UniqueConstraint("work_order_id", "activity", name="uq_activity_memo_work_order_activity"),
    )

    id = Column(Integer, primary_key=True, index=True)
    work_order_id = Column(Integer, ForeignKey("work_orders.id"), nullable=False, index=True)
    activity = Column(String, nullable=False)
    memo = Column(String, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
