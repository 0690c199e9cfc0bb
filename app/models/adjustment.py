from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from app.database import Base

RATE_ADJUSTMENT = "rate_adjustment"
FINAL_DECISION_CHANGE = "final_decision_change"
ESTIMATE_AMOUNT_CHANGE = "estimate_amount_change"
FINAL_DECISION_AMOUNT_CHANGE = "final_decision_amount_change"
EXPENSE_CHANGE = "expense_change"

# Only operator comments may be edited or soft-deleted.
COMMENT_TYPES = frozenset({FINAL_DECISION_CHANGE})


class Adjustment(Base):
    __tablename__ = "adjustments"

    id = Column(Integer, primary_key=True, index=True)
    work_order_id = Column(Integer, ForeignKey("work_orders.id"), nullable=False, index=True)

    type = Column(String, nullable=False, index=True)
    amount = Column(Integer, nullable=False, default=0)
    reason = Column(String, nullable=False)
    memo = Column(Text, nullable=True)

    created_by = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True)

    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_by = Column(String, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
