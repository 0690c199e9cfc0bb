from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base

WORK_ORDER_STATUSES = ("delivered", "aggregating", "aggregated")


class WorkOrder(Base):
    __tablename__ = "work_orders"

    __table_args__ = (
        UniqueConstraint("front_number", "back_number", name="uq_work_orders_number"),
        CheckConstraint(
            "status IN ('delivered', 'aggregating', 'aggregated')",
            name="ck_work_orders_status",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    front_number = Column(String, nullable=False)
    back_number = Column(String, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)

    project_name = Column(String, nullable=True)
    description = Column(String, nullable=True)
    term = Column(String, nullable=True)

    status = Column(String, nullable=False, default="delivered", index=True)

    estimate_amount = Column(Integer, nullable=True)
    final_decision_amount = Column(Integer, nullable=True)
    delivery_date = Column(Date, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Customer")

    @property
    def work_number(self) -> str:
        return f"{self.front_number}-{self.back_number}"
