from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, String

from app.database import Base


class Material(Base):
    """A non-labor expense line (materials, outsourcing, shipping, other)."""

    __tablename__ = "materials"

    __table_args__ = (
        CheckConstraint("cost_quantity >= 1 AND bill_quantity >= 1", name="ck_materials_quantity_min"),
        CheckConstraint(
            "cost_unit_price >= 0 AND bill_unit_price >= 0 AND bill_total >= 0",
            name="ck_materials_nonnegative",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    work_order_id = Column(Integer, ForeignKey("work_orders.id"), nullable=False, index=True)

    category = Column(String, nullable=False)

    cost_unit_price = Column(Integer, nullable=False, default=0)
    cost_quantity = Column(Integer, nullable=False, default=1)
    cost_total = Column(Integer, nullable=False, default=0)

    bill_unit_price = Column(Integer, nullable=False, default=0)
    bill_quantity = Column(Integer, nullable=False, default=1)
    bill_total = Column(Integer, nullable=False, default=0)

    file_estimate = Column(Integer, nullable=True)
    memo = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
