from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB

from app.database import Base

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class AggregationSnapshot(Base):
    """Totals written once when a work order is finalized. Never updated or deleted."""

    __tablename__ = "aggregation_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    work_order_id = Column(Integer, ForeignKey("work_orders.id"), nullable=False, unique=True)

    work_number = Column(String, nullable=False)
    customer_name = Column(String, nullable=False)
    project_name = Column(String, nullable=False)

    total_hours = Column(Numeric(10, 1), nullable=False)
    cost_total = Column(Integer, nullable=False)
    bill_total = Column(Integer, nullable=False)
    material_total = Column(Integer, nullable=False)
    adjustment_total = Column(Integer, nullable=False)
    final_amount = Column(Integer, nullable=False)

    activity_breakdown = Column(JsonDocument, nullable=False)
    material_breakdown = Column(JsonDocument, nullable=False)

    aggregated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    aggregated_by = Column(String, nullable=False)
    memo = Column(String, nullable=True)
