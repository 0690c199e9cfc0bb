from sqlalchemy import Boolean, Column, Integer, Numeric, String

from app.database import Base


class ExpenseRate(Base):
    __tablename__ = "expense_rates"

    id = Column(Integer, primary_key=True, index=True)
    category = Column(String, nullable=False, unique=True)
    markup_rate = Column(Numeric(6, 3), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
