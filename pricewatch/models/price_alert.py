from sqlalchemy import Boolean, Column, DateTime, Integer, String, false, func

from pricewatch.database.connection import Base
from pricewatch.database.types import PriceNumeric


class PriceAlert(Base):
    __tablename__ = "price_alerts"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(10), nullable=False, index=True)
    target_price = Column(PriceNumeric(), nullable=False)
    email = Column(String(255), nullable=False)
    # flipped false -> true once by AlertStore.match_and_trigger, never back
    triggered = Column(Boolean, nullable=False, default=False, server_default=false(), index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
