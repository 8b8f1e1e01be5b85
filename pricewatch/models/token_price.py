from sqlalchemy import Column, DateTime, Integer, String, func

from pricewatch.database.connection import Base
from pricewatch.database.types import PriceNumeric


class TokenPrice(Base):
    __tablename__ = "token_prices"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String(10), nullable=False, index=True)
    price = Column(PriceNumeric(), nullable=False)
    last_update = Column(DateTime(timezone=True), server_default=func.now(), index=True)
