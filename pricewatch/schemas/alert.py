from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from pricewatch.enums.tokens import Token


class AlertBase(BaseModel):
    token: Token
    target_price: Decimal = Field(gt=0, max_digits=20, decimal_places=10)
    email: EmailStr

    @field_validator("token", mode="before")
    @classmethod
    def _upper_token(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


class AlertCreate(AlertBase):
    pass


class AlertResponse(AlertBase):
    id: int
    triggered: bool
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AlertCreatedResponse(BaseModel):
    message: str = "Price alert created successfully"
    alert: AlertResponse
