from pydantic import BaseModel, Field
from typing import Literal

OrderStatus = Literal["pending", "confirmed", "shipped", "delivered", "completed", "cancelled"]


class StatusUpdateRequest(BaseModel):
    status: OrderStatus


class DisputeRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=120)
    description: str = ""
