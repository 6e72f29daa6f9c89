from pydantic import BaseModel, Field
from typing import List, Optional


class AddCartItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(default=1, ge=1, le=999)


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(ge=0, le=999)


class ApplyCoinsRequest(BaseModel):
    apply_coins: bool


class CheckoutRequest(BaseModel):
    delivery_address: str = ""
    seller_ids: Optional[List[int]] = None
    idempotency_key: Optional[str] = Field(default=None, max_length=60)
