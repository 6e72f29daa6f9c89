from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional


class BankDetailsRequest(BaseModel):
    bank_name: str = Field(min_length=1, max_length=100)
    bank_code: Optional[str] = Field(default=None, max_length=20)
    account_number: str = Field(pattern=r"^\d{10}$")
    account_name: str = Field(min_length=1, max_length=120)
    recipient_code: str = Field(min_length=1, max_length=64)


class WithdrawRequest(BaseModel):
    amount: Decimal
