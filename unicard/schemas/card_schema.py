# unicard/schemas/card_schema.py

from decimal import Decimal
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class CardOut(BaseModel):
    id: int
    student_id: str
    card_number: str
    balance: Decimal
    used: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by: Optional[int] = None
    updated_by: Optional[int] = None

    model_config = {
        "from_attributes": True
    }


class BalanceUpdateIn(BaseModel):
    # parsed and truncated by the ledger so every caller gets the same rules
    amount: Decimal | str = Field(...)
    operation: Literal["add", "subtract"] = "add"


class BalanceChangeOut(BaseModel):
    card_id: int
    previous_balance: Decimal
    new_balance: Decimal
    amount: Decimal
    operation: str


class CardWithStudentOut(CardOut):
    full_name: Optional[str] = None
    cn: Optional[str] = None
    profile_image: Optional[str] = None
    university_id: Optional[int] = None


class CardUpdate(BaseModel):
    card_number: Optional[str] = Field(None, pattern=r"^[A-Z]{4}[0-9]{5}$")
    used: Optional[bool] = None

    # balance is only writable through PUT /cards/{id}/balance
    model_config = {
        "extra": "forbid"
    }


class ActiveCardsCountOut(BaseModel):
    count: int
