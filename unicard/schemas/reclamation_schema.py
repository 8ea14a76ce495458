from pydantic import BaseModel, Field, condecimal
from decimal import Decimal
from datetime import datetime
from typing import Literal, Optional

PositiveDecimal = condecimal(gt=0)


class ReclamationCreate(BaseModel):
    student_id: str = Field(..., pattern=r"^[0-9]{5}$")
    amount: PositiveDecimal = Field(...)
    reason: str = Field(..., min_length=1)
    evidence: Optional[str] = None


class ReclamationProcess(BaseModel):
    status: Literal["approved", "rejected"]
    admin_notes: Optional[str] = None


class ReclamationOut(BaseModel):
    id: int
    staff_id: int
    student_id: str
    amount: Decimal
    reason: str
    evidence: Optional[str]
    status: str
    admin_id: Optional[int] = None
    admin_notes: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ReclamationFilters(BaseModel):
    status: Optional[Literal["pending", "approved", "rejected", "processed", "error"]] = None
    staff_id: Optional[int] = None
    limit: Optional[int] = Field(None, gt=0, le=500)


class ReclamationCounts(BaseModel):
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    processed: int = 0
    error: int = 0
