from decimal import Decimal
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from unicard.schemas.card_schema import CardOut


class StudentBase(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=150)
    cn: Optional[str] = Field(None, pattern=r"^[0-9]{8}$")
    university_id: Optional[int] = None
    profile_image: Optional[str] = None


class StudentCreate(StudentBase):
    student_id: str = Field(..., pattern=r"^[0-9]{5}$")


class StudentUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=150)
    cn: Optional[str] = Field(None, pattern=r"^[0-9]{8}$")
    university_id: Optional[int] = None
    profile_image: Optional[str] = None


class StudentOut(StudentBase):
    student_id: str
    card_id: Optional[int] = None
    qr_payload: Optional[dict] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StudentWithCardOut(StudentOut):
    card_number: Optional[str] = None
    balance: Optional[Decimal] = None
    used: Optional[bool] = None


class ProvisionOut(BaseModel):
    student: StudentOut
    card: CardOut


class StudentCountOut(BaseModel):
    total: int
