from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from datetime import date

class MemberCreate(BaseModel):
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=100)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    membership_date: Optional[date] = Field(None, alias="membershipDate", description="Defaults to today")
    is_active: bool = Field(True, alias="isActive")

    class Config:
        populate_by_name = True
        extra = "forbid"

class MemberUpdate(BaseModel):
    """Partial update; fields left out keep their value."""
    first_name: Optional[str] = Field(None, alias="firstName", min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, alias="lastName", min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    membership_date: Optional[date] = Field(None, alias="membershipDate")
    is_active: Optional[bool] = Field(None, alias="isActive")

    @field_validator("first_name", "last_name", "email", "membership_date", "is_active")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("cannot be null")
        return v

    class Config:
        populate_by_name = True
        extra = "forbid"

class MemberResponse(BaseModel):
    id: int
    firstName: str
    lastName: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    membershipDate: date
    isActive: bool
