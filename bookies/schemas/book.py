from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime

class BookBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    isbn: Optional[str] = Field(None, max_length=20)
    publisher: Optional[str] = None
    description: Optional[str] = None
    published_date: Optional[str] = Field(None, alias="publishedDate", max_length=50)
    cover_image: Optional[str] = Field(None, alias="coverImage", max_length=500)
    price: Optional[float] = Field(None, ge=0)

    class Config:
        populate_by_name = True

class BookCreate(BookBase):
    class Config:
        populate_by_name = True
        extra = "forbid"  # status and borrower fields are not settable

class BookUpdate(BaseModel):
    """Metadata patch. Lifecycle fields are rejected."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    author: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    isbn: Optional[str] = Field(None, max_length=20)
    publisher: Optional[str] = None
    description: Optional[str] = None
    published_date: Optional[str] = Field(None, alias="publishedDate", max_length=50)
    cover_image: Optional[str] = Field(None, alias="coverImage", max_length=500)
    price: Optional[float] = Field(None, ge=0)

    @field_validator("title", "author")
    @classmethod
    def not_null(cls, v: Optional[str]) -> str:
        """Required columns may be left out of a patch but not cleared."""
        if v is None:
            raise ValueError("cannot be null")
        return v

    class Config:
        populate_by_name = True
        extra = "forbid"

class BookResponse(BaseModel):
    id: int
    title: str
    author: str
    category: Optional[str] = None
    isbn: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    publishedDate: Optional[str] = None
    coverImage: Optional[str] = None
    price: Optional[float] = None
    status: str
    borrowedBy: Optional[str] = None
    borrowedDate: Optional[datetime] = None
    requestedBy: Optional[str] = None
    requestDate: Optional[datetime] = None
    returnRequestDate: Optional[datetime] = None
    addedDate: Optional[datetime] = None

class HeldBookResponse(BookResponse):
    dueDate: Optional[datetime] = None
    daysLeft: Optional[int] = None

class BookStats(BaseModel):
    total: int
    available: int
    pendingRequest: int
    borrowed: int
    pendingReturn: int
