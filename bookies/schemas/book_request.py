from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from bookies.models.enums import RequestType
from bookies.schemas.book import BookResponse

class BookRequestCreate(BaseModel):
    """Borrow or return request submitted by a user."""
    book_id: int = Field(..., alias="bookId")
    request_type: RequestType = Field(..., alias="requestType")
    user_email: Optional[str] = Field(None, alias="userEmail", description="Must match the caller unless omitted")
    notes: Optional[str] = Field(None, max_length=500)

    class Config:
        populate_by_name = True

class RequestDecision(BaseModel):
    """Optional body for approve/reject."""
    notes: Optional[str] = Field(None, max_length=500)

class BookRequestResponse(BaseModel):
    id: int
    bookId: Optional[int] = None
    bookTitle: Optional[str] = None
    bookAuthor: Optional[str] = None
    userEmail: str
    requestType: str
    status: str
    requestedAt: datetime
    processedAt: Optional[datetime] = None
    processedBy: Optional[str] = None
    notes: Optional[str] = None

class RequestOutcomeResponse(BaseModel):
    request: BookRequestResponse
    book: BookResponse
    message: str
