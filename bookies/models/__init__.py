from .enums import BookStatus, RequestType, RequestStatus, UserRole
from .user import User
from .book import Book
from .book_request import BookRequest
from .member import Member

__all__ = [
    "BookStatus",
    "RequestType",
    "RequestStatus",
    "UserRole",
    "User",
    "Book",
    "BookRequest",
    "Member",
]
