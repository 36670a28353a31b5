from .auth import UserCreate, UserLogin, UserResponse, Token, PasswordChange
from .book import BookBase, BookCreate, BookUpdate, BookResponse, HeldBookResponse, BookStats
from .book_request import (
    BookRequestCreate,
    RequestDecision,
    BookRequestResponse,
    RequestOutcomeResponse,
)
from .member import MemberCreate, MemberUpdate, MemberResponse

__all__ = [
    "UserCreate", "UserLogin", "UserResponse", "Token", "PasswordChange",
    "BookBase", "BookCreate", "BookUpdate", "BookResponse", "HeldBookResponse", "BookStats",
    "BookRequestCreate", "RequestDecision", "BookRequestResponse", "RequestOutcomeResponse",
    "MemberCreate", "MemberUpdate", "MemberResponse",
]
