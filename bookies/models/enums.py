import enum


class BookStatus(str, enum.Enum):
    AVAILABLE = "available"
    PENDING_REQUEST = "pending_request"
    BORROWED = "borrowed"
    PENDING_RETURN = "pending_return"


class RequestType(str, enum.Enum):
    BORROW = "BORROW"
    RETURN = "RETURN"


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"
