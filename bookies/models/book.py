from sqlalchemy import Column, String, DateTime, Integer, Text, Float, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from bookies.database import Base
from bookies.models.enums import BookStatus


def _iso(value):
    return value.isoformat() if value else None


class Book(Base):
    __tablename__ = "book"

    book_id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    author = Column(String(255), nullable=False)
    category = Column(String(100), nullable=True, index=True)
    isbn = Column(String(20), nullable=True)
    publisher = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    published_date = Column(String(50), nullable=True)
    cover_image = Column(String(500), nullable=True)
    price = Column(Float, nullable=True)

    # Lifecycle fields - written only through the lifecycle engine
    status = Column(String(50), default=BookStatus.AVAILABLE.value, nullable=False, index=True)
    borrowed_by = Column(String(255), nullable=True, index=True)
    borrowed_date = Column(DateTime(timezone=True), nullable=True)
    requested_by = Column(String(255), nullable=True)
    request_date = Column(DateTime(timezone=True), nullable=True)
    return_request_date = Column(DateTime(timezone=True), nullable=True)

    added_date = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    requests = relationship("BookRequest", back_populates="book")

    __table_args__ = (
        CheckConstraint(
            "status IN ('available', 'pending_request', 'borrowed', 'pending_return')",
            name="chk_book_status",
        ),
        # Ids are never handed out twice, even after deletes
        {"sqlite_autoincrement": True},
    )

    def to_dict(self):
        return {
            "id": self.book_id,
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "isbn": self.isbn,
            "publisher": self.publisher,
            "description": self.description,
            "publishedDate": self.published_date,
            "coverImage": self.cover_image,
            "price": self.price,
            "status": self.status,
            "borrowedBy": self.borrowed_by,
            "borrowedDate": _iso(self.borrowed_date),
            "requestedBy": self.requested_by,
            "requestDate": _iso(self.request_date),
            "returnRequestDate": _iso(self.return_request_date),
            "addedDate": _iso(self.added_date),
        }
