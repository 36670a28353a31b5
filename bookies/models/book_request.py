from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import relationship
from bookies.database import Base
from bookies.models.enums import RequestStatus


class BookRequest(Base):
    __tablename__ = "book_request"

    request_id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("book.book_id", ondelete="SET NULL"), nullable=True, index=True)
    book_title = Column(String(255), nullable=True)  # kept for audit once the book is gone
    user_email = Column(String(255), nullable=False, index=True)
    request_type = Column(String(20), nullable=False)
    status = Column(String(20), default=RequestStatus.PENDING.value, nullable=False, index=True)
    requested_at = Column(DateTime(timezone=True), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    processed_by = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Relationships
    book = relationship("Book", back_populates="requests")

    __table_args__ = (
        CheckConstraint("request_type IN ('BORROW', 'RETURN')", name="chk_request_type"),
        CheckConstraint("status IN ('PENDING', 'APPROVED', 'REJECTED')", name="chk_request_status"),
        # At most one outstanding request per book
        Index(
            "uq_book_request_pending",
            "book_id",
            unique=True,
            sqlite_where=text("status = 'PENDING'"),
            postgresql_where=text("status = 'PENDING'"),
        ),
    )

    def to_dict(self):
        return {
            "id": self.request_id,
            "bookId": self.book_id,
            "bookTitle": self.book_title,
            "bookAuthor": self.book.author if self.book else None,
            "userEmail": self.user_email,
            "requestType": self.request_type,
            "status": self.status,
            "requestedAt": self.requested_at.isoformat() if self.requested_at else None,
            "processedAt": self.processed_at.isoformat() if self.processed_at else None,
            "processedBy": self.processed_by,
            "notes": self.notes,
        }
