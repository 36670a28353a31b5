import logging
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from bookies.exceptions import InvalidTransitionError, NotFoundError
from bookies.models.book import Book
from bookies.models.enums import BookStatus
from bookies.services.lifecycle import TRANSIENT_FIELDS

logger = logging.getLogger(__name__)

# Descriptive fields an admin may set on create and edit
EDITABLE_FIELDS = (
    "title",
    "author",
    "category",
    "isbn",
    "publisher",
    "description",
    "published_date",
    "cover_image",
    "price",
)

LIFECYCLE_FIELDS = ("status",) + TRANSIENT_FIELDS


class BookRegistry:
    """Book records and their current status.

    Lifecycle fields are never written here; they change only through the
    lifecycle engine.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, book_id: int) -> Book:
        book = self.db.query(Book).filter(Book.book_id == book_id).first()
        if not book:
            raise NotFoundError(f"Book not found with ID: {book_id}")
        return book

    def get_for_update(self, book_id: int) -> Book:
        """Load a book holding its row lock until the transaction ends.

        SQLite has no row locks and ignores FOR UPDATE.
        """
        book = self.db.query(Book).filter(Book.book_id == book_id).with_for_update().first()
        if not book:
            raise NotFoundError(f"Book not found with ID: {book_id}")
        return book

    def create(self, fields: Dict) -> Book:
        self._reject_lifecycle_fields(fields)
        book = Book(**{k: v for k, v in fields.items() if k in EDITABLE_FIELDS})
        book.status = BookStatus.AVAILABLE.value
        self.db.add(book)
        self.db.flush()
        return book

    def update(self, book_id: int, patch: Dict) -> Book:
        self._reject_lifecycle_fields(patch)
        book = self.get(book_id)
        for field, value in patch.items():
            if field in EDITABLE_FIELDS:
                setattr(book, field, value)
        self.db.flush()
        return book

    def delete(self, book_id: int) -> None:
        book = self.get(book_id)
        self.db.delete(book)
        self.db.flush()

    def list(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[BookStatus] = None,
    ) -> List[Book]:
        """Books matching every given filter, ordered by title."""
        query = self.db.query(Book)

        if search:
            search_term = f"%{search.lower()}%"
            query = query.filter(
                or_(
                    func.lower(Book.title).like(search_term),
                    func.lower(Book.author).like(search_term),
                    func.lower(Book.isbn).like(search_term)
                )
            )

        if category:
            query = query.filter(Book.category == category)

        if status:
            query = query.filter(Book.status == BookStatus(status).value)

        return query.order_by(Book.title, Book.book_id).all()

    def held_by(self, email: str) -> List[Book]:
        """Books currently out with this borrower, including pending returns."""
        return self.db.query(Book).filter(
            func.lower(Book.borrowed_by) == email.lower(),
            Book.status.in_([BookStatus.BORROWED.value, BookStatus.PENDING_RETURN.value])
        ).order_by(Book.borrowed_date.asc()).all()

    def categories(self) -> List[str]:
        rows = self.db.query(Book.category).filter(
            Book.category.isnot(None)
        ).distinct().order_by(Book.category).all()
        return [row[0] for row in rows]

    def stats(self) -> Dict[str, int]:
        counts = dict(
            self.db.query(Book.status, func.count(Book.book_id)).group_by(Book.status).all()
        )
        return {
            "total": sum(counts.values()),
            "available": counts.get(BookStatus.AVAILABLE.value, 0),
            "pendingRequest": counts.get(BookStatus.PENDING_REQUEST.value, 0),
            "borrowed": counts.get(BookStatus.BORROWED.value, 0),
            "pendingReturn": counts.get(BookStatus.PENDING_RETURN.value, 0),
        }

    @staticmethod
    def _reject_lifecycle_fields(fields: Dict) -> None:
        blocked = sorted(set(fields) & set(LIFECYCLE_FIELDS))
        if blocked:
            raise InvalidTransitionError(
                f"Lifecycle fields cannot be edited directly: {', '.join(blocked)}"
            )
