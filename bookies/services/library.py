"""Coordinates the registry, the ledger and the lifecycle engine.

Each public method is one unit of work: it serializes on the affected book,
validates the action with the engine, writes the book and its request in a
single transaction and commits, or rolls everything back and re-raises.
Status events are published only after a successful commit.

The book lock is a ``threading.Lock``, so it serializes threads in one
process. Routes that mutate books or requests are plain ``def`` endpoints,
which FastAPI runs in its threadpool; calling these methods from an
``async def`` endpoint would block the event loop while waiting for the lock.
Across processes the row lock and the pending-request index take over.
"""

import logging
from contextlib import contextmanager
from typing import Dict, List, Optional, Tuple

from fastapi import Depends
from sqlalchemy.orm import Session

from bookies.database import get_db
from bookies.exceptions import (
    ConflictError,
    ConsistencyFaultError,
    InvalidStateError,
    LibraryError,
    UnauthorizedError,
)
from bookies.models.book import Book
from bookies.models.book_request import BookRequest
from bookies.models.enums import BookStatus, RequestStatus, RequestType
from bookies.services.ledger import RequestLedger
from bookies.services.lifecycle import (
    PENDING_STATUS_FOR,
    Actor,
    BookState,
    LifecycleEngine,
)
from bookies.services.notifier import StatusNotifier, notifier as default_notifier
from bookies.services.registry import BookRegistry
from bookies.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

# Shared by every service instance in this process
book_locks = KeyedLock()


class LibraryService:
    def __init__(
        self,
        db: Session,
        engine: Optional[LifecycleEngine] = None,
        notifier: Optional[StatusNotifier] = None,
    ):
        self.db = db
        self.books = BookRegistry(db)
        self.requests = RequestLedger(db)
        self.engine = engine or LifecycleEngine()
        self.notifier = notifier or default_notifier

    @contextmanager
    def _unit_of_work(self, book_id: Optional[int] = None):
        """Serialize on ``book_id`` and commit or roll back as one transaction."""
        if book_id is None:
            with self._transaction():
                yield
            return
        with book_locks.hold(book_id):
            with self._transaction():
                yield

    @contextmanager
    def _transaction(self):
        try:
            yield
            self.db.commit()
        except ConsistencyFaultError as e:
            self.db.rollback()
            logger.error(f"Consistency fault: {e.message}")
            raise
        except LibraryError as e:
            self.db.rollback()
            logger.warning(f"{type(e).__name__}: {e.message}")
            raise
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def _require_admin(actor: Actor, what: str) -> None:
        if not actor.is_admin:
            raise UnauthorizedError(f"Only administrators can {what}")

    def _check_ledger_agrees(self, book: Book, pending: Optional[BookRequest]) -> None:
        """A pending book status and a PENDING request must come as a pair."""
        status = BookStatus(book.status)
        if pending is None:
            if status in PENDING_STATUS_FOR.values():
                raise ConsistencyFaultError(
                    f"Book {book.book_id} is {status.value} but has no pending request"
                )
            return
        expected = PENDING_STATUS_FOR[RequestType(pending.request_type)]
        if status != expected:
            raise ConsistencyFaultError(
                f"Book {book.book_id} is {status.value} but has a pending "
                f"{pending.request_type} request {pending.request_id}"
            )

    def _publish(self, event: str, book: Book, request: Optional[BookRequest] = None) -> None:
        self.notifier.publish_book_event(
            event, book.to_dict(), request.to_dict() if request else None
        )

    # Catalogue

    def get_book(self, book_id: int) -> Book:
        return self.books.get(book_id)

    def list_books(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[BookStatus] = None,
    ) -> List[Book]:
        return self.books.list(search=search, category=category, status=status)

    def books_held_by(self, actor: Actor) -> List[Book]:
        return self.books.held_by(actor.email)

    def add_book(self, actor: Actor, fields: Dict) -> Book:
        self._require_admin(actor, "add books")
        with self._unit_of_work():
            book = self.books.create(fields)
        self.db.refresh(book)
        logger.info(f"Book {book.book_id} '{book.title}' added by {actor.email}")
        self._publish("book.added", book)
        return book

    def update_book(self, actor: Actor, book_id: int, patch: Dict) -> Book:
        self._require_admin(actor, "edit books")
        with self._unit_of_work(book_id):
            book = self.books.update(book_id, patch)
        self.db.refresh(book)
        logger.info(f"Book {book_id} updated by {actor.email}")
        self._publish("book.updated", book)
        return book

    def delete_book(self, actor: Actor, book_id: int) -> List[BookRequest]:
        """Delete a book, closing any pending request it still has."""
        self._require_admin(actor, "delete books")
        with self._unit_of_work(book_id):
            book = self.books.get_for_update(book_id)
            snapshot = book.to_dict()
            orphans = self.requests.close_orphans(book_id, actor.email)
            self.books.delete(book_id)
        logger.info(f"Book {book_id} '{snapshot['title']}' deleted by {actor.email}")
        self.notifier.publish_book_event("book.deleted", snapshot)
        return orphans

    # Requests

    def submit_request(
        self,
        actor: Actor,
        book_id: int,
        request_type: RequestType,
        notes: Optional[str] = None,
    ) -> Tuple[BookRequest, Book]:
        """User asks to borrow or return a book."""
        request_type = RequestType(request_type)
        with self._unit_of_work(book_id):
            book = self.books.get_for_update(book_id)
            pending = self.requests.pending_for_book(book_id)
            self._check_ledger_agrees(book, pending)
            if pending is not None:
                # The loser of a race and an identical resubmission both land here
                raise ConflictError(
                    f"Book {book_id} already has a pending {pending.request_type.lower()} request"
                )

            result = self.engine.submit(BookState.of(book), request_type, actor)
            result.book.apply_to(book)
            request = self.requests.create(
                book_id, actor.email, request_type, notes=notes, book_title=book.title
            )

        logger.info(
            f"{request_type.value} request {request.request_id} for book {book_id} "
            f"submitted by {actor.email}"
        )
        self._publish(f"request.{request_type.value.lower()}", book, request)
        return request, book

    def request_borrow(self, actor: Actor, book_id: int, notes: Optional[str] = None) -> Tuple[BookRequest, Book]:
        return self.submit_request(actor, book_id, RequestType.BORROW, notes)

    def request_return(self, actor: Actor, book_id: int, notes: Optional[str] = None) -> Tuple[BookRequest, Book]:
        return self.submit_request(actor, book_id, RequestType.RETURN, notes)

    def resolve_request(
        self,
        actor: Actor,
        request_id: int,
        outcome: RequestStatus,
        notes: Optional[str] = None,
    ) -> Tuple[BookRequest, Book]:
        """Admin approves or rejects a pending request."""
        outcome = RequestStatus(outcome)
        self._require_admin(actor, "approve or reject requests")
        request = self.requests.get(request_id)
        book_id = request.book_id

        if book_id is None:
            # Deleting a book closes its pending requests, so only closed ones lose their book
            if request.status == RequestStatus.PENDING.value:
                logger.error(f"Consistency fault: request {request_id} is pending but its book no longer exists")
                raise ConsistencyFaultError(f"Request {request_id} is pending but its book no longer exists")
            raise InvalidStateError(f"Request has already been processed ({request.status})")

        with self._unit_of_work(book_id):
            self.db.refresh(request)
            if request.book_id is None:
                # The book was deleted while we waited for its lock
                raise InvalidStateError(f"Request has already been processed ({request.status})")
            book = self.books.get_for_update(book_id)
            result = self.engine.resolve(BookState.of(book), request, outcome, actor)
            result.book.apply_to(book)
            request = self.requests.resolve(request_id, result.request_status, actor.email, notes)

        logger.info(
            f"{request.request_type} request {request_id} {outcome.value.lower()} by {actor.email}; "
            f"book {book_id} is now {book.status}"
        )
        self._publish(f"request.{outcome.value.lower()}", book, request)
        return request, book

    def approve(self, actor: Actor, request_id: int, notes: Optional[str] = None) -> Tuple[BookRequest, Book]:
        return self.resolve_request(actor, request_id, RequestStatus.APPROVED, notes)

    def reject(self, actor: Actor, request_id: int, notes: Optional[str] = None) -> Tuple[BookRequest, Book]:
        return self.resolve_request(actor, request_id, RequestStatus.REJECTED, notes)

    def get_request(self, actor: Actor, request_id: int) -> BookRequest:
        request = self.requests.get(request_id)
        if not actor.is_admin and not actor.matches(request.user_email):
            raise UnauthorizedError("You can only view your own requests")
        return request

    def list_pending(self, actor: Actor) -> List[BookRequest]:
        self._require_admin(actor, "review pending requests")
        return self.requests.list_pending()

    def list_user_requests(self, actor: Actor, user_email: str) -> List[BookRequest]:
        if not actor.is_admin and not actor.matches(user_email):
            raise UnauthorizedError("You can only view your own requests")
        return self.requests.list_for_user(user_email)


def get_library_service(db: Session = Depends(get_db)) -> LibraryService:
    return LibraryService(db)
