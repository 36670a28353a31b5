"""Request ledger: borrow and return requests and their approval status.

The ledger never commits. Callers run it inside the same transaction as the
matching book update so that both land together.
"""

import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bookies.exceptions import ConflictError, InvalidStateError, NotFoundError
from bookies.models.book_request import BookRequest
from bookies.models.enums import RequestStatus, RequestType
from bookies.utils.timezone import now_local

logger = logging.getLogger(__name__)

ORPHAN_NOTE = "Book removed from catalogue"


class RequestLedger:
    def __init__(self, db: Session):
        self.db = db

    def get(self, request_id: int) -> BookRequest:
        request = self.db.query(BookRequest).filter(BookRequest.request_id == request_id).first()
        if not request:
            raise NotFoundError(f"Request not found with ID: {request_id}")
        return request

    def pending_for_book(self, book_id: int) -> Optional[BookRequest]:
        return self.db.query(BookRequest).filter(
            BookRequest.book_id == book_id,
            BookRequest.status == RequestStatus.PENDING.value
        ).first()

    def create(
        self,
        book_id: int,
        user_email: str,
        request_type: RequestType,
        notes: Optional[str] = None,
        book_title: Optional[str] = None,
    ) -> BookRequest:
        """Open a PENDING request; at most one may exist per book."""
        request_type = RequestType(request_type)
        existing = self.pending_for_book(book_id)
        if existing:
            raise ConflictError(
                f"Book {book_id} already has a pending {existing.request_type.lower()} request"
            )

        request = BookRequest(
            book_id=book_id,
            book_title=book_title,
            user_email=user_email,
            request_type=request_type.value,
            status=RequestStatus.PENDING.value,
            requested_at=now_local(),
            notes=notes,
        )

        # A concurrent writer may slip in between the check and the insert; the
        # partial unique index turns that into an IntegrityError and the whole
        # unit of work is abandoned.
        self.db.add(request)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Pending request for book {book_id} lost the race to another writer")
            raise ConflictError(f"Book {book_id} already has a pending request")

        return request

    def list_pending(self) -> List[BookRequest]:
        """Pending requests, oldest first."""
        return self.db.query(BookRequest).filter(
            BookRequest.status == RequestStatus.PENDING.value
        ).order_by(BookRequest.requested_at.asc(), BookRequest.request_id.asc()).all()

    def list_for_user(self, user_email: str) -> List[BookRequest]:
        return self.db.query(BookRequest).filter(
            func.lower(BookRequest.user_email) == user_email.lower()
        ).order_by(BookRequest.requested_at.desc(), BookRequest.request_id.desc()).all()

    def resolve(
        self,
        request_id: int,
        outcome: RequestStatus,
        admin_email: str,
        notes: Optional[str] = None,
    ) -> BookRequest:
        """Move a PENDING request to APPROVED or REJECTED exactly once."""
        outcome = RequestStatus(outcome)
        if outcome is RequestStatus.PENDING:
            raise ValueError("A request can only be resolved as APPROVED or REJECTED")

        request = self.get(request_id)
        if request.status != RequestStatus.PENDING.value:
            raise InvalidStateError(f"Request has already been processed ({request.status})")

        values = {
            BookRequest.status: outcome.value,
            BookRequest.processed_at: now_local(),
            BookRequest.processed_by: admin_email,
        }
        if notes is not None:
            values[BookRequest.notes] = notes

        # Compare-and-set: of two racing resolutions only one matches the row.
        updated = self.db.query(BookRequest).filter(
            BookRequest.request_id == request_id,
            BookRequest.status == RequestStatus.PENDING.value
        ).update(values, synchronize_session=False)

        if updated == 0:
            raise InvalidStateError("Request has already been processed")

        self.db.refresh(request)
        return request

    def close_orphans(self, book_id: int, admin_email: str) -> List[BookRequest]:
        """Reject every pending request of a book that is being deleted."""
        orphans = self.db.query(BookRequest).filter(
            BookRequest.book_id == book_id,
            BookRequest.status == RequestStatus.PENDING.value
        ).all()

        now = now_local()
        for request in orphans:
            request.status = RequestStatus.REJECTED.value
            request.processed_at = now
            request.processed_by = admin_email
            request.notes = ORPHAN_NOTE

        if orphans:
            logger.info(f"Closed {len(orphans)} pending request(s) for deleted book {book_id}")
        return orphans
