import logging
from fastapi import APIRouter, Depends, status
from typing import List, Optional
from bookies.exceptions import UnauthorizedError
from bookies.models.book import Book
from bookies.models.book_request import BookRequest
from bookies.schemas.book import BookResponse
from bookies.schemas.book_request import (
    BookRequestCreate,
    BookRequestResponse,
    RequestDecision,
    RequestOutcomeResponse,
)
from bookies.services.auth import get_current_actor
from bookies.services.library import LibraryService, get_library_service
from bookies.services.lifecycle import Actor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/book-requests", tags=["Book Requests"])


def outcome(request: BookRequest, book: Book, message: str) -> RequestOutcomeResponse:
    return RequestOutcomeResponse(
        request=BookRequestResponse(**request.to_dict()),
        book=BookResponse(**book.to_dict()),
        message=message,
    )


@router.post("", response_model=RequestOutcomeResponse, status_code=status.HTTP_201_CREATED)
def create_book_request(
    body: BookRequestCreate,
    actor: Actor = Depends(get_current_actor),
    library: LibraryService = Depends(get_library_service)
):
    """Ask to borrow or return a book. The book waits for admin approval."""
    if body.user_email and not actor.matches(body.user_email):
        raise UnauthorizedError("Requests can only be made for your own account")

    request, book = library.submit_request(actor, body.book_id, body.request_type, body.notes)
    return outcome(request, book, f"{request.request_type.capitalize()} request submitted")

@router.get("/pending", response_model=List[BookRequestResponse])
async def get_pending_requests(
    actor: Actor = Depends(get_current_actor),
    library: LibraryService = Depends(get_library_service)
):
    """Pending requests, oldest first (admin only)."""
    requests = library.list_pending(actor)
    logger.info(f"Found {len(requests)} pending requests")
    return [BookRequestResponse(**r.to_dict()) for r in requests]

@router.get("/user/{email}", response_model=List[BookRequestResponse])
async def get_user_requests(
    email: str,
    actor: Actor = Depends(get_current_actor),
    library: LibraryService = Depends(get_library_service)
):
    """Request history of one user, newest first."""
    return [BookRequestResponse(**r.to_dict()) for r in library.list_user_requests(actor, email)]

@router.get("/{request_id}", response_model=BookRequestResponse)
async def get_book_request(
    request_id: int,
    actor: Actor = Depends(get_current_actor),
    library: LibraryService = Depends(get_library_service)
):
    """Get a request by ID (its owner or an admin)."""
    return BookRequestResponse(**library.get_request(actor, request_id).to_dict())

@router.post("/{request_id}/approve", response_model=RequestOutcomeResponse)
def approve_request(
    request_id: int,
    decision: Optional[RequestDecision] = None,
    actor: Actor = Depends(get_current_actor),
    library: LibraryService = Depends(get_library_service)
):
    """Approve a pending request (admin only)."""
    notes = decision.notes if decision else None
    request, book = library.approve(actor, request_id, notes)
    return outcome(request, book, "Request approved successfully")

@router.post("/{request_id}/reject", response_model=RequestOutcomeResponse)
def reject_request(
    request_id: int,
    decision: Optional[RequestDecision] = None,
    actor: Actor = Depends(get_current_actor),
    library: LibraryService = Depends(get_library_service)
):
    """Reject a pending request (admin only)."""
    notes = decision.notes if decision else None
    request, book = library.reject(actor, request_id, notes)
    return outcome(request, book, "Request rejected successfully")
