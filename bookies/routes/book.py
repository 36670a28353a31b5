import math
from datetime import datetime, timedelta
from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
from bookies.config import settings
from bookies.models.book import Book
from bookies.models.enums import BookStatus
from bookies.schemas.book import BookCreate, BookUpdate, BookResponse, HeldBookResponse, BookStats
from bookies.services.auth import get_current_actor
from bookies.services.library import LibraryService, get_library_service
from bookies.services.lifecycle import Actor
from bookies.utils.timezone import now_local, ensure_aware

router = APIRouter(prefix="/api/books", tags=["Books"])


def with_due_date(book: Book, now: datetime) -> HeldBookResponse:
    """Attach the due date and the days left (clamped to the loan period)."""
    borrowed_date = ensure_aware(book.borrowed_date)
    due_date = borrowed_date + timedelta(days=settings.loan_period_days)
    days_left = math.ceil((due_date - now).total_seconds() / 86400)
    return HeldBookResponse(
        **book.to_dict(),
        dueDate=due_date,
        daysLeft=max(0, min(days_left, settings.loan_period_days)),
    )


@router.get("", response_model=List[BookResponse])
async def get_books(
    search: Optional[str] = Query(None, description="Search by title, author, or ISBN"),
    category: Optional[str] = Query(None, description="Filter by category"),
    status_filter: Optional[BookStatus] = Query(None, alias="status", description="Filter by lifecycle status"),
    library: LibraryService = Depends(get_library_service)
):
    """Get list of books with optional search and filter."""
    books = library.list_books(search=search, category=category, status=status_filter)
    return [BookResponse(**book.to_dict()) for book in books]

@router.get("/categories", response_model=List[str])
async def get_categories(library: LibraryService = Depends(get_library_service)):
    """Distinct categories in the catalogue."""
    return library.books.categories()

@router.get("/stats", response_model=BookStats)
async def get_stats(library: LibraryService = Depends(get_library_service)):
    """Number of books in each status."""
    return BookStats(**library.books.stats())

@router.get("/mine", response_model=List[HeldBookResponse])
async def get_my_books(
    actor: Actor = Depends(get_current_actor),
    library: LibraryService = Depends(get_library_service)
):
    """Books the caller has borrowed, including ones awaiting return approval."""
    now = now_local()
    return [with_due_date(book, now) for book in library.books_held_by(actor)]

@router.get("/{book_id}", response_model=BookResponse)
async def get_book(book_id: int, library: LibraryService = Depends(get_library_service)):
    """Get book details by ID."""
    return BookResponse(**library.get_book(book_id).to_dict())

@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
def create_book(
    book_data: BookCreate,
    actor: Actor = Depends(get_current_actor),
    library: LibraryService = Depends(get_library_service)
):
    """Add a book to the catalogue (admin only). New books are available."""
    book = library.add_book(actor, book_data.model_dump(exclude_unset=True))
    return BookResponse(**book.to_dict())

@router.put("/{book_id}", response_model=BookResponse)
def update_book(
    book_id: int,
    patch: BookUpdate,
    actor: Actor = Depends(get_current_actor),
    library: LibraryService = Depends(get_library_service)
):
    """Edit a book's descriptive fields (admin only)."""
    book = library.update_book(actor, book_id, patch.model_dump(exclude_unset=True))
    return BookResponse(**book.to_dict())

@router.delete("/{book_id}")
def delete_book(
    book_id: int,
    actor: Actor = Depends(get_current_actor),
    library: LibraryService = Depends(get_library_service)
):
    """Delete a book (admin only). Its pending request, if any, is rejected."""
    closed = library.delete_book(actor, book_id)
    return {
        "message": "Book deleted successfully",
        "closedRequests": [request.request_id for request in closed],
    }
