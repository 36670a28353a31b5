"""Book lifecycle state machine.

Every legal status change of a book lives in ``TRANSITIONS``. The engine is
pure: it takes a snapshot of a book's lifecycle fields, the acting user and
(for admin decisions) the request being resolved, and returns the book's next
snapshot together with the status the request should end in. Persisting the
result is the caller's job.

    available --request borrow--> pending_request --approve--> borrowed
                                                   --reject---> available
    borrowed  --request return--> pending_return  --approve--> available
                                                   --reject---> borrowed
"""

import enum
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, Optional

from bookies.exceptions import (
    ConsistencyFaultError,
    InvalidStateError,
    InvalidTransitionError,
    UnauthorizedError,
)
from bookies.models.enums import BookStatus, RequestStatus, RequestType
from bookies.utils.timezone import now_local

logger = logging.getLogger(__name__)


class Action(str, enum.Enum):
    REQUEST_BORROW = "request_borrow"
    APPROVE_BORROW = "approve_borrow"
    REJECT_BORROW = "reject_borrow"
    REQUEST_RETURN = "request_return"
    APPROVE_RETURN = "approve_return"
    REJECT_RETURN = "reject_return"


@dataclass(frozen=True)
class Actor:
    """An authenticated caller as supplied by the identity layer."""

    email: str
    is_admin: bool = False

    def matches(self, email: Optional[str]) -> bool:
        return email is not None and self.email.casefold() == email.casefold()


@dataclass(frozen=True)
class BookState:
    """The lifecycle fields of a book, detached from the ORM row."""

    status: BookStatus
    borrowed_by: Optional[str] = None
    borrowed_date: Optional[datetime] = None
    requested_by: Optional[str] = None
    request_date: Optional[datetime] = None
    return_request_date: Optional[datetime] = None

    @classmethod
    def of(cls, book) -> "BookState":
        return cls(
            status=BookStatus(book.status),
            borrowed_by=book.borrowed_by,
            borrowed_date=book.borrowed_date,
            requested_by=book.requested_by,
            request_date=book.request_date,
            return_request_date=book.return_request_date,
        )

    def apply_to(self, book) -> None:
        book.status = self.status.value
        for field in TRANSIENT_FIELDS:
            setattr(book, field, getattr(self, field))


TRANSIENT_FIELDS = (
    "borrowed_by",
    "borrowed_date",
    "requested_by",
    "request_date",
    "return_request_date",
)

# Which transient fields must be set in each status; all others must be empty.
REQUIRED_FIELDS = {
    BookStatus.AVAILABLE: frozenset(),
    BookStatus.PENDING_REQUEST: frozenset({"requested_by", "request_date"}),
    BookStatus.BORROWED: frozenset({"borrowed_by", "borrowed_date"}),
    BookStatus.PENDING_RETURN: frozenset({"borrowed_by", "borrowed_date", "return_request_date"}),
}

# The pending book status that a PENDING request of each type implies.
PENDING_STATUS_FOR = {
    RequestType.BORROW: BookStatus.PENDING_REQUEST,
    RequestType.RETURN: BookStatus.PENDING_RETURN,
}


def check_invariants(state: BookState) -> None:
    """Raise ConsistencyFaultError if transient fields don't match the status."""
    present = frozenset(f for f in TRANSIENT_FIELDS if getattr(state, f) is not None)
    required = REQUIRED_FIELDS[state.status]
    if present != required:
        raise ConsistencyFaultError(
            f"Book in status '{state.status.value}' has fields {sorted(present)}, "
            f"expected {sorted(required)}"
        )


@dataclass(frozen=True)
class Transition:
    action: Action
    source: BookStatus
    request_type: RequestType
    outcome: RequestStatus  # PENDING for user submissions, terminal for admin decisions
    admin_only: bool
    effect: Callable[[BookState, Actor, datetime], BookState]


@dataclass(frozen=True)
class TransitionResult:
    book: BookState
    request_status: RequestStatus


def _request_borrow(state: BookState, actor: Actor, now: datetime) -> BookState:
    return BookState(BookStatus.PENDING_REQUEST, requested_by=actor.email, request_date=now)


def _approve_borrow(state: BookState, actor: Actor, now: datetime) -> BookState:
    return BookState(BookStatus.BORROWED, borrowed_by=state.requested_by, borrowed_date=now)


def _back_to_shelf(state: BookState, actor: Actor, now: datetime) -> BookState:
    return BookState(BookStatus.AVAILABLE)


def _request_return(state: BookState, actor: Actor, now: datetime) -> BookState:
    return replace(state, status=BookStatus.PENDING_RETURN, return_request_date=now)


def _reject_return(state: BookState, actor: Actor, now: datetime) -> BookState:
    return replace(state, status=BookStatus.BORROWED, return_request_date=None)


TRANSITIONS: Dict[Action, Transition] = {
    t.action: t
    for t in (
        Transition(Action.REQUEST_BORROW, BookStatus.AVAILABLE, RequestType.BORROW,
                   RequestStatus.PENDING, False, _request_borrow),
        Transition(Action.APPROVE_BORROW, BookStatus.PENDING_REQUEST, RequestType.BORROW,
                   RequestStatus.APPROVED, True, _approve_borrow),
        Transition(Action.REJECT_BORROW, BookStatus.PENDING_REQUEST, RequestType.BORROW,
                   RequestStatus.REJECTED, True, _back_to_shelf),
        Transition(Action.REQUEST_RETURN, BookStatus.BORROWED, RequestType.RETURN,
                   RequestStatus.PENDING, False, _request_return),
        Transition(Action.APPROVE_RETURN, BookStatus.PENDING_RETURN, RequestType.RETURN,
                   RequestStatus.APPROVED, True, _back_to_shelf),
        Transition(Action.REJECT_RETURN, BookStatus.PENDING_RETURN, RequestType.RETURN,
                   RequestStatus.REJECTED, True, _reject_return),
    )
}

SUBMIT_ACTIONS = {
    RequestType.BORROW: Action.REQUEST_BORROW,
    RequestType.RETURN: Action.REQUEST_RETURN,
}

RESOLVE_ACTIONS = {
    (RequestType.BORROW, RequestStatus.APPROVED): Action.APPROVE_BORROW,
    (RequestType.BORROW, RequestStatus.REJECTED): Action.REJECT_BORROW,
    (RequestType.RETURN, RequestStatus.APPROVED): Action.APPROVE_RETURN,
    (RequestType.RETURN, RequestStatus.REJECTED): Action.REJECT_RETURN,
}


class LifecycleEngine:
    """Validates and computes book lifecycle transitions."""

    def __init__(self, clock: Callable[[], datetime] = now_local):
        self.clock = clock

    def submit(self, state: BookState, request_type: RequestType, actor: Actor) -> TransitionResult:
        """A user asks to borrow or to return a book."""
        transition = TRANSITIONS[SUBMIT_ACTIONS[RequestType(request_type)]]

        if state.status != transition.source:
            raise InvalidTransitionError(
                f"Cannot {transition.action.value.replace('_', ' ')}: "
                f"book is {state.status.value}"
            )
        if transition.action is Action.REQUEST_RETURN and not actor.matches(state.borrowed_by):
            raise UnauthorizedError("Only the current borrower can return this book")

        return self._apply(transition, state, actor)

    def resolve(self, state: BookState, request, outcome: RequestStatus, actor: Actor) -> TransitionResult:
        """An admin approves or rejects a pending request.

        ``request`` is anything exposing ``request_type``, ``status`` and
        ``user_email``.
        """
        outcome = RequestStatus(outcome)
        if outcome is RequestStatus.PENDING:
            raise ValueError("A request can only be resolved as APPROVED or REJECTED")

        request_type = RequestType(request.request_type)
        transition = TRANSITIONS[RESOLVE_ACTIONS[(request_type, outcome)]]

        if transition.admin_only and not actor.is_admin:
            raise UnauthorizedError("Only administrators can approve or reject requests")
        if request.status != RequestStatus.PENDING.value:
            raise InvalidStateError(f"Request has already been processed ({request.status})")
        if state.status != transition.source:
            raise ConsistencyFaultError(
                f"Pending {request_type.value} request but book is {state.status.value}"
            )

        owner = state.requested_by if request_type is RequestType.BORROW else state.borrowed_by
        if owner is None or owner.casefold() != request.user_email.casefold():
            raise ConsistencyFaultError(
                f"Request belongs to {request.user_email} but book is held for {owner}"
            )

        return self._apply(transition, state, actor)

    def _apply(self, transition: Transition, state: BookState, actor: Actor) -> TransitionResult:
        check_invariants(state)
        new_state = transition.effect(state, actor, self.clock())
        check_invariants(new_state)
        logger.debug(
            f"{transition.action.value}: {state.status.value} -> {new_state.status.value} by {actor.email}"
        )
        return TransitionResult(book=new_state, request_status=transition.outcome)
