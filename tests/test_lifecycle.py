"""Tests for the pure lifecycle engine: one test per transition plus the
ways each one can be refused."""

from datetime import datetime
from types import SimpleNamespace

import pytest
import pytz

from bookies.exceptions import (
    ConsistencyFaultError,
    InvalidStateError,
    InvalidTransitionError,
    UnauthorizedError,
)
from bookies.models.enums import BookStatus, RequestStatus, RequestType
from bookies.services.lifecycle import (
    REQUIRED_FIELDS,
    TRANSITIONS,
    Actor,
    BookState,
    LifecycleEngine,
    check_invariants,
)

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=pytz.UTC)
EARLIER = datetime(2024, 4, 1, 9, 30, tzinfo=pytz.UTC)

ADMIN = Actor("admin@bookies.com", is_admin=True)
ALICE = Actor("a@x.com")
BOB = Actor("b@x.com")

AVAILABLE = BookState(BookStatus.AVAILABLE)
PENDING_REQUEST = BookState(BookStatus.PENDING_REQUEST, requested_by="a@x.com", request_date=EARLIER)
BORROWED = BookState(BookStatus.BORROWED, borrowed_by="a@x.com", borrowed_date=EARLIER)
PENDING_RETURN = BookState(
    BookStatus.PENDING_RETURN, borrowed_by="a@x.com", borrowed_date=EARLIER, return_request_date=EARLIER
)


def pending(request_type, user_email="a@x.com", status="PENDING"):
    return SimpleNamespace(request_type=request_type, status=status, user_email=user_email)


@pytest.fixture
def engine():
    return LifecycleEngine(clock=lambda: NOW)


class TestInvariants:
    @pytest.mark.parametrize("state", [AVAILABLE, PENDING_REQUEST, BORROWED, PENDING_RETURN])
    def test_valid_states_pass(self, state):
        check_invariants(state)

    def test_available_with_borrower_is_a_fault(self):
        with pytest.raises(ConsistencyFaultError):
            check_invariants(BookState(BookStatus.AVAILABLE, borrowed_by="a@x.com"))

    def test_borrowed_without_date_is_a_fault(self):
        with pytest.raises(ConsistencyFaultError):
            check_invariants(BookState(BookStatus.BORROWED, borrowed_by="a@x.com"))

    def test_pending_request_with_return_date_is_a_fault(self):
        state = BookState(
            BookStatus.PENDING_REQUEST, requested_by="a@x.com", request_date=NOW, return_request_date=NOW
        )
        with pytest.raises(ConsistencyFaultError):
            check_invariants(state)

    def test_every_status_has_a_field_rule(self):
        assert set(REQUIRED_FIELDS) == set(BookStatus)

    def test_table_covers_six_transitions(self):
        assert len(TRANSITIONS) == 6
        assert sum(t.admin_only for t in TRANSITIONS.values()) == 4


class TestSubmit:
    def test_request_borrow(self, engine):
        result = engine.submit(AVAILABLE, RequestType.BORROW, ALICE)

        assert result.book == BookState(BookStatus.PENDING_REQUEST, requested_by="a@x.com", request_date=NOW)
        assert result.request_status is RequestStatus.PENDING

    @pytest.mark.parametrize("state", [PENDING_REQUEST, BORROWED, PENDING_RETURN])
    def test_borrow_needs_available_book(self, engine, state):
        with pytest.raises(InvalidTransitionError):
            engine.submit(state, RequestType.BORROW, BOB)

    def test_request_return(self, engine):
        result = engine.submit(BORROWED, RequestType.RETURN, ALICE)

        assert result.book.status is BookStatus.PENDING_RETURN
        assert result.book.borrowed_by == "a@x.com"
        assert result.book.borrowed_date == EARLIER
        assert result.book.return_request_date == NOW

    def test_return_matches_borrower_case_insensitively(self, engine):
        result = engine.submit(BORROWED, RequestType.RETURN, Actor("A@X.com"))
        assert result.book.status is BookStatus.PENDING_RETURN

    def test_only_borrower_can_return(self, engine):
        with pytest.raises(UnauthorizedError):
            engine.submit(BORROWED, RequestType.RETURN, BOB)

    def test_admin_is_not_the_borrower_either(self, engine):
        with pytest.raises(UnauthorizedError):
            engine.submit(BORROWED, RequestType.RETURN, ADMIN)

    @pytest.mark.parametrize("state", [AVAILABLE, PENDING_REQUEST, PENDING_RETURN])
    def test_return_needs_borrowed_book(self, engine, state):
        with pytest.raises(InvalidTransitionError):
            engine.submit(state, RequestType.RETURN, ALICE)

    def test_corrupt_source_state_is_reported(self, engine):
        corrupt = BookState(BookStatus.AVAILABLE, requested_by="ghost@x.com")
        with pytest.raises(ConsistencyFaultError):
            engine.submit(corrupt, RequestType.BORROW, ALICE)


class TestResolve:
    def test_approve_borrow(self, engine):
        result = engine.resolve(PENDING_REQUEST, pending("BORROW"), RequestStatus.APPROVED, ADMIN)

        assert result.book == BookState(BookStatus.BORROWED, borrowed_by="a@x.com", borrowed_date=NOW)
        assert result.request_status is RequestStatus.APPROVED

    def test_reject_borrow(self, engine):
        result = engine.resolve(PENDING_REQUEST, pending("BORROW"), RequestStatus.REJECTED, ADMIN)

        assert result.book == AVAILABLE
        assert result.request_status is RequestStatus.REJECTED

    def test_approve_return(self, engine):
        result = engine.resolve(PENDING_RETURN, pending("RETURN"), RequestStatus.APPROVED, ADMIN)
        assert result.book == AVAILABLE

    def test_reject_return_keeps_borrower(self, engine):
        result = engine.resolve(PENDING_RETURN, pending("RETURN"), RequestStatus.REJECTED, ADMIN)
        assert result.book == BORROWED

    def test_non_admin_cannot_resolve(self, engine):
        with pytest.raises(UnauthorizedError):
            engine.resolve(PENDING_REQUEST, pending("BORROW"), RequestStatus.APPROVED, ALICE)

    @pytest.mark.parametrize("status", ["APPROVED", "REJECTED"])
    def test_resolved_request_cannot_be_resolved_again(self, engine, status):
        with pytest.raises(InvalidStateError):
            engine.resolve(PENDING_REQUEST, pending("BORROW", status=status), RequestStatus.APPROVED, ADMIN)

    def test_book_state_drift_is_a_consistency_fault(self, engine):
        with pytest.raises(ConsistencyFaultError):
            engine.resolve(BORROWED, pending("BORROW"), RequestStatus.APPROVED, ADMIN)

    def test_return_request_on_pending_request_book_is_a_fault(self, engine):
        with pytest.raises(ConsistencyFaultError):
            engine.resolve(PENDING_REQUEST, pending("RETURN"), RequestStatus.APPROVED, ADMIN)

    def test_requester_mismatch_is_a_fault(self, engine):
        with pytest.raises(ConsistencyFaultError):
            engine.resolve(PENDING_REQUEST, pending("BORROW", user_email="b@x.com"), RequestStatus.APPROVED, ADMIN)

    def test_pending_is_not_an_outcome(self, engine):
        with pytest.raises(ValueError):
            engine.resolve(PENDING_REQUEST, pending("BORROW"), RequestStatus.PENDING, ADMIN)


def test_full_cycle_returns_to_initial_state(engine):
    state = AVAILABLE
    state = engine.submit(state, RequestType.BORROW, ALICE).book
    state = engine.resolve(state, pending("BORROW"), RequestStatus.APPROVED, ADMIN).book
    state = engine.submit(state, RequestType.RETURN, ALICE).book
    state = engine.resolve(state, pending("RETURN"), RequestStatus.APPROVED, ADMIN).book

    assert state == AVAILABLE


def test_apply_to_overwrites_all_transient_fields():
    book = SimpleNamespace(
        status="pending_request", borrowed_by=None, borrowed_date=None,
        requested_by="a@x.com", request_date=EARLIER, return_request_date=None,
    )

    BORROWED.apply_to(book)

    assert book.status == "borrowed"
    assert book.requested_by is None
    assert book.request_date is None
    assert book.borrowed_by == "a@x.com"
