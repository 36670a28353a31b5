import inspect

import pytest
from fastapi import status
from fastapi.routing import APIRoute

from bookies.main import app


@pytest.fixture
def book_id(client, admin_headers):
    response = client.post(
        "/api/books", json={"title": "Dune", "author": "Frank Herbert"}, headers=admin_headers
    )
    return response.json()["id"]


def submit(client, headers, book_id, request_type="BORROW", **extra):
    return client.post(
        "/api/book-requests", json={"bookId": book_id, "requestType": request_type, **extra}, headers=headers
    )


def test_borrow_approve_return_approve(client, book_id, admin_headers, alice_headers):
    response = submit(client, alice_headers, book_id, notes="weekend reading")
    assert response.status_code == status.HTTP_201_CREATED
    body = response.json()
    assert body["message"] == "Borrow request submitted"
    assert body["book"]["status"] == "pending_request"
    assert body["book"]["requestedBy"] == "a@x.com"
    assert body["request"]["status"] == "PENDING"
    assert body["request"]["bookTitle"] == "Dune"
    assert body["request"]["bookAuthor"] == "Frank Herbert"

    response = client.post(f"/api/book-requests/{body['request']['id']}/approve", headers=admin_headers)
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["message"] == "Request approved successfully"
    assert body["book"]["status"] == "borrowed"
    assert body["book"]["borrowedBy"] == "a@x.com"
    assert body["book"]["requestedBy"] is None
    assert body["request"]["processedBy"] == "admin@bookies.com"

    response = submit(client, alice_headers, book_id, "RETURN")
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["message"] == "Return request submitted"
    assert response.json()["book"]["status"] == "pending_return"

    response = client.post(
        f"/api/book-requests/{response.json()['request']['id']}/approve", headers=admin_headers
    )
    assert response.json()["book"]["status"] == "available"
    assert response.json()["book"]["borrowedBy"] is None


def test_reject_with_notes(client, book_id, admin_headers, alice_headers):
    request_id = submit(client, alice_headers, book_id).json()["request"]["id"]

    response = client.post(
        f"/api/book-requests/{request_id}/reject", json={"notes": "Reserved"}, headers=admin_headers
    )

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["message"] == "Request rejected successfully"
    assert response.json()["request"]["status"] == "REJECTED"
    assert response.json()["request"]["notes"] == "Reserved"
    assert response.json()["book"]["status"] == "available"


def test_second_request_conflicts(client, book_id, alice_headers, bob_headers):
    submit(client, alice_headers, book_id)

    response = submit(client, bob_headers, book_id)

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"] == "conflict"


def test_non_borrower_return_is_refused(client, book_id, admin_headers, alice_headers, bob_headers):
    request_id = submit(client, alice_headers, book_id).json()["request"]["id"]
    client.post(f"/api/book-requests/{request_id}/approve", headers=admin_headers)

    response = submit(client, bob_headers, book_id, "RETURN")

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error"] == "unauthorized"
    assert client.get(f"/api/books/{book_id}").json()["borrowedBy"] == "a@x.com"


def test_return_of_available_book_is_invalid(client, book_id, alice_headers):
    response = submit(client, alice_headers, book_id, "RETURN")

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"] == "invalid_transition"


def test_request_on_behalf_of_someone_else(client, book_id, alice_headers):
    response = submit(client, alice_headers, book_id, userEmail="b@x.com")

    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert client.get(f"/api/books/{book_id}").json()["status"] == "available"


def test_user_email_matching_caller_is_accepted(client, book_id, alice_headers):
    response = submit(client, alice_headers, book_id, userEmail="A@X.COM")
    assert response.status_code == status.HTTP_201_CREATED


def test_unknown_request_type(client, book_id, alice_headers):
    assert submit(client, alice_headers, book_id, "RENEW").status_code == 422


def test_unknown_book(client, alice_headers):
    response = submit(client, alice_headers, 999)
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_approve_unknown_and_already_approved(client, book_id, admin_headers, alice_headers):
    assert client.post("/api/book-requests/999/approve", headers=admin_headers).status_code == 404

    request_id = submit(client, alice_headers, book_id).json()["request"]["id"]
    client.post(f"/api/book-requests/{request_id}/approve", headers=admin_headers)

    response = client.post(f"/api/book-requests/{request_id}/approve", headers=admin_headers)
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["error"] == "invalid_state"


def test_user_cannot_approve(client, book_id, alice_headers):
    request_id = submit(client, alice_headers, book_id).json()["request"]["id"]

    response = client.post(f"/api/book-requests/{request_id}/approve", headers=alice_headers)

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_pending_queue(client, admin_headers, alice_headers, bob_headers):
    ids = [
        client.post("/api/books", json={"title": title, "author": "Anon"}, headers=admin_headers).json()["id"]
        for title in ("Dune", "Emma")
    ]
    first = submit(client, alice_headers, ids[0]).json()["request"]["id"]
    second = submit(client, bob_headers, ids[1]).json()["request"]["id"]

    response = client.get("/api/book-requests/pending", headers=admin_headers)

    assert response.status_code == status.HTTP_200_OK
    assert [r["id"] for r in response.json()] == [first, second]
    assert client.get("/api/book-requests/pending", headers=alice_headers).status_code == 403


def test_user_history(client, book_id, admin_headers, alice_headers, bob_headers):
    request_id = submit(client, alice_headers, book_id).json()["request"]["id"]
    client.post(f"/api/book-requests/{request_id}/reject", headers=admin_headers)
    submit(client, alice_headers, book_id)

    history = client.get("/api/book-requests/user/a@x.com", headers=alice_headers).json()

    assert [r["status"] for r in history] == ["PENDING", "REJECTED"]
    assert client.get("/api/book-requests/user/a@x.com", headers=admin_headers).status_code == 200
    assert client.get("/api/book-requests/user/a@x.com", headers=bob_headers).status_code == 403


def test_get_request(client, book_id, alice_headers, bob_headers):
    request_id = submit(client, alice_headers, book_id).json()["request"]["id"]

    assert client.get(f"/api/book-requests/{request_id}", headers=alice_headers).json()["userEmail"] == "a@x.com"
    assert client.get(f"/api/book-requests/{request_id}", headers=bob_headers).status_code == 403
    assert client.get("/api/book-requests/999", headers=alice_headers).status_code == 404


def test_requests_require_login(client, book_id):
    response = client.post("/api/book-requests", json={"bookId": book_id, "requestType": "BORROW"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_mutating_endpoints_run_in_threadpool():
    """Book-locking endpoints must not block the event loop."""
    mutating = {
        ("POST", "/api/books"),
        ("PUT", "/api/books/{book_id}"),
        ("DELETE", "/api/books/{book_id}"),
        ("POST", "/api/book-requests"),
        ("POST", "/api/book-requests/{request_id}/approve"),
        ("POST", "/api/book-requests/{request_id}/reject"),
    }
    found = set()
    for route in app.routes:
        if not isinstance(route, APIRoute):
            continue
        for method in route.methods:
            if (method, route.path) in mutating:
                found.add((method, route.path))
                assert not inspect.iscoroutinefunction(route.endpoint), route.path

    assert found == mutating
