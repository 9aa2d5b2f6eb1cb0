import pytest
from fastapi.testclient import TestClient

from lending import api as api_module
from lending.config import settings
from lending.database import unit_of_work
from lending.user_store import UserDirectory

ADMIN_HEADERS = {"X-API-Key": settings.api_key}


@pytest.fixture
def client(db_file):
    # Point the app at the per-test database
    previous = api_module.app.state.db_file
    api_module.app.state.db_file = db_file
    try:
        yield TestClient(api_module.app)
    finally:
        api_module.app.state.db_file = previous


def _user(user_id):
    return {"X-User-Id": str(user_id)}


def _create(client, name="Dune", author="Frank Herbert", isbn="9780131101630", copies=2, year=1965):
    payload = {
        "name": name,
        "author": author,
        "issue_year": year,
        "isbn": isbn,
        "number_of_pieces": copies,
    }
    return client.post("/api/catalog", headers=ADMIN_HEADERS, json=payload)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["total_books"] == 0


def test_list_books_empty(client):
    response = client.get("/api/catalog")
    assert response.status_code == 200
    assert response.json() == {"items": [], "total_count": 0, "page_number": 1, "page_size": 10}


def test_create_book_with_valid_api_key(client):
    response = _create(client)
    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "Dune"
    assert body["number_of_pieces"] == 2

    fetched = client.get(f"/api/catalog/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["isbn"] == "9780131101630"


def test_create_book_with_invalid_api_key(client):
    response = client.post(
        "/api/catalog",
        headers={"X-API-Key": "invalid-key"},
        json={"name": "Dune", "author": "Frank Herbert", "issue_year": 1965, "isbn": "9780131101630"},
    )
    assert response.status_code == 403


def test_create_book_validation_errors(client):
    response = _create(client, name=" ", isbn="9780131101631", year=999)
    assert response.status_code == 422
    detail = response.json()["detail"]
    assert "Name is required" in detail
    assert "ISBN must be a valid ISBN-13 format" in detail
    assert "IssueYear must be greater than or equal to 1000" in detail


def test_create_duplicate_book_is_conflict(client):
    assert _create(client).status_code == 201
    response = _create(client)
    assert response.status_code == 409


def test_get_missing_book(client):
    response = client.get("/api/catalog/does-not-exist")
    assert response.status_code == 404
    assert response.json()["detail"] == "Book with ID 'does-not-exist' not found."


def test_list_books_with_search_and_paging(client):
    _create(client, "Harry Potter and the Chamber of Secrets", "J. K. Rowling", "9780747538493", 1)
    _create(client, "The Casual Vacancy", "J. K. Rowling", "9780316228534", 1)
    _create(client, "Dune", "Frank Herbert", "9780131101630", 1)

    response = client.get("/api/catalog", params={"search": "rowling, harry"})
    assert [b["name"] for b in response.json()["items"]] == ["Harry Potter and the Chamber of Secrets"]

    response = client.get("/api/catalog", params={"page_number": 0, "page_size": 500, "sort_by": "author"})
    body = response.json()
    assert body["page_number"] == 1
    assert body["page_size"] == 100
    assert [b["author"] for b in body["items"]] == ["Frank Herbert", "J. K. Rowling", "J. K. Rowling"]


def test_suggestions(client):
    _create(client, "Dune", "Frank Herbert", "9780131101630", 1)
    _create(client, "Dune Messiah", "Frank Herbert", "9781566199094", 1)

    assert client.get("/api/catalog/suggestions/names", params={"prefix": "du"}).json() == ["Dune", "Dune Messiah"]
    assert client.get("/api/catalog/suggestions/authors", params={"prefix": "FRA"}).json() == ["Frank Herbert"]
    assert client.get("/api/catalog/suggestions/names", params={"prefix": " "}).json() == []


def test_borrow_and_return_flow(client):
    book_id = _create(client, copies=1).json()["id"]

    response = client.post(f"/api/catalog/{book_id}/borrow", headers=_user(1))
    assert response.status_code == 200
    assert response.json()["message"] == "Book borrowed successfully"

    response = client.post(f"/api/catalog/{book_id}/borrow", headers=_user(2))
    assert response.status_code == 409
    assert response.json()["detail"].startswith("No available copies")

    status = client.get(f"/api/catalog/{book_id}/status", headers=_user(1)).json()
    assert status == {
        "book_id": book_id,
        "is_borrowed_by_user": True,
        "active_loan_count": 1,
        "available_count": 0,
    }

    response = client.post(f"/api/catalog/{book_id}/return", headers=_user(1))
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Book returned successfully"}

    response = client.post(f"/api/catalog/{book_id}/return", headers=_user(1))
    assert response.status_code == 409

    assert client.get(f"/api/catalog/{book_id}/available").json() == {"book_id": book_id, "available_count": 1}


def test_borrow_missing_book(client):
    response = client.post("/api/catalog/nope/borrow", headers=_user(1))
    assert response.status_code == 404


def test_borrow_requires_user_header(client):
    book_id = _create(client).json()["id"]
    response = client.post(f"/api/catalog/{book_id}/borrow")
    assert response.status_code == 422


def test_batch_status(client):
    book_id = _create(client).json()["id"]
    client.post(f"/api/catalog/{book_id}/borrow", headers=_user(1))

    response = client.post("/api/catalog/status/batch", headers=_user(1), json={"book_ids": [book_id, "nope"]})
    assert response.status_code == 200
    body = response.json()
    assert list(body) == [book_id]
    assert body[book_id]["available_count"] == 1

    response = client.post("/api/catalog/status/batch", headers=_user(1), json={"book_ids": []})
    assert response.json() == {}


def test_my_loans(client):
    first = _create(client, "Dune", isbn="9780131101630").json()["id"]
    second = _create(client, "Emma", "Jane Austen", isbn="9781566199094").json()["id"]
    client.post(f"/api/catalog/{first}/borrow", headers=_user(5))
    client.post(f"/api/catalog/{second}/borrow", headers=_user(5))
    client.post(f"/api/catalog/{first}/return", headers=_user(5))

    borrowed = client.get("/api/me/borrowed", headers=_user(5)).json()
    assert [i["name"] for i in borrowed] == ["Emma"]

    returned = client.get("/api/me/returned", headers=_user(5)).json()
    assert [i["name"] for i in returned] == ["Dune"]
    assert returned[0]["returned_date"] is not None

    history = client.get("/api/me/loan-history", headers=_user(5), params={"page_size": 1}).json()
    assert history["total_count"] == 2
    assert len(history["items"]) == 1


def test_admin_users(client, db_file):
    with unit_of_work(db_file) as conn:
        UserDirectory(conn).add("simpleUser", user_id=1)
        UserDirectory(conn).add("adminUser", user_id=2)
    book_id = _create(client).json()["id"]
    client.post(f"/api/catalog/{book_id}/borrow", headers=_user(1))

    response = client.get(
        "/api/admin/users",
        headers=ADMIN_HEADERS,
        params={"sort_by": "borrowedCount", "sort_direction": "desc"},
    )
    assert response.status_code == 200
    assert response.json() == [
        {"user_id": 1, "user_name": "simpleUser", "borrowed_count": 1, "returned_count": 0},
        {"user_id": 2, "user_name": "adminUser", "borrowed_count": 0, "returned_count": 0},
    ]


def test_admin_users_requires_api_key(client):
    response = client.get("/api/admin/users", headers={"X-API-Key": "wrong"})
    assert response.status_code == 403


def test_list_books_huge_page_number(client):
    _create(client)
    response = client.get("/api/catalog", params={"page_number": 10**18, "page_size": 100})
    assert response.status_code == 200
    assert response.json()["items"] == []
    assert response.json()["total_count"] == 1
