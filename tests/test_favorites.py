"""
Tests for the favorites endpoints.

Every endpoint requires authentication; favorites are scoped to the
current user.
"""

from fastapi import status
from fastapi.testclient import TestClient

from tests.conftest import bearer

FAVORITES_URL = "/api/v1/favorites"


class TestAddFavorite:
    """Tests for POST /api/v1/favorites."""

    def test_add_favorite(self, client: TestClient, sample_book, sample_user, auth_headers):
        response = client.post(FAVORITES_URL, json={"book_id": sample_book.id}, headers=auth_headers)

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Book added to favorites"
        assert body["data"]["favorite"]["book_id"] == sample_book.id
        assert body["data"]["favorite"]["user_id"] == sample_user.id
        assert body["data"]["book"]["google_books_id"] == sample_book.google_books_id

    def test_add_duplicate(self, client: TestClient, sample_book, auth_headers):
        client.post(FAVORITES_URL, json={"book_id": sample_book.id}, headers=auth_headers)

        response = client.post(FAVORITES_URL, json={"book_id": sample_book.id}, headers=auth_headers)

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.json() == {"success": False, "message": "Book is already in favorites"}

    def test_add_missing_book(self, client: TestClient, auth_headers):
        response = client.post(FAVORITES_URL, json={"book_id": 99999}, headers=auth_headers)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["errors"] == {"book_id": ["The selected book does not exist"]}

    def test_add_invalid_body(self, client: TestClient, auth_headers):
        response = client.post(FAVORITES_URL, json={"book_id": "abc"}, headers=auth_headers)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert "book_id" in response.json()["errors"]

    def test_add_requires_auth(self, client: TestClient, sample_book):
        response = client.post(FAVORITES_URL, json={"book_id": sample_book.id})

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["success"] is False


class TestListFavorites:
    """Tests for GET /api/v1/favorites."""

    def test_list_own_favorites_only(self, client: TestClient, multiple_books, sample_user, second_user, auth_headers):
        for book in multiple_books[:3]:
            client.post(FAVORITES_URL, json={"book_id": book.id}, headers=auth_headers)
        client.post(FAVORITES_URL, json={"book_id": multiple_books[5].id}, headers=bearer(second_user))

        response = client.get(FAVORITES_URL, headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["data"]
        assert data["pagination"]["total"] == 3
        assert {book["id"] for book in data["books"]} == {book.id for book in multiple_books[:3]}

    def test_list_paginated(self, client: TestClient, multiple_books, auth_headers):
        for book in multiple_books[:5]:
            client.post(FAVORITES_URL, json={"book_id": book.id}, headers=auth_headers)

        response = client.get(FAVORITES_URL, params={"per_page": 2, "page": 3}, headers=auth_headers)

        data = response.json()["data"]
        assert len(data["books"]) == 1
        assert data["pagination"]["total_pages"] == 3

    def test_list_requires_auth(self, client: TestClient):
        assert client.get(FAVORITES_URL).status_code == status.HTTP_401_UNAUTHORIZED


class TestToggleFavorite:
    """Tests for POST /api/v1/favorites/toggle."""

    def test_toggle_twice(self, client: TestClient, sample_book, auth_headers):
        url = f"{FAVORITES_URL}/toggle"

        first = client.post(url, json={"book_id": sample_book.id}, headers=auth_headers)
        second = client.post(url, json={"book_id": sample_book.id}, headers=auth_headers)

        assert first.json()["data"] == {"is_favorited": True}
        assert first.json()["message"] == "Book added to favorites"
        assert second.json()["data"] == {"is_favorited": False}
        assert second.json()["message"] == "Book removed from favorites"

        listing = client.get(FAVORITES_URL, headers=auth_headers).json()["data"]
        assert listing["books"] == []

    def test_toggle_missing_book(self, client: TestClient, auth_headers):
        response = client.post(f"{FAVORITES_URL}/toggle", json={"book_id": 99999}, headers=auth_headers)

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert "book_id" in response.json()["errors"]

    def test_toggle_refreshes_detail(self, client: TestClient, sample_book, auth_headers):
        detail_url = f"/api/v1/books/{sample_book.google_books_id}"
        assert client.get(detail_url, headers=auth_headers).json()["data"]["is_favorited"] is False

        client.post(f"{FAVORITES_URL}/toggle", json={"book_id": sample_book.id}, headers=auth_headers)
        response = client.get(detail_url, headers=auth_headers)

        assert response.headers["X-Cache-Status"] == "MISS"
        assert response.json()["data"]["is_favorited"] is True


class TestRemoveFavorite:
    """Tests for DELETE /api/v1/favorites/{book_id}."""

    def test_remove_favorite(self, client: TestClient, sample_book, auth_headers):
        client.post(FAVORITES_URL, json={"book_id": sample_book.id}, headers=auth_headers)

        response = client.delete(f"{FAVORITES_URL}/{sample_book.id}", headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"success": True, "message": "Book removed from favorites"}

    def test_remove_not_favorited(self, client: TestClient, sample_book, auth_headers):
        response = client.delete(f"{FAVORITES_URL}/{sample_book.id}", headers=auth_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["message"] == "Book is not in favorites"

    def test_cannot_remove_other_users_favorite(self, client: TestClient, sample_book, second_user, auth_headers):
        client.post(FAVORITES_URL, json={"book_id": sample_book.id}, headers=bearer(second_user))

        response = client.delete(f"{FAVORITES_URL}/{sample_book.id}", headers=auth_headers)

        assert response.status_code == status.HTTP_404_NOT_FOUND
