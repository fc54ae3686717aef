"""
Tests for request and response models.
"""

import pytest
from pydantic import ValidationError

from books_api.models import (
    BookCreate, BookFields, BookListResponse, BookUpdate, BookValidationError,
    field_errors
)


class TestBookFields:
    """Test cases for book field validation."""

    def test_accepts_camel_case_and_defaults(self):
        fields = BookFields.model_validate(
            {"title": "Dune", "author": "Herbert", "ownerId": "u1", "publishedYear": 1965}
        )
        assert fields.is_available is True
        assert fields.genre is None
        assert fields.model_dump(by_alias=True) == {
            "title": "Dune",
            "author": "Herbert",
            "genre": None,
            "publishedYear": 1965,
            "ownerId": "u1",
            "isAvailable": True,
        }

    @pytest.mark.parametrize("missing", ["title", "author", "ownerId"])
    def test_required_fields(self, missing):
        data = {"title": "Dune", "author": "Herbert", "ownerId": "u1"}
        del data[missing]
        with pytest.raises(ValidationError):
            BookFields.model_validate(data)

    def test_ignores_store_fields(self, sample_book_doc):
        fields = BookFields.model_validate(sample_book_doc)
        assert "createdAt" not in fields.model_dump(by_alias=True)


class TestBookCreate:
    """Test cases for creation payloads."""

    def test_new_books_are_available(self):
        body = BookCreate.model_validate(
            {"title": "Dune", "author": "Herbert", "ownerId": "u1", "isAvailable": False}
        )
        assert body.to_fields().is_available is True

    def test_blank_required_field(self):
        body = BookCreate(title="Dune", author=" ", owner_id="u1")
        with pytest.raises(BookValidationError) as exc_info:
            body.to_fields()
        assert exc_info.value.errors == [{"field": "author", "message": "Value error, must not be blank"}]

    def test_published_year_must_be_integer(self):
        with pytest.raises(ValidationError):
            BookCreate.model_validate({"title": "Dune", "author": "Herbert", "ownerId": "u1", "publishedYear": "1965"})


class TestBookUpdate:
    """Test cases for partial updates."""

    def test_changes_only_include_sent_fields(self):
        update = BookUpdate.model_validate({"isAvailable": False, "genre": None})
        assert update.changes() == {"is_available": False, "genre": None}

    def test_empty_update(self):
        assert BookUpdate.model_validate({}).changes() == {}

    @pytest.mark.parametrize("body", [{"isAvailable": "yes"}, {"isAvailable": 1}, {"publishedYear": "1965"}])
    def test_rejects_coercible_strings_and_numbers(self, body):
        with pytest.raises(ValidationError):
            BookUpdate.model_validate(body)


def test_list_response_serializes_camel_case():
    response = BookListResponse(books=[], total_books=0, total_pages=0)
    assert response.model_dump(by_alias=True) == {"books": [], "totalBooks": 0, "totalPages": 0}


def test_field_errors_strip_location_prefix():
    errors = [
        {"loc": ("body", "title"), "msg": "Field required"},
        {"loc": ("query", "limit"), "msg": "Input should be greater than or equal to 1"},
        {"loc": ("body",), "msg": "Field required"},
    ]
    assert field_errors(errors) == [
        {"field": "title", "message": "Field required"},
        {"field": "limit", "message": "Input should be greater than or equal to 1"},
        {"field": "body", "message": "Field required"},
    ]
