"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, StrictBool, StrictInt, ValidationError, field_validator


class BookValidationError(Exception):
    """Raised when a book document fails schema validation."""

    def __init__(self, errors: List[Dict[str, str]]):
        self.errors = errors
        super().__init__("; ".join(f"{e['field']}: {e['message']}" for e in errors))

    @classmethod
    def from_pydantic(cls, exc: ValidationError) -> "BookValidationError":
        return cls(field_errors(exc.errors()))


def field_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """
    Flatten pydantic error entries into ``{field, message}`` pairs.

    Location prefixes added by FastAPI (``body``, ``query``, ``path``) are
    dropped so clients see plain field names.
    """
    result = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        result.append({
            "field": ".".join(loc) or "body",
            "message": error.get("msg", "Invalid value"),
        })
    return result


class BookFields(BaseModel):
    """
    The validated, persisted shape of a book listing.

    Used both for creation input and to re-validate a document after a
    partial update has been merged into it.
    """
    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Book author")
    genre: Optional[str] = Field(None, description="Book genre")
    published_year: Optional[StrictInt] = Field(None, alias="publishedYear", description="Year of publication")
    owner_id: str = Field(..., min_length=1, alias="ownerId", description="Identifier of the listing owner")
    is_available: StrictBool = Field(True, alias="isAvailable", description="Whether the book is available for exchange")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator('title', 'author', 'owner_id')
    @classmethod
    def validate_not_blank(cls, v):
        """Reject whitespace-only values for required text fields."""
        if not v.strip():
            raise ValueError('must not be blank')
        return v


class BookCreate(BaseModel):
    """Request body for creating a book."""
    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Book author")
    genre: Optional[str] = Field(None, description="Book genre")
    published_year: Optional[StrictInt] = Field(None, alias="publishedYear", description="Year of publication")
    owner_id: str = Field(..., min_length=1, alias="ownerId", description="Identifier of the listing owner")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    def to_fields(self) -> BookFields:
        """New listings always start out available."""
        try:
            return BookFields(**self.model_dump(), is_available=True)
        except ValidationError as e:
            raise BookValidationError.from_pydantic(e)


class BookUpdate(BaseModel):
    """Request body for a partial update; only the fields sent are applied."""
    title: Optional[str] = None
    author: Optional[str] = None
    genre: Optional[str] = None
    published_year: Optional[StrictInt] = Field(None, alias="publishedYear")
    owner_id: Optional[str] = Field(None, alias="ownerId")
    is_available: Optional[StrictBool] = Field(None, alias="isAvailable")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly present in the request, keyed by attribute name."""
        return self.model_dump(exclude_unset=True)


class BookResponse(BaseModel):
    """Book response model for API."""
    id: str = Field(..., description="Unique book identifier")
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Book author")
    genre: Optional[str] = Field(None, description="Book genre")
    published_year: Optional[int] = Field(None, alias="publishedYear", description="Year of publication")
    owner_id: str = Field(..., alias="ownerId", description="Identifier of the listing owner")
    is_available: bool = Field(True, alias="isAvailable", description="Whether the book is available for exchange")
    created_at: datetime = Field(..., alias="createdAt", description="Creation timestamp")
    updated_at: datetime = Field(..., alias="updatedAt", description="Last update timestamp")

    model_config = {"populate_by_name": True}


class BookListResponse(BaseModel):
    """Response model for a paginated book listing."""
    books: List[BookResponse] = Field(..., description="Books on the requested page")
    total_books: int = Field(..., alias="totalBooks", description="Number of books matching the query")
    total_pages: int = Field(..., alias="totalPages", description="Total number of pages")

    model_config = {"populate_by_name": True}


class BookIdsRequest(BaseModel):
    """Request body for fetching several books at once."""
    ids: Any = Field(None, description="List of book identifiers")


class AuthRequest(BaseModel):
    """Request body for token issuance."""
    client_id: Optional[str] = Field(None, alias="clientId", description="Client identity")

    model_config = {"populate_by_name": True}


class TokenResponse(BaseModel):
    """Issued bearer token."""
    token: str = Field(..., description="Signed bearer token")


class MessageResponse(BaseModel):
    """Plain confirmation message."""
    message: str = Field(..., description="Confirmation message")


class ErrorResponse(BaseModel):
    """Error response model."""
    message: str = Field(..., description="Error message")
    detail: Optional[Any] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
