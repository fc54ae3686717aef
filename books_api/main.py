"""
FastAPI main application for the Book Exchange Listings API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from books_api.auth import (
    InvalidCredentialsError, TokenAuthenticator, get_authenticator, verify_token
)
from books_api.config import config
from books_api.database import BookRepository, MongoConnection
from books_api.models import (
    AuthRequest, BookCreate, BookIdsRequest, BookListResponse, BookResponse,
    BookUpdate, BookValidationError, ErrorResponse, HealthResponse,
    MessageResponse, TokenResponse, field_errors
)
from books_api.query import MAX_PAGING_VALUE, ListingQuery, available_scope, owner_scope
from utilities.logger import RequestLogger, setup_logging

# Setup logging
logger = structlog.get_logger(__name__)

# Global database service
db_service: Optional[BookRepository] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug,
    )
    logger.info("Starting Book Exchange Listings API")

    global db_service
    connection = MongoConnection(
        config.mongodb_url, config.mongodb_database, config.mongodb_collection
    )
    try:
        await connection.connect()
        db_service = BookRepository(connection.collection, connection.database)
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    yield

    logger.info("Shutting down Book Exchange Listings API")
    db_service = None
    await connection.disconnect()


app = FastAPI(
    title=config.api_title,
    description="""
    A REST API for managing book-exchange listings.

    ## Features

    * **Listings**: Create, read, update and delete books offered for exchange
    * **Search**: Case-insensitive search over title, author and genre
    * **Scoped listings**: Paginated available-books and books-by-owner views

    ## Authentication

    Exchange the configured client identity for a token at `POST /api/books/auth`,
    then send it with every other request:

    ```
    Authorization: Bearer your_token_here
    ```

    Tokens expire after one hour.
    """,
    version=config.api_version,
    docs_url=config.docs_url,
    license_info={
        "name": "MIT",
        "url": "https://opensource.org/licenses/MIT",
    },
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=config.cors_allow_credentials,
    allow_methods=config.cors_allow_methods,
    allow_headers=config.cors_allow_headers,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Bind a request id into the log context and log every request."""
    with RequestLogger(request.method, request.url.path) as request_logger:
        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.log_failed(str(e))
            raise
        request_logger.log_completed(response.status_code)
        response.headers["X-Request-ID"] = request_logger.request_id
        return response


def error_response(status_code: int, message: str, detail=None, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            message=message,
            detail=detail,
            status_code=status_code
        ).model_dump(),
        headers=headers
    )


# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc: RequestValidationError):
    """Malformed bodies and query parameters are client errors (400)."""
    return error_response(
        status.HTTP_400_BAD_REQUEST, "Validation failed", field_errors(exc.errors())
    )


@app.exception_handler(BookValidationError)
async def book_validation_handler(request, exc: BookValidationError):
    """Handle book documents that fail schema validation."""
    return error_response(status.HTTP_400_BAD_REQUEST, "Validation failed", exc.errors)


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        str(exc) if config.debug else None,
    )


def get_db_service() -> BookRepository:
    """Database service dependency."""
    if not db_service:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database service not available"
        )
    return db_service


def listing_query(
    search: str = Query("", description="Search query for title, author, or genre"),
    page: int = Query(1, ge=1, le=MAX_PAGING_VALUE, description="Page number"),
    limit: Optional[int] = Query(None, ge=1, le=MAX_PAGING_VALUE, description="Number of results per page"),
) -> ListingQuery:
    return ListingQuery(search=search, page=page, limit=limit)


def page_or_not_found(result: BookListResponse) -> BookListResponse:
    """An empty page is reported as 404 unless configured otherwise."""
    if not result.books and config.empty_page_not_found:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No books found"
        )
    return result


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    db_status = "unavailable"
    if db_service:
        health_info = await db_service.health_check()
        db_status = health_info.get("status", "unknown")

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=config.api_version,
        database_status=db_status
    )


router = APIRouter(prefix=config.books_prefix, tags=["Books"])


@router.post("/auth", response_model=TokenResponse, tags=["Auth"])
async def issue_token(
    body: AuthRequest,
    authenticator: TokenAuthenticator = Depends(get_authenticator),
):
    """Exchange the configured client identity for a one-hour bearer token."""
    try:
        token = authenticator.issue_token(body.client_id)
    except InvalidCredentialsError:
        logger.warning("Invalid client credentials presented")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials"
        )
    return TokenResponse(token=token)


@router.post(
    "/",
    response_model=BookResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(verify_token)],
)
async def create_book(
    body: BookCreate,
    repository: BookRepository = Depends(get_db_service),
):
    """
    Create a new book listing.

    - **title**, **author**, **ownerId**: required
    - **genre**, **publishedYear**: optional
    """
    return await repository.create_book(body.to_fields())


@router.get(
    "/available-books/",
    response_model=BookListResponse,
    dependencies=[Depends(verify_token)],
)
@router.get(
    "/available-books",
    response_model=BookListResponse,
    dependencies=[Depends(verify_token)],
    include_in_schema=False,
)
async def list_available_books(
    query: ListingQuery = Depends(listing_query),
    repository: BookRepository = Depends(get_db_service),
):
    """
    Get available books with search and pagination, newest first.

    - **search**: Case-insensitive substring of title, author or genre
    - **page**: Page number (starts from 1)
    - **limit**: Books per page
    """
    result = await repository.list_books(available_scope(), query)
    return page_or_not_found(result)


@router.post(
    "/by-ids",
    response_model=List[BookResponse],
    dependencies=[Depends(verify_token)],
)
async def get_books_by_ids(
    body: BookIdsRequest,
    repository: BookRepository = Depends(get_db_service),
):
    """Get books by a list of IDs; unknown IDs are ignored."""
    if body.ids is None or not isinstance(body.ids, list):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid IDs array"
        )
    return await repository.get_books_by_ids(body.ids)


@router.get(
    "/",
    response_model=List[BookResponse],
    dependencies=[Depends(verify_token)],
)
async def get_all_books(repository: BookRepository = Depends(get_db_service)):
    """Get all books, newest first."""
    return await repository.get_all_books(config.list_all_max_results)


@router.get(
    "/owner/{owner_id}",
    response_model=BookListResponse,
    dependencies=[Depends(verify_token)],
)
async def list_owner_books(
    owner_id: str,
    query: ListingQuery = Depends(listing_query),
    repository: BookRepository = Depends(get_db_service),
):
    """
    Get the books listed by one owner with search and pagination, newest first.

    - **owner_id**: Owner identifier
    - **search**, **page**, **limit**: as for available books
    """
    result = await repository.list_books(owner_scope(owner_id), query)
    return page_or_not_found(result)


@router.get(
    "/{book_id}",
    response_model=BookResponse,
    dependencies=[Depends(verify_token)],
)
async def get_book(
    book_id: str,
    repository: BookRepository = Depends(get_db_service),
):
    """Get a single book by ID."""
    book = await repository.get_book_by_id(book_id)
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )
    return book


@router.put(
    "/{book_id}",
    response_model=BookResponse,
    dependencies=[Depends(verify_token)],
)
async def update_book(
    book_id: str,
    body: BookUpdate,
    repository: BookRepository = Depends(get_db_service),
):
    """Update some or all of a book's fields."""
    book = await repository.update_book(book_id, body.changes())
    if not book:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )
    return book


@router.delete(
    "/{book_id}",
    response_model=MessageResponse,
    dependencies=[Depends(verify_token)],
)
async def delete_book(
    book_id: str,
    repository: BookRepository = Depends(get_db_service),
):
    """Delete a book."""
    if not await repository.delete_book(book_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Book not found"
        )
    return MessageResponse(message="Book deleted successfully")


app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "books_api.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level=config.log_level.lower()
    )
