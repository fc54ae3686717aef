"""
Database service layer for book listings.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import structlog
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import ConnectionFailure

from books_api.models import (
    BookFields, BookListResponse, BookResponse, BookValidationError
)
from books_api.query import LISTING_SORT, ListingQuery

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    """Current UTC time truncated to the millisecond precision MongoDB stores."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond - now.microsecond % 1000)


def parse_object_id(book_id: str) -> Optional[ObjectId]:
    """Return the ObjectId for ``book_id``, or None when it cannot be one."""
    try:
        return ObjectId(book_id)
    except (InvalidId, TypeError):
        return None


def to_document(fields: BookFields) -> Dict[str, Any]:
    """Convert validated fields to the stored (camelCase) document shape."""
    return fields.model_dump(by_alias=True)


def to_response(doc: Dict[str, Any]) -> BookResponse:
    """Convert a stored document to a BookResponse."""
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return BookResponse(**doc)


class MongoConnection:
    """
    Process-wide MongoDB connection.

    Opened once when the application starts and closed at shutdown; request
    handlers only ever see the repository built on top of it.
    """

    def __init__(self, connection_url: str, database_name: str, collection_name: str):
        self.connection_url = connection_url
        self.database_name = database_name
        self.collection_name = collection_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.collection: Optional[AsyncIOMotorCollection] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url, tz_aware=True)
            self.database = self.client[self.database_name]
            self.collection = self.database[self.collection_name]

            # Test connection
            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB",
                        database=self.database_name,
                        collection=self.collection_name)

            await self._create_indexes()

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            logger.info("Disconnected from MongoDB")

    async def _create_indexes(self) -> None:
        """Create indexes backing the listing queries."""
        try:
            await self.collection.create_index([("createdAt", -1), ("_id", -1)])
            await self.collection.create_index([("isAvailable", 1), ("createdAt", -1)])
            await self.collection.create_index([("ownerId", 1), ("createdAt", -1)])
            logger.info("Successfully created MongoDB indexes")
        except Exception as e:
            logger.error("Failed to create indexes", error=str(e))
            raise


class BookRepository:
    """Database service for book listing operations."""

    def __init__(self, collection: AsyncIOMotorCollection, database: Optional[AsyncIOMotorDatabase] = None):
        self.collection = collection
        self.database = database

    async def create_book(self, fields: BookFields) -> BookResponse:
        """
        Persist a new book.

        Args:
            fields: Validated book fields

        Returns:
            The stored book with its assigned id and timestamps
        """
        now = utc_now()
        doc = to_document(fields)
        doc["createdAt"] = now
        doc["updatedAt"] = now
        try:
            result = await self.collection.insert_one(doc)
        except Exception as e:
            logger.error("Failed to insert book", title=fields.title, error=str(e))
            raise
        doc["_id"] = result.inserted_id
        logger.info("Book created", book_id=str(result.inserted_id), owner_id=fields.owner_id)
        return to_response(doc)

    async def get_book_by_id(self, book_id: str) -> Optional[BookResponse]:
        """
        Get a single book by ID.

        Args:
            book_id: Book identifier

        Returns:
            BookResponse if found, None otherwise
        """
        object_id = parse_object_id(book_id)
        if object_id is None:
            return None
        try:
            doc = await self.collection.find_one({"_id": object_id})
        except Exception as e:
            logger.error("Failed to get book by ID", book_id=book_id, error=str(e))
            raise
        return to_response(doc) if doc else None

    async def get_all_books(self, max_results: Optional[int] = None) -> List[BookResponse]:
        """All books, newest first; capped at ``max_results`` when given."""
        try:
            cursor = self.collection.find({}).sort(LISTING_SORT)
            if max_results:
                cursor = cursor.limit(max_results)
            docs = await cursor.to_list(length=max_results)
        except Exception as e:
            logger.error("Failed to get all books", error=str(e))
            raise
        return [to_response(doc) for doc in docs]

    async def get_books_by_ids(self, book_ids: Iterable[Any]) -> List[BookResponse]:
        """
        Get every book whose id is in ``book_ids``, newest first.

        Unknown ids and values that are not valid ObjectIds are ignored.
        """
        object_ids = []
        for book_id in book_ids:
            object_id = parse_object_id(book_id) if isinstance(book_id, str) else None
            if object_id is not None:
                object_ids.append(object_id)
        if not object_ids:
            return []
        try:
            cursor = self.collection.find({"_id": {"$in": object_ids}}).sort(LISTING_SORT)
            docs = await cursor.to_list(length=None)
        except Exception as e:
            logger.error("Failed to get books by IDs", count=len(object_ids), error=str(e))
            raise
        return [to_response(doc) for doc in docs]

    async def list_books(self, scope: Dict[str, Any], query: ListingQuery) -> BookListResponse:
        """
        Get one page of books matching a scope clause and the search text.

        Args:
            scope: Mandatory scope clause (availability or ownership)
            query: Search and pagination parameters

        Returns:
            BookListResponse with the page, total matches and page count
        """
        filter_query = query.filter_for(scope)
        try:
            total = await self.collection.count_documents(filter_query)

            cursor = self.collection.find(filter_query).sort(LISTING_SORT).skip(query.skip)
            if query.limit is not None:
                cursor = cursor.limit(query.limit)
            docs = await cursor.to_list(length=query.limit)
        except Exception as e:
            logger.error("Failed to list books", error=str(e), scope=scope, query=query.model_dump())
            raise

        return BookListResponse(
            books=[to_response(doc) for doc in docs],
            total_books=total,
            total_pages=query.total_pages(total),
        )

    async def update_book(self, book_id: str, changes: Dict[str, Any]) -> Optional[BookResponse]:
        """
        Apply a partial update and return the updated book.

        The changes are merged into the stored document and the result is
        validated as a whole before anything is written.

        Args:
            book_id: Book identifier
            changes: Changed fields keyed by attribute name

        Returns:
            The updated book, or None if no book has this id

        Raises:
            BookValidationError: If the merged document is invalid
        """
        object_id = parse_object_id(book_id)
        if object_id is None:
            return None
        try:
            current = await self.collection.find_one({"_id": object_id})
        except Exception as e:
            logger.error("Failed to load book for update", book_id=book_id, error=str(e))
            raise
        if not current:
            return None

        merged = dict(current)
        for name, value in changes.items():
            merged[BookFields.model_fields[name].alias or name] = value
        try:
            fields = BookFields.model_validate(merged)
        except ValidationError as e:
            raise BookValidationError.from_pydantic(e)

        # Only the sent fields are written so concurrent partial updates to
        # other fields are not overwritten with stale values.
        stored = to_document(fields)
        update = {}
        for name in changes:
            alias = BookFields.model_fields[name].alias or name
            update[alias] = stored[alias]
        update["updatedAt"] = max(utc_now(), current["createdAt"])
        try:
            doc = await self.collection.find_one_and_update(
                {"_id": object_id},
                {"$set": update},
                return_document=ReturnDocument.AFTER,
            )
        except Exception as e:
            logger.error("Failed to update book", book_id=book_id, error=str(e))
            raise
        if not doc:
            return None
        logger.info("Book updated", book_id=book_id, fields=sorted(changes))
        return to_response(doc)

    async def delete_book(self, book_id: str) -> bool:
        """
        Delete a book.

        Returns:
            True if a book was deleted, False if no book has this id
        """
        object_id = parse_object_id(book_id)
        if object_id is None:
            return False
        try:
            doc = await self.collection.find_one_and_delete({"_id": object_id})
        except Exception as e:
            logger.error("Failed to delete book", book_id=book_id, error=str(e))
            raise
        if doc:
            logger.info("Book deleted", book_id=book_id)
        return doc is not None

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")
            books_count = await self.collection.count_documents({})
            return {
                "status": "healthy",
                "books_collection": "accessible",
                "books_count": books_count
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
