"""
Listing query construction for paginated book searches.

Both paginated listings (available books and books by owner) share one
filter shape: a mandatory scope clause AND a case-insensitive substring
match across title, author and genre.
"""

import math
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field
from pymongo import DESCENDING

SEARCH_FIELDS = ("title", "author", "genre")

# Keeps skip = (page - 1) * limit inside a BSON int64.
MAX_PAGING_VALUE = 2**31 - 1

# Newest first; _id breaks ties between books created in the same millisecond.
LISTING_SORT: List[Tuple[str, int]] = [("createdAt", DESCENDING), ("_id", DESCENDING)]


def available_scope() -> Dict[str, Any]:
    """Scope clause for books open for exchange."""
    return {"isAvailable": True}


def owner_scope(owner_id: str) -> Dict[str, Any]:
    """Scope clause for books listed by one owner."""
    return {"ownerId": owner_id}


def build_search_clause(search: str) -> Dict[str, Any]:
    """
    Build the text clause matching ``search`` as a substring of any search field.

    The search string is escaped, so it is matched literally rather than as a
    regular expression. An empty string matches every document.
    """
    pattern = re.escape(search or "")
    return {
        "$or": [
            {field: {"$regex": pattern, "$options": "i"}}
            for field in SEARCH_FIELDS
        ]
    }


def build_listing_filter(scope: Dict[str, Any], search: str = "") -> Dict[str, Any]:
    """Combine a scope clause with the text clause."""
    return {"$and": [scope, build_search_clause(search)]}


class ListingQuery(BaseModel):
    """Search and pagination parameters for a listing request."""
    search: str = Field("", description="Case-insensitive substring matched on title, author or genre")
    page: int = Field(1, ge=1, le=MAX_PAGING_VALUE, description="Page number (starts from 1)")
    limit: Optional[int] = Field(None, ge=1, le=MAX_PAGING_VALUE, description="Books per page; omit for a single unbounded page")

    @property
    def skip(self) -> int:
        if self.limit is None:
            return 0
        return (self.page - 1) * self.limit

    def total_pages(self, total: int) -> int:
        """Number of pages needed to hold ``total`` matches."""
        if self.limit is None:
            return 1 if total > 0 else 0
        return math.ceil(total / self.limit)

    def filter_for(self, scope: Dict[str, Any]) -> Dict[str, Any]:
        return build_listing_filter(scope, self.search)
