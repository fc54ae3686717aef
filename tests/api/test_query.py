"""
Unit tests for listing query construction.
"""

import re

import pytest
from pydantic import ValidationError
from pymongo import DESCENDING

from books_api.query import (
    LISTING_SORT, MAX_PAGING_VALUE, ListingQuery, available_scope, build_listing_filter,
    build_search_clause, owner_scope
)


def test_scopes():
    assert available_scope() == {"isAvailable": True}
    assert owner_scope("u1") == {"ownerId": "u1"}


def test_search_clause_covers_title_author_genre():
    clause = build_search_clause("dune")
    assert clause == {
        "$or": [
            {"title": {"$regex": "dune", "$options": "i"}},
            {"author": {"$regex": "dune", "$options": "i"}},
            {"genre": {"$regex": "dune", "$options": "i"}},
        ]
    }


def test_search_clause_escapes_regex_metacharacters():
    pattern = build_search_clause("C++ (2nd ed.)")["$or"][0]["title"]["$regex"]
    assert re.search(pattern, "Learning C++ (2nd ed.)")
    assert not re.search(pattern, "C (2nd edX)")


def test_empty_search_matches_everything():
    pattern = build_search_clause("")["$or"][0]["title"]["$regex"]
    assert pattern == ""
    assert re.search(pattern, "anything")
    assert build_search_clause(None)["$or"][0]["title"]["$regex"] == ""


def test_listing_filter_is_conjunction():
    listing_filter = build_listing_filter(owner_scope("u7"), "tolkien")
    assert listing_filter["$and"][0] == {"ownerId": "u7"}
    assert listing_filter["$and"][1] == build_search_clause("tolkien")


def test_sort_is_newest_first():
    assert LISTING_SORT[0] == ("createdAt", DESCENDING)


@pytest.mark.parametrize("page,limit,skip", [(1, 10, 0), (2, 10, 10), (5, 3, 12)])
def test_skip(page, limit, skip):
    assert ListingQuery(page=page, limit=limit).skip == skip


@pytest.mark.parametrize("total,limit,pages", [(0, 10, 0), (1, 10, 1), (10, 10, 1), (11, 10, 2), (7, 3, 3)])
def test_total_pages(total, limit, pages):
    assert ListingQuery(limit=limit).total_pages(total) == pages


def test_unbounded_query():
    query = ListingQuery(page=3)
    assert query.skip == 0
    assert query.total_pages(0) == 0
    assert query.total_pages(42) == 1


def test_defaults():
    query = ListingQuery()
    assert (query.search, query.page, query.limit) == ("", 1, None)


@pytest.mark.parametrize("kwargs", [
    {"page": 0}, {"limit": 0}, {"limit": -5},
    {"page": MAX_PAGING_VALUE + 1}, {"limit": MAX_PAGING_VALUE + 1},
])
def test_rejects_out_of_range_values(kwargs):
    with pytest.raises(ValidationError):
        ListingQuery(**kwargs)
