"""
FastAPI RESTful API for book-exchange listings.

This package provides a REST API for:
- Creating, reading, updating and deleting book listings
- Availability-scoped and owner-scoped paginated search
- Bearer token authentication for a single shared client identity
"""
