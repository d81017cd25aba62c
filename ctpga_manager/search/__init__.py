"""
Search helpers shared by list endpoints.

- Query parameter parsing into filter, pagination and sort specifications
- Translation of those specifications into SQLAlchemy statements
"""
