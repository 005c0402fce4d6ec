"""Entities organized by business concept.

Each entity package holds:
- entity.py: Domain model returned by repositories
- table.py: Database persistence model
- repository.py: Tenant-scoped data access layer
"""
