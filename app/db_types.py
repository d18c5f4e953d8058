"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import JSON, Numeric
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

# Use JSON instead of JSONB for cross-database compatibility
JSONType = JSON

# UUID type that works with both databases
UUIDType = PG_UUID

# Money and rate columns
Money = Numeric(14, 2)
Rate = Numeric(6, 4)
