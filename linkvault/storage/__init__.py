"""Storage layer: asyncpg connection pool for the links table."""

from linkvault.storage.database import Database

__all__ = ["Database"]
