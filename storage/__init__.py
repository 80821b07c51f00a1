"""
Storage Package.

All persistence for the indexer.

Modules:
- database: Engine and session management
- encoding: Text encoding boundary for stored names
- models/: ORM models
- repositories/: Data access layer
"""

from storage.database import Database, DatabaseConnectionError, DatabaseInitializationError

__all__ = ["Database", "DatabaseConnectionError", "DatabaseInitializationError"]
