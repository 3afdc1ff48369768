"""
Storage Package.

This package manages all ledger persistence.

Modules:
- database: Engine, sessions and transaction boundaries
- models/: ORM models
- repositories/: Data access layer
"""

from storage.database import (
    create_all_tables,
    create_database_engine,
    create_session_factory,
    read_scope,
    transaction_scope,
)

__all__ = [
    "create_all_tables",
    "create_database_engine",
    "create_session_factory",
    "read_scope",
    "transaction_scope",
]
