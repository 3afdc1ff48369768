"""
Scripts Package.

This package contains operational scripts for the ledger.

Scripts:
- bootstrap_db: Database initialization and currency seeding
"""

# Run as modules: python -m scripts.bootstrap_db
