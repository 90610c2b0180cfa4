"""
Integration tests for the eavmigrate library.

These tests run the SQLAlchemy relation store and the full migration
pipeline against SQLite databases created in a temporary directory. They
are skipped automatically when aiosqlite is not installed.

Run integration tests:
    pytest tests/integration/ -v

Run only SQLite tests:
    pytest tests/ -v -m sqlite
"""
