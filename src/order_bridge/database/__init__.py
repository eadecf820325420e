"""Database engine and repositories."""
