"""Persistence layer: SQLAlchemy models and session management."""
