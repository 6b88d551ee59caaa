"""Database configuration and session management."""

from __future__ import annotations

import os
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

from utils.logger import setup_logger

Base = declarative_base()


class Database:
    """Database connection manager for the marketplace record store."""

    def __init__(self, config: dict, *, logger=None):
        """
        Initialize database connection.

        Args:
            config: Root configuration dict that may include:
                - database.url: Full SQLAlchemy URL (overrides other fields)
                - database.host/port/name/user/password: Connection pieces for PostgreSQL
                - database.echo: Enable SQL echo for debugging
        """
        self.config = config
        self.logger = logger or setup_logger(self.__class__.__name__)
        self._engine = None
        self._session_factory = None

    def get_engine(self):
        """Get or create SQLAlchemy engine."""
        if self._engine is None:
            db_config = self.config.get("database", {})

            conn_str = os.environ.get("DB_URL") or db_config.get("url")
            if not conn_str:
                host = os.environ.get("DB_HOST", db_config.get("host", "localhost"))
                port = os.environ.get("DB_PORT", db_config.get("port", 5432))
                name = os.environ.get("DB_NAME", db_config.get("name", "marketplace"))
                user = os.environ.get("DB_USER", db_config.get("user", "postgres"))
                password = os.environ.get("DB_PASSWORD", db_config.get("password", ""))
                conn_str = f"postgresql://{user}:{password}@{host}:{port}/{name}"

            engine_kwargs = {
                "pool_pre_ping": True,
                "echo": bool(db_config.get("echo", False)),
            }

            if conn_str.startswith("sqlite"):
                engine_kwargs["poolclass"] = NullPool
                engine_kwargs["connect_args"] = {"check_same_thread": False}
            else:
                engine_kwargs["pool_size"] = int(db_config.get("pool_size", 5))
                engine_kwargs["max_overflow"] = int(db_config.get("max_overflow", 10))

            self._engine = create_engine(conn_str, **engine_kwargs)

        return self._engine

    def get_session_factory(self):
        """Get or create session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.get_engine(),
                autocommit=False,
                autoflush=False,
            )
        return self._session_factory

    def get_session(self) -> Session:
        """Create a new database session."""
        return self.get_session_factory()()

    def create_tables(self) -> None:
        """Create all record tables."""
        # Model modules register their tables on Base when imported.
        from models import (  # noqa: F401
            account,
            activity_event,
            catalog_entry,
            order,
            sourcing_request,
            vendor_bid,
        )

        Base.metadata.create_all(bind=self.get_engine())

    def test_connection(self) -> bool:
        """Test if the database connection is working."""
        try:
            with self.get_engine().connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as exc:
            self.logger.error("Database connection test failed: %s", exc)
            return False

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        self._session_factory = None
