"""
Database setup.

Declarative ``Base``, engine/session factory and the portable column types
shared by all models. ``GUID`` and ``JSONType`` map to native PostgreSQL
types in production and to CHAR/JSON on SQLite (used by the test suite).
"""

import uuid

from sqlalchemy import CHAR, JSON, TypeDecorator, create_engine
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.orm import declarative_base, sessionmaker

from app.config import get_settings


class GUID(TypeDecorator):
    """Platform-independent GUID type."""
    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_UUID())
        return dialect.type_descriptor(CHAR(32))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        elif dialect.name == 'postgresql':
            return str(value)
        if not isinstance(value, uuid.UUID):
            return "%.32x" % uuid.UUID(value).int
        return "%.32x" % value.int

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(value)
        return value


JSONType = JSON().with_variant(JSONB(), "postgresql")

Base = declarative_base()

_settings = get_settings()
_connect_args = {"check_same_thread": False} if _settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(_settings.DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Yield a session and close it afterwards (request-scoped dependency)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
