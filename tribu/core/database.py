"""Database configuration and session management for SQLite.

This module configures the SQLite database engine with settings suited to
a small web application: WAL mode for concurrent access and foreign key
enforcement for data integrity.

SQLite Configuration Choices:
    - **WAL (Write-Ahead Logging)**: Readers do not block the writer and the
      writer does not block readers. Subscribe calls, comment appends and
      the reminder sweep all write while other requests read event lists.

    - **Foreign Keys**: Disabled by default in SQLite. Enabled so that an
      Attendee or Comment can never point at a deleted Event.

    - **check_same_thread=False**: Required for FastAPI. Sessions created by
      a dependency may be used from a worker thread other than the one that
      opened the connection.

Capacity checks never rely on these settings alone: the attendance code
issues conditional UPDATE statements as the first statement of each write
transaction, so SQLite's single-writer lock serializes them per database.
"""

from datetime import UTC, datetime

from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from tribu.core.config import settings

# SQLite requires this for use with FastAPI's request handling. The default
# check_same_thread=True would raise errors when a connection created in one
# thread is used in another.
connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


@sa_event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    configure_sqlite_connection(dbapi_connection)


def configure_sqlite_connection(dbapi_connection) -> None:
    """Apply WAL journaling and foreign key enforcement to a raw connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables():
    """Create all database tables."""
    # Import models so their tables are registered on the metadata
    import tribu.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    SQLite drops tzinfo on storage, so datetimes read back from the database
    are naive but always hold UTC wall time. Naive input is treated the same
    way.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
