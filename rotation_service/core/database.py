# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
SQLAlchemy engine singleton and schema bootstrap.

Instants are stored as BIGINT epoch milliseconds so the same statements run on
PostgreSQL and SQLite.
"""

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from rotation_service.core.config import settings

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS rotation (
        id VARCHAR(36) PRIMARY KEY,
        workspace_id VARCHAR(255) NOT NULL,
        name VARCHAR(255) NOT NULL,
        anchor_at_ms BIGINT NOT NULL,
        shift_length VARCHAR(255) NOT NULL,
        notification_channel VARCHAR(255),
        deleted BOOLEAN NOT NULL DEFAULT FALSE,
        created_at_ms BIGINT NOT NULL,
        updated_at_ms BIGINT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS rotation_workspace_idx ON rotation (workspace_id)",
    """
    CREATE TABLE IF NOT EXISTS rotation_member (
        id VARCHAR(36) PRIMARY KEY,
        rotation_id VARCHAR(36) NOT NULL REFERENCES rotation (id) ON DELETE CASCADE,
        assignee_id VARCHAR(255) NOT NULL,
        position INTEGER NOT NULL,
        created_at_ms BIGINT NOT NULL,
        CONSTRAINT rotation_member_position_uq UNIQUE (rotation_id, position),
        CONSTRAINT rotation_member_assignee_uq UNIQUE (rotation_id, assignee_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rotation_override (
        id VARCHAR(36) PRIMARY KEY,
        rotation_id VARCHAR(36) NOT NULL REFERENCES rotation (id) ON DELETE CASCADE,
        assignee_id VARCHAR(255) NOT NULL,
        start_at_ms BIGINT NOT NULL,
        end_at_ms BIGINT NOT NULL,
        created_at_ms BIGINT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS rotation_override_range_idx
        ON rotation_override (rotation_id, start_at_ms, end_at_ms)
    """,
    """
    CREATE TABLE IF NOT EXISTS rotation_binding (
        id VARCHAR(36) PRIMARY KEY,
        rotation_id VARCHAR(36) NOT NULL REFERENCES rotation (id) ON DELETE CASCADE,
        entry_point_id VARCHAR(255) NOT NULL,
        created_at_ms BIGINT NOT NULL,
        CONSTRAINT rotation_binding_uq UNIQUE (rotation_id, entry_point_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS rotation_scheduler_state (
        rotation_id VARCHAR(36) PRIMARY KEY REFERENCES rotation (id) ON DELETE CASCADE,
        last_assignee VARCHAR(255),
        last_reason VARCHAR(50),
        observed BOOLEAN NOT NULL DEFAULT FALSE,
        updated_at_ms BIGINT NOT NULL
    )
    """,
)


def build_engine(url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=settings.POOL_SIZE,
        max_overflow=settings.MAX_OVERFLOW,
        pool_recycle=settings.POOL_RECYCLE,
    )


def init_schema(target: Engine) -> None:
    """Apply the DDL idempotently."""
    with target.begin() as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(text(statement))


engine = build_engine(settings.DATABASE_URL)
