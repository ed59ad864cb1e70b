"""Idempotent schema setup, run once at process start."""

from app.database.connection import get_connection
from app.logging.logger import Log

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS uploads (
        id TEXT PRIMARY KEY,
        filename TEXT NOT NULL,
        size BIGINT NOT NULL,
        mime TEXT NOT NULL,
        status TEXT NOT NULL,
        metadata TEXT NOT NULL DEFAULT '{}',
        data BYTEA,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id TEXT PRIMARY KEY,
        upload_ids TEXT NOT NULL,
        user_id TEXT,
        total_amount_cents INTEGER NOT NULL,
        currency TEXT NOT NULL,
        status TEXT NOT NULL,
        payment_ref TEXT,
        notes TEXT NOT NULL DEFAULT '',
        result TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        tokens INTEGER NOT NULL DEFAULT 0 CHECK (tokens >= 0),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS detection_jobs (
        id BIGSERIAL PRIMARY KEY,
        order_id TEXT NOT NULL UNIQUE REFERENCES orders (id) ON DELETE CASCADE,
        status TEXT NOT NULL DEFAULT 'pending',
        attempts INTEGER NOT NULL DEFAULT 0,
        error_message TEXT,
        locked_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS token_credits (
        reference TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
        tokens INTEGER NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_orders_user_updated ON orders (user_id, updated_at)",
    "CREATE INDEX IF NOT EXISTS idx_orders_payment_ref ON orders (payment_ref)",
    "CREATE INDEX IF NOT EXISTS idx_orders_status ON orders (status)",
    "CREATE INDEX IF NOT EXISTS idx_uploads_created ON uploads (created_at)",
    "CREATE INDEX IF NOT EXISTS idx_detection_jobs_status ON detection_jobs (status, created_at)",
)


def migrate() -> None:
    """Create all tables and indexes if they do not exist yet. Safe to call repeatedly."""
    with get_connection() as conn:
        with conn.cursor() as cur:
            for statement in SCHEMA_STATEMENTS:
                cur.execute(statement)
        conn.commit()
    Log.info(f"Schema ensured ({len(SCHEMA_STATEMENTS)} statements)")
