import uuid
from typing import Any

from psycopg.rows import dict_row

from app.core.exceptions import NotFound
from app.database.connection import get_connection
from app.database.exceptions import DataIntegrityError
from app.database.models import UserRecord

_COLUMNS = "id, email, tokens, created_at, updated_at"


def new_user_id() -> str:
    return f"usr_{uuid.uuid4().hex[:16]}"


class UserRepository:
    """Database operations for the users and token_credits tables.

    Every balance change is a single conditional UPDATE; there is no
    read-then-write path for tokens.
    """

    def get_user(self, user_id: str) -> UserRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM users WHERE id = %s", (user_id,))
                row = cur.fetchone()
        return self._to_record(row) if row is not None else None

    def get_user_by_email(self, email: str) -> UserRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM users WHERE email = %s",
                    (email.lower(),),
                )
                row = cur.fetchone()
        return self._to_record(row) if row is not None else None

    def create_user(self, email: str, tokens: int = 0) -> UserRecord:
        """Insert a user, or return the existing row if the email is already taken."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO users (id, email, tokens)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (email) DO UPDATE SET email = EXCLUDED.email
                    RETURNING {_COLUMNS}
                    """,
                    (new_user_id(), email.lower(), tokens),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise DataIntegrityError(f"Upsert of user {email} returned no row")
        return self._to_record(row)

    def ensure_token_floor(self, user_id: str, floor: int) -> UserRecord | None:
        """Raise the balance to `floor` if it is below it."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE users
                    SET tokens = GREATEST(tokens, %s), updated_at = NOW()
                    WHERE id = %s
                    RETURNING {_COLUMNS}
                    """,
                    (floor, user_id),
                )
                row = cur.fetchone()
            conn.commit()
        return self._to_record(row) if row is not None else None

    def deduct_tokens(self, user_id: str, amount: int) -> int | None:
        """Atomically subtract `amount` if the balance covers it.

        Returns the remaining balance, or None if the user is missing or the
        balance is insufficient (no row updated).
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE users
                    SET tokens = tokens - %s, updated_at = NOW()
                    WHERE id = %s AND tokens >= %s
                    RETURNING tokens
                    """,
                    (amount, user_id, amount),
                )
                row = cur.fetchone()
            conn.commit()
        return int(row[0]) if row is not None else None

    def credit_tokens(self, user_id: str, amount: int) -> UserRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE users
                    SET tokens = tokens + %s, updated_at = NOW()
                    WHERE id = %s
                    RETURNING {_COLUMNS}
                    """,
                    (amount, user_id),
                )
                row = cur.fetchone()
            conn.commit()
        return self._to_record(row) if row is not None else None

    def credit_tokens_once(
        self, user_id: str, amount: int, reference: str
    ) -> UserRecord | None:
        """Credit `amount` for a payment reference at most once.

        The reference row and the balance update commit together. Returns the
        updated user, or None if this reference was already credited. Raises
        NotFound, with nothing written, when the user does not exist.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    """
                    INSERT INTO token_credits (reference, user_id, tokens)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (reference) DO NOTHING
                    """,
                    (reference, user_id, amount),
                )
                if cur.rowcount == 0:
                    conn.rollback()
                    return None
                cur.execute(
                    f"""
                    UPDATE users
                    SET tokens = tokens + %s, updated_at = NOW()
                    WHERE id = %s
                    RETURNING {_COLUMNS}
                    """,
                    (amount, user_id),
                )
                row = cur.fetchone()
                if row is None:
                    conn.rollback()
                    raise NotFound(f"User {user_id} not found")
            conn.commit()
        return self._to_record(row)

    @staticmethod
    def _to_record(row: dict[str, Any]) -> UserRecord:
        return UserRecord(
            id=row["id"],
            email=row["email"],
            tokens=row["tokens"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
