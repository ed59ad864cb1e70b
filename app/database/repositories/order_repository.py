import uuid
from collections.abc import Iterable
from typing import Any

from psycopg.rows import dict_row

from app.database.connection import get_connection
from app.database.exceptions import DataIntegrityError, TokenChargeUnavailable
from app.database.models import OrderRecord
from app.database.repositories.json_columns import decode_json, encode_json
from app.orders import state_machine
from app.pricing import price_cents

_COLUMNS = (
    "id, upload_ids, user_id, total_amount_cents, currency, status, "
    "payment_ref, notes, result, created_at, updated_at"
)


def new_order_id() -> str:
    return f"ord_{uuid.uuid4().hex[:16]}"


class OrderRepository:
    """Database operations for the orders table.

    Status changes are compare-and-swap updates: every transition names the
    statuses it may start from and reports whether a row actually moved.
    """

    def __init__(self, price_per_unit_cents: int, default_currency: str = "USD") -> None:
        self._price_per_unit_cents = price_per_unit_cents
        self._default_currency = default_currency

    def create_order(
        self,
        upload_ids: list[str],
        user_id: str | None = None,
        currency: str | None = None,
        notes: str | None = None,
    ) -> OrderRecord:
        """Insert a priced order in 'awaiting_payment' with an immutable upload set."""
        order_id = new_order_id()
        total = price_cents(len(upload_ids), self._price_per_unit_cents)
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO orders
                        (id, upload_ids, user_id, total_amount_cents, currency, status, notes)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_COLUMNS}
                    """,
                    (
                        order_id,
                        encode_json(list(upload_ids)),
                        user_id,
                        total,
                        currency or self._default_currency,
                        state_machine.AWAITING_PAYMENT,
                        notes or "",
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise DataIntegrityError(f"Insert of order {order_id} returned no row")
        return self._to_record(row)

    def get_order(self, order_id: str) -> OrderRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM orders WHERE id = %s", (order_id,))
                row = cur.fetchone()
        return self._to_record(row) if row is not None else None

    def list_orders(self) -> list[OrderRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM orders ORDER BY created_at DESC")
                rows = cur.fetchall()
        return [self._to_record(row) for row in rows]

    def list_orders_for_user(self, user_id: str, limit: int) -> list[OrderRecord]:
        """Return the user's orders, most recently updated first."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_COLUMNS} FROM orders
                    WHERE user_id = %s
                    ORDER BY updated_at DESC
                    LIMIT %s
                    """,
                    (user_id, limit),
                )
                rows = cur.fetchall()
        return [self._to_record(row) for row in rows]

    def find_order_by_payment_ref(self, payment_ref: str) -> OrderRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM orders WHERE payment_ref = %s LIMIT 1",
                    (payment_ref,),
                )
                row = cur.fetchone()
        return self._to_record(row) if row is not None else None

    def update_order_status(self, order_id: str, status: str) -> OrderRecord | None:
        """Move an order to `status` from any status the graph allows.

        Returns the updated order, or None if the order is missing or the
        transition is not allowed from its current status.
        """
        return self.transition_order_status(
            order_id, status, state_machine.sources_for(status)
        )

    def transition_order_status(
        self,
        order_id: str,
        status: str,
        from_statuses: Iterable[str],
    ) -> OrderRecord | None:
        """Compare-and-swap: set `status` only if the current status is in `from_statuses`."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE orders
                    SET status = %s, updated_at = NOW()
                    WHERE id = %s AND status = ANY(%s)
                    RETURNING {_COLUMNS}
                    """,
                    (status, order_id, list(from_statuses)),
                )
                row = cur.fetchone()
            conn.commit()
        return self._to_record(row) if row is not None else None

    def set_order_payment_ref(self, order_id: str, payment_ref: str) -> OrderRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE orders
                    SET payment_ref = %s, updated_at = NOW()
                    WHERE id = %s
                    RETURNING {_COLUMNS}
                    """,
                    (payment_ref, order_id),
                )
                row = cur.fetchone()
            conn.commit()
        return self._to_record(row) if row is not None else None

    def mark_order_payment_pending(
        self,
        order_id: str,
        payment_ref: str,
        from_statuses: Iterable[str],
    ) -> OrderRecord | None:
        """Store the gateway reference and move to 'payment_pending' in one statement."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE orders
                    SET payment_ref = %s, status = %s, updated_at = NOW()
                    WHERE id = %s AND status = ANY(%s)
                    RETURNING {_COLUMNS}
                    """,
                    (
                        payment_ref,
                        state_machine.PAYMENT_PENDING,
                        order_id,
                        list(from_statuses),
                    ),
                )
                row = cur.fetchone()
            conn.commit()
        return self._to_record(row) if row is not None else None

    def mark_order_paid(self, order_id: str, payment_ref: str) -> OrderRecord | None:
        """Set reference + 'paid' and enqueue the detection job in one transaction.

        Returns the paid order, or None when the order is missing or was not in a
        payable status (already paid, processing, completed, failed, cancelled).
        The detection job insert is a no-op if one already exists for the order.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                row = self._set_paid(cur, order_id, payment_ref)
                if row is None:
                    conn.rollback()
                    return None
                self._enqueue_detection(cur, order_id)
            conn.commit()
        return self._to_record(row)

    def mark_order_paid_with_tokens(
        self, order_id: str, payment_ref: str, user_id: str
    ) -> OrderRecord | None:
        """Like mark_order_paid, but also spends the token charge of every upload.

        Each upload must carry a charge by `user_id` that no other order has
        spent yet. Otherwise nothing is written and TokenChargeUnavailable is
        raised. Returns None when the order is not payable.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                row = self._set_paid(cur, order_id, payment_ref)
                if row is None:
                    conn.rollback()
                    return None
                upload_ids = sorted(set(self._to_record(row).upload_ids))
                cur.execute(
                    """
                    UPDATE uploads
                    SET metadata = (
                        metadata::jsonb || jsonb_build_object('tokenConsumedOrderId', %s::text)
                    )::text
                    WHERE id = ANY(%s)
                      AND metadata::jsonb ->> 'tokenChargedUserId' = %s
                      AND metadata::jsonb ->> 'tokenConsumedOrderId' IS NULL
                    """,
                    (order_id, upload_ids, user_id),
                )
                if cur.rowcount != len(upload_ids):
                    conn.rollback()
                    raise TokenChargeUnavailable(
                        f"Uploads of order {order_id} have no unspent token charge by this account"
                    )
                self._enqueue_detection(cur, order_id)
            conn.commit()
        return self._to_record(row)

    def set_order_result(self, order_id: str, result: dict[str, Any]) -> OrderRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE orders
                    SET result = %s, updated_at = NOW()
                    WHERE id = %s
                    RETURNING {_COLUMNS}
                    """,
                    (encode_json(result), order_id),
                )
                row = cur.fetchone()
            conn.commit()
        return self._to_record(row) if row is not None else None

    def update_order_user(self, order_id: str, user_id: str) -> OrderRecord | None:
        """Claim an anonymous order for `user_id`.

        The owner is set exactly once: the update only applies while user_id is
        NULL (or already equal). Returns None if the order is missing or owned by
        someone else.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE orders
                    SET user_id = %s, updated_at = NOW()
                    WHERE id = %s AND (user_id IS NULL OR user_id = %s)
                    RETURNING {_COLUMNS}
                    """,
                    (user_id, order_id, user_id),
                )
                row = cur.fetchone()
            conn.commit()
        return self._to_record(row) if row is not None else None

    @staticmethod
    def _set_paid(cur: Any, order_id: str, payment_ref: str) -> dict[str, Any] | None:
        cur.execute(
            f"""
            UPDATE orders
            SET payment_ref = %s, status = %s, updated_at = NOW()
            WHERE id = %s AND status = ANY(%s)
            RETURNING {_COLUMNS}
            """,
            (
                payment_ref,
                state_machine.PAID,
                order_id,
                list(state_machine.sources_for(state_machine.PAID)),
            ),
        )
        return cur.fetchone()

    @staticmethod
    def _enqueue_detection(cur: Any, order_id: str) -> None:
        cur.execute(
            """
            INSERT INTO detection_jobs (order_id, status, attempts)
            VALUES (%s, 'pending', 0)
            ON CONFLICT (order_id) DO NOTHING
            """,
            (order_id,),
        )

    @staticmethod
    def _to_record(row: dict[str, Any]) -> OrderRecord:
        upload_ids = decode_json(row["upload_ids"], "upload_ids", row["id"])
        if not isinstance(upload_ids, list):
            raise DataIntegrityError(f"Column 'upload_ids' for order {row['id']} is not a list")
        result = decode_json(row["result"], "result", row["id"])
        if result is not None and not isinstance(result, dict):
            raise DataIntegrityError(f"Column 'result' for order {row['id']} is not an object")
        return OrderRecord(
            id=row["id"],
            upload_ids=[str(upload_id) for upload_id in upload_ids],
            user_id=row["user_id"],
            total_amount_cents=row["total_amount_cents"],
            currency=row["currency"],
            status=row["status"],
            payment_ref=row["payment_ref"],
            notes=row["notes"] or "",
            result=result,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
