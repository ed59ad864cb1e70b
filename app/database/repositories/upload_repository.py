import uuid
from datetime import datetime
from typing import Any

from psycopg.rows import dict_row

from app.database.connection import get_connection
from app.database.exceptions import DataIntegrityError
from app.database.models import UploadRecord
from app.database.repositories.json_columns import decode_json, encode_json

UPLOAD_STATUSES = frozenset({"uploaded", "deleted", "expired"})

_COLUMNS = "id, filename, size, mime, status, metadata, data, created_at"


def new_upload_id() -> str:
    return f"upl_{uuid.uuid4().hex[:16]}"


class UploadRepository:
    """Database operations for the uploads table."""

    def create_upload(
        self,
        filename: str,
        size: int,
        mime: str,
        metadata: dict[str, Any] | None = None,
    ) -> UploadRecord:
        """Insert a new upload with status 'uploaded' and no payload."""
        upload_id = new_upload_id()
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO uploads (id, filename, size, mime, status, metadata)
                    VALUES (%s, %s, %s, %s, 'uploaded', %s)
                    RETURNING {_COLUMNS}
                    """,
                    (upload_id, filename, size, mime, encode_json(metadata or {})),
                )
                row = cur.fetchone()
            conn.commit()
        if row is None:
            raise DataIntegrityError(f"Insert of upload {upload_id} returned no row")
        return self._to_record(row)

    def get_upload(self, upload_id: str) -> UploadRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM uploads WHERE id = %s",
                    (upload_id,),
                )
                row = cur.fetchone()
        return self._to_record(row) if row is not None else None

    def list_uploads(self) -> list[UploadRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM uploads ORDER BY created_at")
                rows = cur.fetchall()
        return [self._to_record(row) for row in rows]

    def set_upload_status(self, upload_id: str, status: str) -> UploadRecord | None:
        if status not in UPLOAD_STATUSES:
            raise ValueError(f"Unknown upload status '{status}'")
        with get_connection() as conn:
            conn.execute(
                "UPDATE uploads SET status = %s WHERE id = %s",
                (status, upload_id),
            )
            conn.commit()
        return self.get_upload(upload_id)

    def set_upload_data(self, upload_id: str, payload: bytes) -> UploadRecord | None:
        """Attach the binary media payload to an existing upload."""
        with get_connection() as conn:
            conn.execute(
                "UPDATE uploads SET data = %s WHERE id = %s",
                (payload, upload_id),
            )
            conn.commit()
        return self.get_upload(upload_id)

    def merge_upload_metadata(self, upload_id: str, updates: dict[str, Any]) -> UploadRecord | None:
        """Merge `updates` into the stored metadata object in one statement."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE uploads
                    SET metadata = (metadata::jsonb || %s::jsonb)::text
                    WHERE id = %s
                    RETURNING {_COLUMNS}
                    """,
                    (encode_json(updates), upload_id),
                )
                row = cur.fetchone()
            conn.commit()
        return self._to_record(row) if row is not None else None

    def delete_upload(self, upload_id: str) -> bool:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM uploads WHERE id = %s", (upload_id,))
                deleted = cur.rowcount > 0
            conn.commit()
        return deleted

    def purge_orphan_uploads(self, older_than: datetime) -> int:
        """Delete uploads created before `older_than` that no order references.

        Returns the number of deleted rows.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    DELETE FROM uploads u
                    WHERE u.created_at < %s
                      AND NOT EXISTS (
                          SELECT 1 FROM orders o
                          WHERE o.upload_ids::jsonb ? u.id
                      )
                    """,
                    (older_than,),
                )
                deleted = cur.rowcount
            conn.commit()
        return deleted

    @staticmethod
    def _to_record(row: dict[str, Any]) -> UploadRecord:
        data = row.get("data")
        return UploadRecord(
            id=row["id"],
            filename=row["filename"],
            size=row["size"],
            mime=row["mime"],
            status=row["status"],
            created_at=row["created_at"],
            data=bytes(data) if data is not None else None,
            metadata=decode_json(row["metadata"], "metadata", row["id"]) or {},
        )
