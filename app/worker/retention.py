from datetime import datetime, timedelta, timezone

from app.database.repositories.upload_repository import UploadRepository
from app.logging.logger import Log


class RetentionSweeper:
    """Deletes uploads that no order references once they outlive the retention window."""

    def __init__(
        self,
        upload_repo: UploadRepository,
        retention_hours: int,
        interval_seconds: int = 3600,
    ) -> None:
        self._upload_repo = upload_repo
        self._retention = timedelta(hours=retention_hours)
        self._interval = timedelta(seconds=interval_seconds)
        self._last_run: datetime | None = None

    def maybe_run(self, now: datetime | None = None) -> int:
        """Run the sweep if the interval elapsed. Returns the number of deleted uploads."""
        now = now or datetime.now(timezone.utc)
        if self._last_run is not None and now - self._last_run < self._interval:
            return 0
        self._last_run = now
        deleted = self._upload_repo.purge_orphan_uploads(now - self._retention)
        if deleted:
            Log.info(f"Retention sweep deleted {deleted} orphaned upload(s)")
        return deleted
