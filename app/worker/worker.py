import signal
import time
from types import FrameType

from app.config.settings import Settings
from app.database.connection import get_connection
from app.database.models import JobRecord
from app.database.repositories.job_repository import JobRepository
from app.logging.logger import Log
from app.worker.job_runner import JobRunner
from app.worker.retention import RetentionSweeper


class Worker:
    """Detection worker loop.

    Claims one persisted detection job at a time and hands it to the JobRunner.
    While the queue is empty it runs the upload retention sweep and sleeps for
    the poll interval. SIGTERM and Ctrl-C stop the loop between jobs, never in
    the middle of one.
    """

    def __init__(
        self,
        job_repo: JobRepository,
        job_runner: JobRunner,
        settings: Settings,
        sweeper: RetentionSweeper | None = None,
    ) -> None:
        self._job_repo = job_repo
        self._job_runner = job_runner
        self._poll_interval = settings.job_poll_interval_seconds
        self._sweeper = sweeper
        self._stopping = False

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._on_signal)

    def stop(self) -> None:
        self._stopping = True

    def run(self, max_jobs: int | None = None) -> None:
        """Poll until stopped. With max_jobs set, return after that many jobs."""
        Log.info("Detection worker started", poll_interval=self._poll_interval)
        jobs_done = 0
        try:
            while not self._stopping:
                job = self._try_claim_job()
                if job is None:
                    self._idle()
                    continue
                self._job_runner.run(job)
                jobs_done += 1
                if max_jobs is not None and jobs_done >= max_jobs:
                    break
        except KeyboardInterrupt:
            pass
        Log.info("Detection worker stopped", jobs_done=jobs_done)

    def _try_claim_job(self) -> JobRecord | None:
        """Claim the next pending job; storage errors are logged and retried next tick."""
        try:
            with get_connection() as conn:
                return self._job_repo.claim_next_job(conn)
        except Exception as exc:
            Log.warning(f"Could not claim a detection job, will retry: {exc}")
            return None

    def _idle(self) -> None:
        if self._sweeper is not None:
            try:
                self._sweeper.maybe_run()
            except Exception as exc:
                Log.warning(f"Retention sweep failed, will retry: {exc}")
        Log.debug("No detection jobs pending, sleeping")
        time.sleep(self._poll_interval)

    def _on_signal(self, signum: int, frame: FrameType | None) -> None:
        Log.info("Shutdown requested", signal=signal.Signals(signum).name)
        self.stop()
