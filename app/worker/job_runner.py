from app.config.settings import Settings
from app.database.models import JobRecord
from app.database.repositories.job_repository import JobRepository
from app.database.repositories.order_repository import OrderRepository
from app.detection.dispatcher import DetectionDispatcher
from app.logging.logger import Log
from app.orders import state_machine


class JobRunner:
    """Run one detection job, catch exceptions, and apply retry logic.

    When a job exhausts its attempts the order is moved to 'failed' so it never
    sits in 'processing' indefinitely.
    """

    def __init__(
        self,
        dispatcher: DetectionDispatcher,
        job_repo: JobRepository,
        order_repo: OrderRepository,
        settings: Settings,
    ) -> None:
        self._dispatcher = dispatcher
        self._job_repo = job_repo
        self._order_repo = order_repo
        self._settings = settings

    def run(self, job: JobRecord) -> None:
        """Execute a single job with error handling."""
        Log.info(f"Running detection job {job.id} for order {job.order_id} (attempt {job.attempts + 1})")
        try:
            self._dispatcher.process(job.order_id)
            self._job_repo.mark_done(job.id)
            Log.info(f"Job {job.id} completed successfully")
        except Exception as exc:
            self._handle_failure(job, exc)

    def _handle_failure(self, job: JobRecord, exc: Exception) -> None:
        """Increment attempts; mark failed if at max, otherwise back to pending."""
        Log.error(f"Job {job.id} failed: {exc}")
        if job.attempts + 1 >= self._settings.max_job_attempts:
            self._job_repo.mark_failed(job.id, str(exc))
            self._order_repo.transition_order_status(
                job.order_id,
                state_machine.FAILED,
                (state_machine.PAID, state_machine.PROCESSING),
            )
            Log.error(
                f"Job {job.id} permanently failed after {job.attempts + 1} attempts; "
                f"order {job.order_id} marked failed"
            )
        else:
            self._job_repo.increment_attempts(job.id)
            Log.warning(f"Job {job.id} will be retried (attempt {job.attempts + 1})")
