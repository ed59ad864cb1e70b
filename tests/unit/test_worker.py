from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

from app.database.models import JobRecord
from app.worker.retention import RetentionSweeper
from app.worker.worker import Worker


def _make_worker(sweeper: MagicMock | None = None) -> tuple[Worker, MagicMock, MagicMock]:
    """Create a Worker with mocked dependencies."""
    mock_repo = MagicMock()
    mock_runner = MagicMock()
    settings = MagicMock(job_poll_interval_seconds=1)
    worker = Worker(mock_repo, mock_runner, settings, sweeper)
    return worker, mock_repo, mock_runner


def _make_job(job_id: int = 1) -> JobRecord:
    return JobRecord(id=job_id, order_id="ord_1", status="processing", attempts=0)


class TestWorkerDispatch:
    def test_dispatches_job_to_runner(self) -> None:
        worker, _repo, mock_runner = _make_worker()
        job = _make_job()

        with patch.object(
            worker, "_try_claim_job", side_effect=[job, KeyboardInterrupt]
        ):
            worker.run()

        mock_runner.run.assert_called_once_with(job)

    def test_stops_after_max_jobs(self) -> None:
        worker, _repo, mock_runner = _make_worker()

        with patch.object(
            worker, "_try_claim_job", side_effect=[_make_job(1), _make_job(2), _make_job(3)]
        ):
            worker.run(max_jobs=2)

        assert mock_runner.run.call_count == 2


class TestWorkerIdle:
    def test_sleeps_when_no_job(self) -> None:
        worker, _repo, _runner = _make_worker()

        with (
            patch.object(
                worker, "_try_claim_job", side_effect=[None, KeyboardInterrupt]
            ),
            patch("app.worker.worker.time.sleep") as mock_sleep,
        ):
            worker.run()

        mock_sleep.assert_called_once_with(1)

    def test_runs_retention_sweep_when_idle(self) -> None:
        sweeper = MagicMock()
        worker, _repo, _runner = _make_worker(sweeper)

        with (
            patch.object(worker, "_try_claim_job", side_effect=[None, KeyboardInterrupt]),
            patch("app.worker.worker.time.sleep"),
        ):
            worker.run()

        sweeper.maybe_run.assert_called_once()

    def test_sweep_failure_does_not_stop_worker(self) -> None:
        sweeper = MagicMock()
        sweeper.maybe_run.side_effect = Exception("db down")
        worker, _repo, _runner = _make_worker(sweeper)

        with (
            patch.object(worker, "_try_claim_job", side_effect=[None, None, KeyboardInterrupt]),
            patch("app.worker.worker.time.sleep") as mock_sleep,
        ):
            worker.run()

        assert mock_sleep.call_count == 2


class TestWorkerClaim:
    @patch("app.worker.worker.get_connection")
    def test_database_error_returns_none(self, mock_get_conn: MagicMock) -> None:
        mock_get_conn.side_effect = Exception("connection refused")
        worker, _repo, _runner = _make_worker()

        assert worker._try_claim_job() is None


class TestWorkerShutdown:
    def test_handles_keyboard_interrupt(self) -> None:
        worker, _repo, _runner = _make_worker()

        with patch.object(
            worker, "_try_claim_job", side_effect=KeyboardInterrupt
        ):
            worker.run()  # Should not raise


class TestRetentionSweeper:
    def test_purges_with_retention_cutoff(self) -> None:
        upload_repo = MagicMock()
        upload_repo.purge_orphan_uploads.return_value = 2
        sweeper = RetentionSweeper(upload_repo, retention_hours=24)
        now = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)

        deleted = sweeper.maybe_run(now)

        upload_repo.purge_orphan_uploads.assert_called_once_with(now - timedelta(hours=24))
        assert deleted == 2

    def test_respects_interval(self) -> None:
        upload_repo = MagicMock()
        upload_repo.purge_orphan_uploads.return_value = 0
        sweeper = RetentionSweeper(upload_repo, retention_hours=24, interval_seconds=3600)
        now = datetime(2026, 3, 1, 12, tzinfo=timezone.utc)

        sweeper.maybe_run(now)
        skipped = sweeper.maybe_run(now + timedelta(minutes=30))
        sweeper.maybe_run(now + timedelta(hours=2))

        assert skipped == 0
        assert upload_repo.purge_orphan_uploads.call_count == 2


class TestWorkerStop:
    def test_stop_ends_loop_before_next_claim(self) -> None:
        worker, _repo, mock_runner = _make_worker()
        job = _make_job()

        def run_and_stop(claimed: JobRecord) -> None:
            worker.stop()

        mock_runner.run.side_effect = run_and_stop
        with patch.object(worker, "_try_claim_job", side_effect=[job, job]) as mock_claim:
            worker.run()

        assert mock_claim.call_count == 1

    def test_sigterm_handler_requests_stop(self) -> None:
        worker, _repo, _runner = _make_worker()

        worker._on_signal(15, None)

        with patch.object(worker, "_try_claim_job") as mock_claim:
            worker.run()

        mock_claim.assert_not_called()
