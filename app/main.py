from app.config.settings import Settings
from app.database.connection import close_pool, init_pool
from app.database.migrations import migrate
from app.logging.logger import Log
from app.services import build_dispatcher, build_services
from app.worker.job_runner import JobRunner
from app.worker.retention import RetentionSweeper
from app.worker.worker import Worker


def main() -> None:
    """Worker entry point: initialize pool -> migrate -> build dependencies -> start worker loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    init_pool(settings)

    try:
        migrate()
        services = build_services(settings)
        dispatcher = build_dispatcher(settings, services)
        job_runner = JobRunner(dispatcher, services.job_repo, services.order_repo, settings)
        sweeper = RetentionSweeper(services.upload_repo, settings.upload_retention_hours)
        worker = Worker(services.job_repo, job_runner, settings, sweeper)
        worker.install_signal_handlers()
        worker.run()
    finally:
        close_pool()


def serve() -> None:
    """API entry point. The pool and schema are set up in the app lifespan."""
    import uvicorn

    from app.api.app import create_app

    settings = Settings()
    Log.configure(settings.log_level)
    uvicorn.run(create_app(settings), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
