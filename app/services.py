from dataclasses import dataclass

from app.config.settings import Settings
from app.database.repositories.job_repository import JobRepository
from app.database.repositories.order_repository import OrderRepository
from app.database.repositories.upload_repository import UploadRepository
from app.database.repositories.user_repository import UserRepository
from app.detection.dispatcher import DetectionDispatcher
from app.detection.factory import DetectorFactory
from app.orders.controller import OrderController
from app.payments.base import BasePaymentGateway
from app.payments.paystack_adapter import PaystackAdapter
from app.payments.service import PaymentService
from app.tokens.accounting import TokenAccounting
from app.uploads.service import UploadService


@dataclass
class Services:
    """Wired application services shared by the API and the worker."""

    settings: Settings
    order_repo: OrderRepository
    upload_repo: UploadRepository
    job_repo: JobRepository
    tokens: TokenAccounting
    gateway: BasePaymentGateway
    orders: OrderController
    payments: PaymentService
    uploads: UploadService


def build_services(
    settings: Settings,
    gateway: BasePaymentGateway | None = None,
) -> Services:
    """Build all services with their repositories and adapters."""
    order_repo = OrderRepository(settings.price_per_unit_cents, settings.default_currency)
    upload_repo = UploadRepository()
    user_repo = UserRepository()
    job_repo = JobRepository(settings.max_job_attempts)
    tokens = TokenAccounting(
        user_repo,
        cents_per_token=settings.price_per_unit_cents,
        demo_emails=settings.demo_emails,
        demo_token_floor=settings.demo_token_floor,
    )
    if gateway is None:
        gateway = PaystackAdapter(
            secret_key=settings.paystack_secret_key,
            base_url=settings.paystack_base_url,
            timeout_seconds=settings.paystack_timeout_seconds,
        )
    orders = OrderController(
        order_repo=order_repo,
        upload_repo=upload_repo,
        job_repo=job_repo,
        tokens=tokens,
        gateway=gateway,
        public_origin=settings.public_origin,
    )
    payments = PaymentService(
        gateway=gateway,
        orders=orders,
        tokens=tokens,
        public_origin=settings.public_origin,
        require_webhook_secret=settings.app_env == "production",
        poll_interval_seconds=settings.payment_poll_interval_seconds,
        poll_max_attempts=settings.payment_poll_max_attempts,
    )
    uploads = UploadService.from_settings(settings, upload_repo, tokens)
    return Services(
        settings=settings,
        order_repo=order_repo,
        upload_repo=upload_repo,
        job_repo=job_repo,
        tokens=tokens,
        gateway=gateway,
        orders=orders,
        payments=payments,
        uploads=uploads,
    )


def build_dispatcher(settings: Settings, services: Services) -> DetectionDispatcher:
    return DetectionDispatcher(
        order_repo=services.order_repo,
        upload_repo=services.upload_repo,
        detector=DetectorFactory.create(settings),
    )
