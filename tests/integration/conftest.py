import os
import uuid
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from app.config.settings import Settings
from app.database.connection import close_pool, get_connection, init_pool
from app.database.migrations import migrate
from app.database.models import OrderRecord, UploadRecord, UserRecord
from app.database.repositories.order_repository import OrderRepository
from app.database.repositories.upload_repository import UploadRepository
from app.database.repositories.user_repository import UserRepository


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "verifier_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        migrate()
    except Exception as e:
        close_pool()
        pytest.skip(
            f"PostgreSQL test DB not available: {e}. "
            "Set DB_* env to point at a scratch database"
        )
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup(integration_pool: None) -> Generator[list[tuple[str, str]], None, None]:
    cleanup: list[tuple[str, str]] = []
    yield cleanup
    if not cleanup:
        return
    with get_connection() as conn:
        with conn.cursor() as cur:
            # detection_jobs and token_credits cascade from orders and users.
            for table, row_id in cleanup:
                if table == "orders":
                    cur.execute("DELETE FROM orders WHERE id = %s", (row_id,))
            for table, row_id in cleanup:
                if table == "uploads":
                    cur.execute("DELETE FROM uploads WHERE id = %s", (row_id,))
            for table, row_id in cleanup:
                if table == "users":
                    cur.execute("DELETE FROM users WHERE id = %s", (row_id,))
        conn.commit()


@pytest.fixture
def order_repo(integration_pool: None) -> OrderRepository:
    return OrderRepository(price_per_unit_cents=100)


@pytest.fixture
def upload_repo(integration_pool: None) -> UploadRepository:
    return UploadRepository()


@pytest.fixture
def user_repo(integration_pool: None) -> UserRepository:
    return UserRepository()


@pytest.fixture
def seed_upload(
    upload_repo: UploadRepository,
    integration_cleanup: list[tuple[str, str]],
) -> UploadRecord:
    upload = upload_repo.create_upload("clip.png", 3, "image/png", {"ownerId": "usr_test"})
    upload_repo.set_upload_data(upload.id, b"abc")
    integration_cleanup.append(("uploads", upload.id))
    return upload


@pytest.fixture
def seed_order(
    order_repo: OrderRepository,
    seed_upload: UploadRecord,
    integration_cleanup: list[tuple[str, str]],
) -> OrderRecord:
    order = order_repo.create_order([seed_upload.id], user_id="usr_test")
    integration_cleanup.append(("orders", order.id))
    return order


@pytest.fixture
def seed_user(
    user_repo: UserRepository,
    integration_cleanup: list[tuple[str, str]],
) -> UserRecord:
    user = user_repo.create_user(f"it-{uuid.uuid4().hex[:8]}@example.com", tokens=3)
    integration_cleanup.append(("users", user.id))
    return user
