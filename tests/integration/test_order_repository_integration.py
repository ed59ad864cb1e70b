import pytest

from app.database.connection import get_connection
from app.database.exceptions import TokenChargeUnavailable
from app.database.models import OrderRecord, UploadRecord
from app.database.repositories.job_repository import JobRepository
from app.database.repositories.order_repository import OrderRepository
from app.database.repositories.upload_repository import UploadRepository


def _job_count(order_id: str) -> int:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM detection_jobs WHERE order_id = %s", (order_id,))
            row = cur.fetchone()
    assert row is not None
    return int(row[0])


@pytest.mark.integration
class TestCreateOrder:
    def test_round_trips_upload_ids_and_price(
        self, order_repo: OrderRepository, seed_order: OrderRecord
    ) -> None:
        stored = order_repo.get_order(seed_order.id)
        assert stored is not None
        assert stored.upload_ids == seed_order.upload_ids
        assert stored.total_amount_cents == 100
        assert stored.status == "awaiting_payment"


@pytest.mark.integration
class TestMarkOrderPaid:
    def test_marks_paid_and_enqueues_once(
        self, order_repo: OrderRepository, seed_order: OrderRecord
    ) -> None:
        first = order_repo.mark_order_paid(seed_order.id, "DT-int-1")
        second = order_repo.mark_order_paid(seed_order.id, "DT-int-1")

        assert first is not None
        assert first.status == "paid"
        assert first.payment_ref == "DT-int-1"
        assert second is None
        assert _job_count(seed_order.id) == 1

    def test_enqueue_after_paid_is_noop(
        self, order_repo: OrderRepository, seed_order: OrderRecord
    ) -> None:
        order_repo.mark_order_paid(seed_order.id, "DT-int-2")

        created = JobRepository(max_attempts=3).enqueue(seed_order.id)

        assert created is False
        assert _job_count(seed_order.id) == 1

    def test_cancelled_order_cannot_be_paid(
        self, order_repo: OrderRepository, seed_order: OrderRecord
    ) -> None:
        order_repo.transition_order_status(seed_order.id, "cancelled", ("awaiting_payment",))

        assert order_repo.mark_order_paid(seed_order.id, "DT-int-3") is None
        assert _job_count(seed_order.id) == 0


@pytest.mark.integration
class TestMarkOrderPaidWithTokens:
    def test_one_token_charge_pays_one_order(
        self,
        order_repo: OrderRepository,
        upload_repo: UploadRepository,
        seed_upload: UploadRecord,
        seed_order: OrderRecord,
        integration_cleanup: list[tuple[str, str]],
    ) -> None:
        upload_repo.merge_upload_metadata(seed_upload.id, {"tokenChargedUserId": "usr_test"})
        second = order_repo.create_order([seed_upload.id], user_id="usr_test")
        integration_cleanup.append(("orders", second.id))

        paid = order_repo.mark_order_paid_with_tokens(seed_order.id, "TOKENS-int-1", "usr_test")
        with pytest.raises(TokenChargeUnavailable):
            order_repo.mark_order_paid_with_tokens(second.id, "TOKENS-int-2", "usr_test")

        assert paid is not None and paid.status == "paid"
        stored_second = order_repo.get_order(second.id)
        assert stored_second is not None and stored_second.status == "awaiting_payment"
        assert _job_count(second.id) == 0
        upload = upload_repo.get_upload(seed_upload.id)
        assert upload is not None
        assert upload.metadata["tokenConsumedOrderId"] == seed_order.id

    def test_uncharged_upload_cannot_pay(
        self, order_repo: OrderRepository, seed_order: OrderRecord
    ) -> None:
        with pytest.raises(TokenChargeUnavailable):
            order_repo.mark_order_paid_with_tokens(seed_order.id, "TOKENS-int-3", "usr_test")

        stored = order_repo.get_order(seed_order.id)
        assert stored is not None and stored.status == "awaiting_payment"
        assert _job_count(seed_order.id) == 0


@pytest.mark.integration
class TestFindOrderByPaymentRef:
    def test_finds_pending_order(
        self, order_repo: OrderRepository, seed_order: OrderRecord
    ) -> None:
        order_repo.mark_order_payment_pending(seed_order.id, "DT-int-4", ("awaiting_payment",))

        found = order_repo.find_order_by_payment_ref("DT-int-4")

        assert found is not None
        assert found.id == seed_order.id
        assert found.status == "payment_pending"


@pytest.mark.integration
class TestUpdateOrderUser:
    def test_owner_is_set_once(
        self, order_repo: OrderRepository, seed_order: OrderRecord
    ) -> None:
        assert order_repo.update_order_user(seed_order.id, "usr_other") is None
        assert order_repo.update_order_user(seed_order.id, "usr_test") is not None
