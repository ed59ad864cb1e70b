from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from app.database.exceptions import DataIntegrityError, TokenChargeUnavailable
from app.database.repositories.order_repository import OrderRepository

_NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _make_row(**overrides: object) -> dict:
    row = {
        "id": "ord_1",
        "upload_ids": '["upl_1","upl_2"]',
        "user_id": "usr_1",
        "total_amount_cents": 200,
        "currency": "USD",
        "status": "awaiting_payment",
        "payment_ref": None,
        "notes": "",
        "result": None,
        "created_at": _NOW,
        "updated_at": _NOW,
    }
    row.update(overrides)
    return row


def _mock_connection(mock_get_conn: MagicMock) -> tuple[MagicMock, MagicMock]:
    """Wire up a mock connection + cursor and return (mock_conn, mock_cursor)."""
    mock_cursor = MagicMock()
    mock_conn = MagicMock()
    mock_conn.cursor.return_value.__enter__ = MagicMock(return_value=mock_cursor)
    mock_conn.cursor.return_value.__exit__ = MagicMock(return_value=False)
    mock_get_conn.return_value.__enter__ = MagicMock(return_value=mock_conn)
    mock_get_conn.return_value.__exit__ = MagicMock(return_value=False)
    return mock_conn, mock_cursor


_GET_CONN = "app.database.repositories.order_repository.get_connection"


class TestCreateOrder:
    @patch(_GET_CONN)
    def test_prices_and_inserts_awaiting_payment(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row()

        repo = OrderRepository(price_per_unit_cents=100)
        order = repo.create_order(["upl_1", "upl_2"], user_id="usr_1")

        sql, params = mock_cursor.execute.call_args.args
        assert "INSERT INTO orders" in sql
        assert params[1] == '["upl_1","upl_2"]'
        assert params[3] == 200
        assert params[4] == "USD"
        assert params[5] == "awaiting_payment"
        assert order.upload_ids == ["upl_1", "upl_2"]
        mock_conn.commit.assert_called_once()

    @patch(_GET_CONN)
    def test_uses_requested_currency(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(currency="NGN")

        repo = OrderRepository(price_per_unit_cents=100)
        repo.create_order(["upl_1"], currency="NGN")

        _sql, params = mock_cursor.execute.call_args.args
        assert params[4] == "NGN"
        assert params[2] is None


class TestGetOrder:
    @patch(_GET_CONN)
    def test_returns_none_when_missing(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        assert OrderRepository(100).get_order("ord_missing") is None

    @patch(_GET_CONN)
    def test_decodes_result(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(
            status="completed", result='{"fallback":false}'
        )

        order = OrderRepository(100).get_order("ord_1")

        assert order is not None
        assert order.result == {"fallback": False}

    @patch(_GET_CONN)
    def test_malformed_upload_ids_raise_integrity_error(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(upload_ids="[not json")

        with pytest.raises(DataIntegrityError, match="upload_ids"):
            OrderRepository(100).get_order("ord_1")

    @patch(_GET_CONN)
    def test_non_list_upload_ids_raise_integrity_error(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(upload_ids='{"a":1}')

        with pytest.raises(DataIntegrityError, match="not a list"):
            OrderRepository(100).get_order("ord_1")


class TestListOrdersForUser:
    @patch(_GET_CONN)
    def test_orders_by_updated_at_desc_with_limit(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchall.return_value = [_make_row(), _make_row(id="ord_2")]

        orders = OrderRepository(100).list_orders_for_user("usr_1", 10)

        sql, params = mock_cursor.execute.call_args.args
        assert "ORDER BY updated_at DESC" in sql
        assert params == ("usr_1", 10)
        assert [o.id for o in orders] == ["ord_1", "ord_2"]


class TestTransitionOrderStatus:
    @patch(_GET_CONN)
    def test_is_compare_and_swap(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(status="processing")

        OrderRepository(100).transition_order_status("ord_1", "processing", ("paid",))

        sql, params = mock_cursor.execute.call_args.args
        assert "status = ANY(%s)" in sql
        assert params == ("processing", "ord_1", ["paid"])

    @patch(_GET_CONN)
    def test_returns_none_when_no_row_moved(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        result = OrderRepository(100).transition_order_status("ord_1", "processing", ("paid",))

        assert result is None

    @patch(_GET_CONN)
    def test_update_order_status_uses_graph_sources(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(status="completed")

        OrderRepository(100).update_order_status("ord_1", "completed")

        _sql, params = mock_cursor.execute.call_args.args
        assert params[2] == ["processing"]


class TestMarkOrderPaid:
    @patch(_GET_CONN)
    def test_updates_and_enqueues_in_one_transaction(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(status="paid", payment_ref="DT-1")

        order = OrderRepository(100).mark_order_paid("ord_1", "DT-1")

        assert order is not None and order.status == "paid"
        assert mock_cursor.execute.call_count == 2
        update_sql, update_params = mock_cursor.execute.call_args_list[0].args
        insert_sql, insert_params = mock_cursor.execute.call_args_list[1].args
        assert "UPDATE orders" in update_sql
        assert update_params[3] == ["awaiting_payment", "payment_pending"]
        assert "INSERT INTO detection_jobs" in insert_sql
        assert "ON CONFLICT (order_id) DO NOTHING" in insert_sql
        assert insert_params == ("ord_1",)
        mock_conn.commit.assert_called_once()

    @patch(_GET_CONN)
    def test_not_payable_rolls_back_without_enqueue(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        result = OrderRepository(100).mark_order_paid("ord_1", "DT-1")

        assert result is None
        assert mock_cursor.execute.call_count == 1
        mock_conn.rollback.assert_called_once()
        mock_conn.commit.assert_not_called()


class TestMarkOrderPaidWithTokens:
    @patch(_GET_CONN)
    def test_spends_charges_and_enqueues_together(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(status="paid", payment_ref="TOKENS-ord_1")
        mock_cursor.rowcount = 2

        order = OrderRepository(100).mark_order_paid_with_tokens("ord_1", "TOKENS-ord_1", "usr_1")

        assert order is not None and order.status == "paid"
        assert mock_cursor.execute.call_count == 3
        spend_sql, spend_params = mock_cursor.execute.call_args_list[1].args
        assert "UPDATE uploads" in spend_sql
        assert "'tokenConsumedOrderId' IS NULL" in spend_sql
        assert spend_params == ("ord_1", ["upl_1", "upl_2"], "usr_1")
        assert "INSERT INTO detection_jobs" in mock_cursor.execute.call_args_list[2].args[0]
        mock_conn.commit.assert_called_once()

    @patch(_GET_CONN)
    def test_already_spent_charge_rolls_back(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(status="paid", payment_ref="TOKENS-ord_1")
        mock_cursor.rowcount = 1

        with pytest.raises(TokenChargeUnavailable):
            OrderRepository(100).mark_order_paid_with_tokens("ord_1", "TOKENS-ord_1", "usr_1")

        assert mock_cursor.execute.call_count == 2
        mock_conn.rollback.assert_called_once()
        mock_conn.commit.assert_not_called()

    @patch(_GET_CONN)
    def test_not_payable_order_touches_no_upload(self, mock_get_conn: MagicMock) -> None:
        mock_conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = None

        assert OrderRepository(100).mark_order_paid_with_tokens("ord_1", "TOKENS-ord_1", "usr_1") is None
        assert mock_cursor.execute.call_count == 1
        mock_conn.rollback.assert_called_once()


class TestUpdateOrderUser:
    @patch(_GET_CONN)
    def test_only_claims_unowned_orders(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(user_id="usr_2")

        OrderRepository(100).update_order_user("ord_1", "usr_2")

        sql, params = mock_cursor.execute.call_args.args
        assert "user_id IS NULL OR user_id = %s" in sql
        assert params == ("usr_2", "ord_1", "usr_2")


class TestSetOrderResult:
    @patch(_GET_CONN)
    def test_stores_result_as_json(self, mock_get_conn: MagicMock) -> None:
        _conn, mock_cursor = _mock_connection(mock_get_conn)
        mock_cursor.fetchone.return_value = _make_row(result='{"fallback":true}')

        OrderRepository(100).set_order_result("ord_1", {"fallback": True})

        _sql, params = mock_cursor.execute.call_args.args
        assert params == ('{"fallback":true}', "ord_1")
