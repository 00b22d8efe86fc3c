"""
E2E: M-Pesa settlement tests.

Tests how recorded tips reach a terminal state:
- STK callbacks complete or fail the pending tip
- Duplicate, late, unknown and malformed callbacks are acknowledged and ignored
- Worker totals follow completed tips only
- Status-query reconciliation for tips whose callback never arrived
"""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from tests.e2e.conftest import FREE_WORKER_ID, list_tips, post_tip, stk_callback


pytestmark = pytest.mark.asyncio

ACK = {"ResultCode": 0, "ResultDesc": "Success"}


async def submit_tip(client: AsyncClient, amount: int = 100) -> str:
    resp = await post_tip(client, amount=amount)
    assert resp.status_code == 201
    return resp.json()["transaction_id"]


class TestCallbacks:

    async def test_success_callback_completes_tip(self, client: AsyncClient):
        transaction_id = await submit_tip(client)

        resp = await client.post(
            "/api/v1/mpesa/callback", json=stk_callback(transaction_id, receipt="ABC123")
        )

        assert resp.status_code == 200
        assert resp.json() == ACK
        tip = (await client.get(f"/api/v1/tips/{transaction_id}")).json()
        assert tip["status"] == "completed"
        assert tip["mpesa_receipt"] == "ABC123"
        assert tip["settled_at"] is not None

    async def test_failure_callback_fails_tip(self, client: AsyncClient):
        transaction_id = await submit_tip(client)

        resp = await client.post(
            "/api/v1/mpesa/callback", json=stk_callback(transaction_id, result_code=1032)
        )

        assert resp.json() == ACK
        tip = (await client.get(f"/api/v1/tips/{transaction_id}")).json()
        assert tip["status"] == "failed"
        assert tip["mpesa_receipt"] is None
        assert tip["result_desc"] == "Request cancelled by user"

    async def test_completed_tip_credits_worker(self, client: AsyncClient):
        transaction_id = await submit_tip(client, amount=100)
        await client.post("/api/v1/mpesa/callback", json=stk_callback(transaction_id))

        worker = (await client.get(f"/api/v1/workers/{FREE_WORKER_ID}")).json()

        assert worker["total_tips"] == 100
        assert worker["tip_count"] == 1

    async def test_duplicate_callback_applied_once(self, client: AsyncClient):
        transaction_id = await submit_tip(client)
        payload = stk_callback(transaction_id, receipt="ABC123")

        first = await client.post("/api/v1/mpesa/callback", json=payload)
        second = await client.post("/api/v1/mpesa/callback", json=payload)

        assert first.json() == second.json() == ACK
        worker = (await client.get(f"/api/v1/workers/{FREE_WORKER_ID}")).json()
        assert worker["tip_count"] == 1
        assert worker["total_tips"] == 100

    async def test_late_failure_does_not_reopen_completed_tip(self, client: AsyncClient):
        transaction_id = await submit_tip(client)
        await client.post("/api/v1/mpesa/callback", json=stk_callback(transaction_id))

        await client.post(
            "/api/v1/mpesa/callback", json=stk_callback(transaction_id, result_code=1)
        )

        tip = (await client.get(f"/api/v1/tips/{transaction_id}")).json()
        assert tip["status"] == "completed"

    async def test_unknown_transaction_leaves_tips_unchanged(
        self, client: AsyncClient, session_factory
    ):
        transaction_id = await submit_tip(client)

        resp = await client.post("/api/v1/mpesa/callback", json=stk_callback("ws_CO_UNKNOWN"))

        assert resp.status_code == 200
        assert resp.json() == ACK
        tips = await list_tips(session_factory)
        assert [(t.transaction_id, t.status, t.mpesa_receipt) for t in tips] == [
            (transaction_id, "pending", None)
        ]

    async def test_malformed_json_acknowledged(self, client: AsyncClient):
        resp = await client.post(
            "/api/v1/mpesa/callback",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )

        assert resp.status_code == 200
        assert resp.json() == ACK

    async def test_unexpected_shape_acknowledged(self, client: AsyncClient):
        resp = await client.post("/api/v1/mpesa/callback", json=["a", "list"])

        assert resp.status_code == 200
        assert resp.json() == ACK

    @pytest.mark.parametrize(
        "mangle",
        [
            lambda payload: {"Body": "oops"},
            lambda payload: {"Body": {"stkCallback": ["not", "an", "object"]}},
            lambda payload: payload["Body"]["stkCallback"].update(CallbackMetadata="x"),
            lambda payload: payload["Body"]["stkCallback"].update(
                CallbackMetadata={"Item": {"Name": "Amount"}}
            ),
            lambda payload: payload["Body"]["stkCallback"].update(
                CallbackMetadata={"Item": [{"Name": "Amount", "Value": {"bad": 1}}]}
            ),
        ],
        ids=["body-string", "callback-list", "metadata-string", "items-object", "amount-object"],
    )
    async def test_wrongly_shaped_object_acknowledged(self, client: AsyncClient, mangle):
        transaction_id = await submit_tip(client)
        payload = stk_callback(transaction_id)
        payload = mangle(payload) or payload

        resp = await client.post("/api/v1/mpesa/callback", json=payload)

        assert resp.status_code == 200
        assert resp.json() == ACK
        tip = (await client.get(f"/api/v1/tips/{transaction_id}")).json()
        assert tip["status"] == "pending"

    async def test_internal_error_still_acknowledged(self, client: AsyncClient, monkeypatch):
        async def explode(db, payload):
            raise RuntimeError("settlement crashed")

        monkeypatch.setattr("src.api.routes.mpesa.handle_stk_callback", explode)

        resp = await client.post("/api/v1/mpesa/callback", json=stk_callback("ws_CO_0001"))

        assert resp.status_code == 200
        assert resp.json() == ACK


class TestReconcile:

    async def test_success_query_keeps_tip_pending_for_receipt(
        self, client: AsyncClient, daraja_stub
    ):
        transaction_id = await submit_tip(client)

        resp = await client.post(f"/api/v1/tips/{transaction_id}/reconcile")

        assert resp.status_code == 200
        data = resp.json()
        assert data["gateway_status"] == "success"
        assert data["applied"] is False
        assert data["status"] == "pending"

    async def test_callback_after_success_query_records_receipt(
        self, client: AsyncClient, daraja_stub
    ):
        transaction_id = await submit_tip(client)
        await client.post(f"/api/v1/tips/{transaction_id}/reconcile")

        await client.post(
            "/api/v1/mpesa/callback", json=stk_callback(transaction_id, receipt="ABC123")
        )

        tip = (await client.get(f"/api/v1/tips/{transaction_id}")).json()
        assert tip["status"] == "completed"
        assert tip["mpesa_receipt"] == "ABC123"

    async def test_failed_query_fails_tip(self, client: AsyncClient, daraja_stub):
        transaction_id = await submit_tip(client)
        daraja_stub.query_body = {"ResultCode": "1037", "ResultDesc": "DS timeout user cannot be reached"}

        data = (await client.post(f"/api/v1/tips/{transaction_id}/reconcile")).json()

        assert data["gateway_status"] == "failed"
        assert data["status"] == "failed"
        tip = (await client.get(f"/api/v1/tips/{transaction_id}")).json()
        assert tip["status"] == "failed"

    async def test_pending_query_leaves_tip(self, client: AsyncClient, daraja_stub):
        transaction_id = await submit_tip(client)
        daraja_stub.query_status = 500
        daraja_stub.query_body = {
            "errorCode": "500.001.1001",
            "errorMessage": "The transaction is being processed",
        }

        data = (await client.post(f"/api/v1/tips/{transaction_id}/reconcile")).json()

        assert data["gateway_status"] == "pending"
        assert data["applied"] is False
        assert data["status"] == "pending"

    async def test_settled_tip_not_queried(self, client: AsyncClient, daraja_stub):
        transaction_id = await submit_tip(client)
        await client.post("/api/v1/mpesa/callback", json=stk_callback(transaction_id))

        data = (await client.post(f"/api/v1/tips/{transaction_id}/reconcile")).json()

        assert data["gateway_status"] == "skipped"
        assert data["status"] == "completed"
        assert daraja_stub.queries == 0

    async def test_unknown_transaction_returns_404(self, client: AsyncClient):
        resp = await client.post("/api/v1/tips/ws_CO_missing/reconcile")
        assert resp.status_code == 404
