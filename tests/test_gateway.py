import asyncio
import json
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import callback_payload, money, sign
from feeledger.core.models import FeeAccount, GatewayOrder, LedgerTransaction


async def _settled_sum(db: AsyncSession, account_id: str):
    return (
        await db.execute(
            select(func.coalesce(func.sum(LedgerTransaction.amount), 0)).where(
                LedgerTransaction.account_id == UUID(account_id),
                LedgerTransaction.status == "settled",
            )
        )
    ).scalar()


async def _count_transactions(db: AsyncSession, account_id: str) -> int:
    return (
        await db.execute(
            select(func.count()).select_from(LedgerTransaction).where(
                LedgerTransaction.account_id == UUID(account_id)
            )
        )
    ).scalar()


@pytest.mark.asyncio
async def test_create_order_persists_amount_without_ledger_row(
    client: AsyncClient, make_account, student_headers, gateway_stub, db_session: AsyncSession
) -> None:
    account = await make_account("STU-200", context={"student_name": "Ravi"})
    resp = await client.post(
        "/api/v1/gateway/orders",
        json={
            "account_id": account["id"],
            "category": "examination",
            "amount": "1500",
            "prefill": {"email": "ravi@example.com", "contact": "9999999999"},
        },
        headers=student_headers("STU-200"),
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["order_id"] == "order_test1"
    assert data["key_id"] == "rzp_test_key"
    assert data["amount_minor"] == 150000
    assert data["currency"] == "INR"
    assert data["prefill"]["email"] == "ravi@example.com"
    assert data["prefill"]["name"] == "Ravi"

    sent = json.loads(gateway_stub.requests[0].content)
    assert sent["amount"] == 150000
    assert sent["notes"]["category"] == "examination"
    assert gateway_stub.requests[0].headers["authorization"].startswith("Basic ")

    order = (
        await db_session.execute(select(GatewayOrder).where(GatewayOrder.order_id == "order_test1"))
    ).scalar_one()
    assert money(order.amount) == money("1500")
    assert order.status == "created"
    assert await _count_transactions(db_session, account["id"]) == 0


@pytest.mark.asyncio
async def test_create_order_rejects_non_positive_amount(client: AsyncClient, make_account, admin_headers) -> None:
    account = await make_account("STU-201")
    resp = await client.post(
        "/api/v1/gateway/orders",
        json={"account_id": account["id"], "category": "examination", "amount": "0"},
        headers=admin_headers,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_gateway_failure_is_bad_gateway(
    client: AsyncClient, make_account, admin_headers, gateway_stub, db_session: AsyncSession
) -> None:
    account = await make_account("STU-202")
    gateway_stub.fail_with = 500
    resp = await client.post(
        "/api/v1/gateway/orders",
        json={"account_id": account["id"], "category": "registration", "amount": "1000"},
        headers=admin_headers,
    )
    assert resp.status_code == 502
    assert (await db_session.execute(select(func.count()).select_from(GatewayOrder))).scalar() == 0


@pytest.mark.asyncio
async def test_student_cannot_order_for_another_account(client: AsyncClient, make_account, student_headers) -> None:
    account = await make_account("STU-203")
    resp = await client.post(
        "/api/v1/gateway/orders",
        json={"account_id": account["id"], "category": "registration", "amount": "1000"},
        headers=student_headers("STU-999"),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_callback_settles_and_credits_category(
    make_account, pay_via_gateway, db_session: AsyncSession
) -> None:
    account = await make_account("STU-210")
    _, resp = await pay_via_gateway(account["id"], "examination", "1500")
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["duplicate"] is False
    assert data["transaction"]["status"] == "settled"
    assert data["transaction"]["source"] == "gateway"
    assert money(data["account"]["examination_paid"]) == money("1500")
    assert money(data["account"]["total_paid"]) == money("1500")

    txns = (
        await db_session.execute(
            select(LedgerTransaction).where(LedgerTransaction.account_id == UUID(account["id"]))
        )
    ).scalars().all()
    assert len(txns) == 1
    assert txns[0].status == "settled"
    order = (
        await db_session.execute(select(GatewayOrder).where(GatewayOrder.order_id == txns[0].gateway_order_id))
    ).scalar_one()
    assert order.status == "paid"


@pytest.mark.asyncio
async def test_replayed_callback_credits_once(
    client: AsyncClient, make_account, pay_via_gateway, admin_headers, db_session: AsyncSession
) -> None:
    account = await make_account("STU-211")
    order, first = await pay_via_gateway(account["id"], "examination", "1500", payment_id="pay_replay1")
    assert first.status_code == 200

    second = await client.post(
        "/api/v1/gateway/callback",
        json=callback_payload(order, account["id"], "examination", "pay_replay1"),
        headers=admin_headers,
    )
    assert second.status_code == 200
    data = second.json()
    assert data["duplicate"] is True
    assert data["transaction"]["id"] == first.json()["transaction"]["id"]
    assert money(data["account"]["total_paid"]) == money("1500")
    assert await _count_transactions(db_session, account["id"]) == 1


@pytest.mark.asyncio
async def test_concurrent_replays_create_one_transaction(
    client: AsyncClient, make_account, admin_headers, db_session: AsyncSession
) -> None:
    account = await make_account("STU-212")
    order_resp = await client.post(
        "/api/v1/gateway/orders",
        json={"account_id": account["id"], "category": "registration", "amount": "1000"},
        headers=admin_headers,
    )
    order = order_resp.json()
    payload = callback_payload(order, account["id"], "registration", "pay_race1")

    responses = await asyncio.gather(
        *(client.post("/api/v1/gateway/callback", json=payload, headers=admin_headers) for _ in range(3))
    )
    assert [r.status_code for r in responses] == [200, 200, 200]
    assert sorted(r.json()["duplicate"] for r in responses) == [False, True, True]
    assert await _count_transactions(db_session, account["id"]) == 1

    stored = await db_session.get(FeeAccount, UUID(account["id"]), populate_existing=True)
    assert money(stored.total_paid) == money("1000")


@pytest.mark.asyncio
async def test_total_paid_matches_settled_sum_under_concurrency(
    make_account, pay_via_gateway, db_session: AsyncSession
) -> None:
    account = await make_account("STU-213")
    results = await asyncio.gather(
        pay_via_gateway(account["id"], "registration", "300"),
        pay_via_gateway(account["id"], "examination", "700.25"),
        pay_via_gateway(account["id"], "miscellaneous", "125.50"),
        pay_via_gateway(account["id"], "examination", "200"),
    )
    assert all(resp.status_code == 200 for _, resp in results)

    stored = await db_session.get(FeeAccount, UUID(account["id"]), populate_existing=True)
    assert money(stored.total_paid) == money("1325.75")
    assert money(stored.examination_paid) == money("900.25")
    assert money(stored.total_paid) == money(await _settled_sum(db_session, account["id"]))


@pytest.mark.asyncio
async def test_invalid_signature_writes_nothing(
    client: AsyncClient, make_account, admin_headers, db_session: AsyncSession
) -> None:
    account = await make_account("STU-214")
    order = (
        await client.post(
            "/api/v1/gateway/orders",
            json={"account_id": account["id"], "category": "examination", "amount": "1500"},
            headers=admin_headers,
        )
    ).json()
    payload = callback_payload(order, account["id"], "examination", "pay_bad")
    good = payload["signature"]
    payload["signature"] = ("1" if good[0] != "1" else "0") + good[1:]

    resp = await client.post("/api/v1/gateway/callback", json=payload, headers=admin_headers)
    assert resp.status_code == 400
    assert await _count_transactions(db_session, account["id"]) == 0
    stored = await db_session.get(FeeAccount, UUID(account["id"]), populate_existing=True)
    assert money(stored.total_paid) == 0


@pytest.mark.asyncio
async def test_callback_amount_must_match_order(
    client: AsyncClient, make_account, admin_headers, db_session: AsyncSession
) -> None:
    account = await make_account("STU-215")
    order = (
        await client.post(
            "/api/v1/gateway/orders",
            json={"account_id": account["id"], "category": "examination", "amount": "1500"},
            headers=admin_headers,
        )
    ).json()
    payload = callback_payload(order, account["id"], "examination", "pay_amt")
    payload["amount"] = "15000"
    resp = await client.post("/api/v1/gateway/callback", json=payload, headers=admin_headers)
    assert resp.status_code == 400
    assert await _count_transactions(db_session, account["id"]) == 0


@pytest.mark.asyncio
async def test_callback_category_must_match_order(client: AsyncClient, make_account, admin_headers) -> None:
    account = await make_account("STU-216")
    order = (
        await client.post(
            "/api/v1/gateway/orders",
            json={"account_id": account["id"], "category": "examination", "amount": "1500"},
            headers=admin_headers,
        )
    ).json()
    payload = callback_payload(order, account["id"], "registration", "pay_cat")
    resp = await client.post("/api/v1/gateway/callback", json=payload, headers=admin_headers)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_callback_for_unknown_order_404(client: AsyncClient, make_account, admin_headers) -> None:
    account = await make_account("STU-217")
    payload = {
        "order_id": "order_missing",
        "payment_id": "pay_x",
        "signature": sign("order_missing", "pay_x"),
        "amount": "10",
        "category": "registration",
        "account_id": account["id"],
    }
    resp = await client.post("/api/v1/gateway/callback", json=payload, headers=admin_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_callback_for_unknown_account_404(client: AsyncClient, admin_headers) -> None:
    payload = {
        "order_id": "order_x",
        "payment_id": "pay_x",
        "signature": sign("order_x", "pay_x"),
        "amount": "10",
        "category": "registration",
        "account_id": str(uuid4()),
    }
    resp = await client.post("/api/v1/gateway/callback", json=payload, headers=admin_headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_paid_order_is_not_credited_under_a_second_payment_id(
    client: AsyncClient, make_account, pay_via_gateway, admin_headers, db_session: AsyncSession
) -> None:
    account = await make_account("STU-218")
    order, first = await pay_via_gateway(account["id"], "examination", "1500", payment_id="pay_first")
    assert first.status_code == 200

    second = await client.post(
        "/api/v1/gateway/callback",
        json=callback_payload(order, account["id"], "examination", "pay_second"),
        headers=admin_headers,
    )
    assert second.status_code == 409
    assert await _count_transactions(db_session, account["id"]) == 1

    stored = await db_session.get(FeeAccount, UUID(account["id"]), populate_existing=True)
    assert money(stored.examination_paid) == money("1500")
    assert money(stored.total_paid) == money("1500")

    replay = await client.post(
        "/api/v1/gateway/callback",
        json=callback_payload(order, account["id"], "examination", "pay_first"),
        headers=admin_headers,
    )
    assert replay.status_code == 200
    assert replay.json()["duplicate"] is True


@pytest.mark.asyncio
async def test_concurrent_payment_ids_for_one_order_credit_once(
    client: AsyncClient, make_account, admin_headers, db_session: AsyncSession
) -> None:
    account = await make_account("STU-219")
    order = (
        await client.post(
            "/api/v1/gateway/orders",
            json={"account_id": account["id"], "category": "registration", "amount": "1000"},
            headers=admin_headers,
        )
    ).json()
    responses = await asyncio.gather(
        *(
            client.post(
                "/api/v1/gateway/callback",
                json=callback_payload(order, account["id"], "registration", f"pay_multi{i}"),
                headers=admin_headers,
            )
            for i in range(3)
        )
    )
    assert sorted(r.status_code for r in responses) == [200, 409, 409]
    assert await _count_transactions(db_session, account["id"]) == 1
    stored = await db_session.get(FeeAccount, UUID(account["id"]), populate_existing=True)
    assert money(stored.total_paid) == money("1000")


@pytest.mark.asyncio
async def test_callback_rejects_sub_cent_amount(client: AsyncClient, make_account, admin_headers) -> None:
    account = await make_account("STU-220")
    payload = {
        "order_id": "order_x",
        "payment_id": "pay_x",
        "signature": sign("order_x", "pay_x"),
        "amount": "10.001",
        "category": "registration",
        "account_id": account["id"],
    }
    resp = await client.post("/api/v1/gateway/callback", json=payload, headers=admin_headers)
    assert resp.status_code == 422
