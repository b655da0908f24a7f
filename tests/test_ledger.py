import asyncio
import csv
import io
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import money
from feeledger.api.v1.ledger import service as ledger_service
from feeledger.api.v1.ledger.schemas import TransactionFilters
from feeledger.core.models import FeeAccount, LedgerTransaction


async def _record_manual(client: AsyncClient, headers, account_id: str, amount: str = "1000", **extra):
    payload = {"account_id": account_id, "category": "registration", "amount": amount, **extra}
    return await client.post("/api/v1/ledger/manual", json=payload, headers=headers)


@pytest.mark.asyncio
async def test_manual_payment_is_pending_and_not_credited(
    client: AsyncClient, make_account, accountant_headers, db_session: AsyncSession
) -> None:
    account = await make_account("STU-300")
    resp = await _record_manual(client, accountant_headers, account["id"], reference=" UTR123 ", source="counter")
    assert resp.status_code == 201, resp.text
    data = resp.json()
    assert data["status"] == "pending-verification"
    assert data["source"] == "counter"
    assert data["external_reference"] == "UTR123"

    stored = await db_session.get(FeeAccount, UUID(account["id"]))
    assert money(stored.total_paid) == 0


@pytest.mark.asyncio
async def test_manual_payment_cannot_claim_gateway_source(
    client: AsyncClient, make_account, accountant_headers
) -> None:
    account = await make_account("STU-301")
    resp = await _record_manual(client, accountant_headers, account["id"], source="gateway")
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_manual_payment_rejects_sub_cent_amount(
    client: AsyncClient, make_account, accountant_headers, db_session: AsyncSession
) -> None:
    account = await make_account("STU-304")
    resp = await _record_manual(client, accountant_headers, account["id"], amount="0.001")
    assert resp.status_code == 422
    count = (
        await db_session.execute(
            select(func.count()).select_from(LedgerTransaction).where(
                LedgerTransaction.account_id == UUID(account["id"])
            )
        )
    ).scalar()
    assert count == 0


@pytest.mark.asyncio
async def test_manual_payment_unknown_account_404(client: AsyncClient, accountant_headers) -> None:
    resp = await _record_manual(client, accountant_headers, str(uuid4()))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_student_cannot_record_manual_payment(client: AsyncClient, make_account, student_headers) -> None:
    account = await make_account("STU-302")
    resp = await _record_manual(client, student_headers("STU-302"), account["id"])
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_verify_credits_account(client: AsyncClient, make_account, accountant_headers, admin_headers) -> None:
    account = await make_account("STU-303")
    txn = (await _record_manual(client, accountant_headers, account["id"], amount="1000")).json()

    resp = await client.post(
        f"/api/v1/admin/transactions/{txn['id']}/decision",
        json={"decision": "verify", "remarks": "slip checked"},
        headers=admin_headers,
    )
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["status"] == "settled"
    assert money(data["account"]["registration_paid"]) == money("1000")
    assert money(data["account"]["total_paid"]) == money("1000")

    detail = await client.get(f"/api/v1/ledger/transactions/{txn['id']}", headers=admin_headers)
    assert detail.json()["status"] == "settled"
    assert detail.json()["decision_remarks"] == "slip checked"


@pytest.mark.asyncio
async def test_reject_leaves_account_untouched(
    client: AsyncClient, make_account, accountant_headers, admin_headers
) -> None:
    account = await make_account("STU-304")
    txn = (await _record_manual(client, accountant_headers, account["id"])).json()
    resp = await client.post(
        f"/api/v1/admin/transactions/{txn['id']}/decision",
        json={"decision": "reject", "remarks": "bounced"},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "rejected"
    assert money(resp.json()["account"]["total_paid"]) == 0


@pytest.mark.asyncio
async def test_second_decision_is_already_finalized(
    client: AsyncClient, make_account, accountant_headers, admin_headers, db_session: AsyncSession
) -> None:
    account = await make_account("STU-305")
    txn = (await _record_manual(client, accountant_headers, account["id"])).json()
    url = f"/api/v1/admin/transactions/{txn['id']}/decision"

    first = await client.post(url, json={"decision": "verify"}, headers=admin_headers)
    assert first.status_code == 200
    for decision in ("verify", "reject"):
        again = await client.post(url, json={"decision": decision}, headers=admin_headers)
        assert again.status_code == 409
        assert again.json()["detail"]["status"] == "settled"

    stored = await db_session.get(FeeAccount, UUID(account["id"]))
    assert money(stored.total_paid) == money("1000")


@pytest.mark.asyncio
async def test_concurrent_verify_credits_once(
    client: AsyncClient, make_account, accountant_headers, admin_headers, db_session: AsyncSession
) -> None:
    account = await make_account("STU-306")
    txn = (await _record_manual(client, accountant_headers, account["id"])).json()
    url = f"/api/v1/admin/transactions/{txn['id']}/decision"

    responses = await asyncio.gather(
        client.post(url, json={"decision": "verify"}, headers=admin_headers),
        client.post(url, json={"decision": "verify"}, headers=admin_headers),
    )
    assert sorted(r.status_code for r in responses) == [200, 409]
    stored = await db_session.get(FeeAccount, UUID(account["id"]))
    assert money(stored.total_paid) == money("1000")


@pytest.mark.asyncio
async def test_decision_on_unknown_transaction_404(client: AsyncClient, admin_headers) -> None:
    resp = await client.post(
        f"/api/v1/admin/transactions/{uuid4()}/decision",
        json={"decision": "verify"},
        headers=admin_headers,
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_accountant_cannot_decide(client: AsyncClient, make_account, accountant_headers) -> None:
    account = await make_account("STU-307")
    txn = (await _record_manual(client, accountant_headers, account["id"])).json()
    resp = await client.post(
        f"/api/v1/admin/transactions/{txn['id']}/decision",
        json={"decision": "verify"},
        headers=accountant_headers,
    )
    assert resp.status_code == 403


async def _seed_history(db: AsyncSession, account_id: UUID, count: int) -> None:
    base = datetime(2026, 1, 1, 9, 0, 0)
    for i in range(count):
        db.add(
            LedgerTransaction(
                account_id=account_id,
                category="miscellaneous" if i % 2 else "registration",
                amount=Decimal(i + 1),
                source="counter",
                status="settled" if i % 3 else "rejected",
                # Pairs share a timestamp so ordering must fall back to id
                created_at=base + timedelta(minutes=i // 2),
            )
        )
    await db.commit()


@pytest.mark.asyncio
async def test_iter_for_account_is_ordered_complete_and_restartable(
    make_account, db_session: AsyncSession
) -> None:
    account = await make_account("STU-310")
    account_id = UUID(account["id"])
    await _seed_history(db_session, account_id, 25)

    first = [t.id async for t in ledger_service.iter_for_account(db_session, account_id, batch_size=4)]
    second = [t.id async for t in ledger_service.iter_for_account(db_session, account_id, batch_size=7)]
    assert len(first) == 25
    assert len(set(first)) == 25
    assert first == second

    rows = (
        await db_session.execute(select(LedgerTransaction).where(LedgerTransaction.account_id == account_id))
    ).scalars().all()
    expected = [t.id for t in sorted(rows, key=lambda t: (t.created_at, t.id.hex), reverse=True)]
    assert first == expected


@pytest.mark.asyncio
async def test_iter_for_account_applies_filters(make_account, db_session: AsyncSession) -> None:
    account = await make_account("STU-311")
    account_id = UUID(account["id"])
    await _seed_history(db_session, account_id, 12)

    filters = TransactionFilters(status="rejected")
    rows = [t async for t in ledger_service.iter_for_account(db_session, account_id, filters, batch_size=2)]
    assert len(rows) == 4
    assert all(t.status == "rejected" for t in rows)

    empty = [t async for t in ledger_service.iter_for_account(db_session, uuid4())]
    assert empty == []


@pytest.mark.asyncio
async def test_history_page_and_student_access(
    client: AsyncClient, make_account, student_headers, db_session: AsyncSession
) -> None:
    account = await make_account("STU-312")
    await _seed_history(db_session, UUID(account["id"]), 9)

    url = f"/api/v1/ledger/accounts/{account['id']}/transactions"
    resp = await client.get(url, params={"page": 2, "limit": 4}, headers=student_headers("STU-312"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["pagination"] == {"page": 2, "limit": 4, "total": 9, "total_pages": 3}
    assert len(body["items"]) == 4

    filtered = await client.get(
        url, params={"category": "miscellaneous"}, headers=student_headers("STU-312")
    )
    assert all(i["category"] == "miscellaneous" for i in filtered.json()["items"])

    other = await client.get(url, headers=student_headers("STU-999"))
    assert other.status_code == 403


@pytest.mark.asyncio
async def test_csv_export(client: AsyncClient, make_account, admin_headers, db_session: AsyncSession) -> None:
    account = await make_account("STU-313")
    await _seed_history(db_session, UUID(account["id"]), 5)

    resp = await client.get(f"/api/v1/ledger/accounts/{account['id']}/transactions.csv", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    rows = list(csv.reader(io.StringIO(resp.text)))
    assert rows[0][:3] == ["id", "created_at", "category"]
    assert len(rows) == 6
