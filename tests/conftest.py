import itertools
import json
import os
from decimal import Decimal
from typing import AsyncGenerator, Callable, Dict
from uuid import UUID, uuid4

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("GATEWAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("GATEWAY_KEY_SECRET", "test-gateway-secret")

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from feeledger.api.v1.gateway.client import GatewayClient, get_gateway_client
from feeledger.api.v1.gateway.signature import compute_signature
from feeledger.auth.security import create_access_token
from feeledger.core.config import settings
from feeledger.db.session import FEES_SCHEMA, Base, get_db
from feeledger.main import app
import feeledger.core.models  # noqa: F401

INSTITUTION_ID = "INST-001"


@pytest.fixture()
async def engine(tmp_path):
    """One SQLite file per test; the fees schema is mapped away since SQLite has none."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'feeledger.db'}",
        echo=False,
        future=True,
        connect_args={"timeout": 30},
        execution_options={"schema_translate_map": {FEES_SCHEMA: None}},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


class GatewayStub:
    """Stands in for the gateway's orders API."""

    def __init__(self) -> None:
        self.requests = []
        self.fail_with = None
        self._ids = itertools.count(1)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"error": {"description": "failure"}})
        body = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "id": f"order_test{next(self._ids)}",
                "entity": "order",
                "amount": body["amount"],
                "currency": body["currency"],
                "receipt": body["receipt"],
                "status": "created",
            },
        )


@pytest.fixture()
def gateway_stub() -> GatewayStub:
    return GatewayStub()


@pytest.fixture()
async def client(session_factory, gateway_stub) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app. Each request gets its own session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    def override_gateway_client() -> GatewayClient:
        return GatewayClient(
            base_url=settings.gateway_base_url,
            key_id=settings.gateway_key_id,
            key_secret=settings.gateway_key_secret,
            transport=httpx.MockTransport(gateway_stub.handler),
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway_client] = override_gateway_client
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def _token(role: str, **claims) -> Dict[str, str]:
    subject = {"sub": str(uuid4()), "role": role, "institution_id": INSTITUTION_ID, **claims}
    return {"Authorization": f"Bearer {create_access_token(subject=subject)}"}


@pytest.fixture()
def admin_headers() -> Dict[str, str]:
    return _token("ADMIN")


@pytest.fixture()
def accountant_headers() -> Dict[str, str]:
    return _token("ACCOUNTANT")


@pytest.fixture()
def student_headers() -> Callable[[str], Dict[str, str]]:
    def _make(student_id: str) -> Dict[str, str]:
        return _token("STUDENT", student_id=student_id)

    return _make


@pytest.fixture()
def make_account(client, admin_headers):
    """Create (or re-set) a fee account through the API and return its JSON."""

    async def _make(
        student_id: str = "STU-001",
        registration: str = "1000",
        examination: str = "1500",
        miscellaneous: str = "500",
        **extra,
    ) -> dict:
        payload = {
            "student_id": student_id,
            "institution_id": INSTITUTION_ID,
            "registration": registration,
            "examination": examination,
            "miscellaneous": miscellaneous,
            **extra,
        }
        resp = await client.put("/api/v1/accounts/expectations", json=payload, headers=admin_headers)
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _make


def sign(order_id: str, payment_id: str) -> str:
    return compute_signature(settings.gateway_key_secret, order_id, payment_id)


def callback_payload(order: dict, account_id: str, category: str, payment_id: str) -> dict:
    return {
        "order_id": order["order_id"],
        "payment_id": payment_id,
        "signature": sign(order["order_id"], payment_id),
        "amount": order["amount"],
        "category": category,
        "account_id": account_id,
    }


@pytest.fixture()
def pay_via_gateway(client, admin_headers):
    """Create an order and post its signed callback; returns (order, callback response)."""

    async def _pay(account_id: str, category: str, amount: str, payment_id: str = None):
        order_resp = await client.post(
            "/api/v1/gateway/orders",
            json={"account_id": account_id, "category": category, "amount": amount},
            headers=admin_headers,
        )
        assert order_resp.status_code == 201, order_resp.text
        order = order_resp.json()
        payment_id = payment_id or f"pay_{uuid4().hex[:14]}"
        resp = await client.post(
            "/api/v1/gateway/callback",
            json=callback_payload(order, account_id, category, payment_id),
            headers=admin_headers,
        )
        return order, resp

    return _pay


def money(value) -> Decimal:
    return Decimal(str(value))


def as_uuid(value: str) -> UUID:
    return UUID(value)
