"""HTTP client for the payment gateway's orders API."""

import logging
from typing import Any, Dict, Optional

import httpx

from feeledger.core.config import settings
from feeledger.core.exceptions import GatewayUnavailable

logger = logging.getLogger(__name__)


class GatewayClient:
    """Thin wrapper over POST {base_url}/orders with basic auth (key id / key secret)."""

    def __init__(
        self,
        base_url: str,
        key_id: str,
        key_secret: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.key_id = key_id
        self._key_secret = key_secret
        self.timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.key_id and self._key_secret)

    async def create_order(
        self,
        amount_minor: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Create an order and return the gateway's JSON body. One attempt, no retries."""
        if not self.configured:
            raise GatewayUnavailable("Payment gateway is not configured")
        body = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "notes": notes or {},
        }
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                auth=(self.key_id, self._key_secret),
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.post("/orders", json=body)
        except httpx.HTTPError as e:
            logger.warning("Gateway order request failed: %s", e)
            raise GatewayUnavailable("Payment gateway request failed") from e

        if response.status_code >= 400:
            logger.warning("Gateway rejected order request: HTTP %s", response.status_code)
            raise GatewayUnavailable(
                f"Payment gateway returned HTTP {response.status_code}",
                upstream_status=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise GatewayUnavailable("Payment gateway returned an invalid response") from e
        if not isinstance(data, dict) or not data.get("id"):
            raise GatewayUnavailable("Payment gateway response has no order id")
        return data


def get_gateway_client() -> GatewayClient:
    """FastAPI dependency; overridden in tests with a mock transport."""
    return GatewayClient(
        base_url=settings.gateway_base_url,
        key_id=settings.gateway_key_id,
        key_secret=settings.gateway_key_secret,
        timeout=settings.gateway_timeout_seconds,
    )
