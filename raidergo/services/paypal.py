from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import quote
import logging

import httpx

from raidergo.core.config import Settings
from raidergo.core.exceptions import (
    AuthenticityError,
    PaymentNotCompletedError,
    ProviderAuthError,
    ProviderUnavailableError,
)
from raidergo.models.payment import VerifiedOrder

logger = logging.getLogger(__name__)

# APPROVED orders are still capturable, the widget normally captures before we see them
PAID_ORDER_STATUSES = {"COMPLETED", "APPROVED"}

class PayPalOrderVerifier:
    """Fetches authoritative order state from PayPal's server-to-server API"""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        api_base: str = "https://api-m.paypal.com",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        client_id, client_secret = settings.require_paypal()
        return cls(
            client_id,
            client_secret,
            api_base=settings.PAYPAL_API_BASE,
            timeout=settings.PROVIDER_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def verify(self, order_id: str, expected_reference: Optional[str] = None) -> VerifiedOrder:
        async with httpx.AsyncClient(base_url=self.api_base, timeout=self.timeout, transport=self.transport) as http:
            token = await self._access_token(http)
            order = await self._fetch_order(http, order_id, token)

        status = order.get("status")
        if status not in PAID_ORDER_STATUSES:
            logger.error(f"PayPal order {order_id} has status {status}, not COMPLETED")
            raise PaymentNotCompletedError(f"Order status is {status}, not COMPLETED")

        units = order.get("purchase_units") or []
        if not units:
            raise PaymentNotCompletedError(f"Order {order_id} has no purchase units")
        unit = units[0]

        custom_id = unit.get("custom_id")
        if custom_id and expected_reference is not None and custom_id != expected_reference:
            logger.warning(
                f"[Security] Custom ID mismatch on order {order_id}! Expected: {expected_reference}, Got: {custom_id}"
            )
            raise AuthenticityError("Order does not belong to this buyer and course")

        amount, currency = _charged_amount(unit)
        return VerifiedOrder(
            order_id=order.get("id", order_id),
            status=status,
            amount=amount,
            currency=currency,
            external_reference=custom_id,
        )

    async def _access_token(self, http: httpx.AsyncClient) -> str:
        try:
            response = await http.post(
                "/v1/oauth2/token",
                auth=(self.client_id, self.client_secret),
                data={"grant_type": "client_credentials"},
            )
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(f"PayPal token request timed out: {e}")
        except httpx.TransportError as e:
            raise ProviderUnavailableError(f"Cannot reach PayPal: {e}")

        if response.status_code >= 500:
            raise ProviderUnavailableError(f"PayPal token endpoint returned {response.status_code}")
        if response.status_code != 200:
            logger.error(f"PayPal token exchange failed with status {response.status_code}")
            raise ProviderAuthError("Failed to get PayPal access token")

        try:
            access_token = response.json().get("access_token")
        except ValueError:
            access_token = None
        if not access_token:
            raise ProviderAuthError("Failed to get PayPal access token")
        return access_token

    async def _fetch_order(self, http: httpx.AsyncClient, order_id: str, token: str) -> dict:
        try:
            response = await http.get(
                f"/v2/checkout/orders/{quote(order_id, safe='')}",
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(f"PayPal order lookup timed out: {e}")
        except httpx.TransportError as e:
            raise ProviderUnavailableError(f"Cannot reach PayPal: {e}")

        if response.status_code >= 500:
            raise ProviderUnavailableError(f"PayPal order endpoint returned {response.status_code}")
        if response.status_code != 200:
            raise PaymentNotCompletedError(f"Order {order_id} could not be fetched ({response.status_code})")

        try:
            return response.json()
        except ValueError:
            raise PaymentNotCompletedError(f"Order {order_id} returned an unreadable body")

def _charged_amount(unit: dict):
    """Prefer the captured amount, fall back to the purchase unit amount"""
    captures = (unit.get("payments") or {}).get("captures") or []
    money = captures[0].get("amount") if captures else None
    if not money:
        money = unit.get("amount") or {}

    try:
        amount = Decimal(str(money["value"]))
        currency = money["currency_code"]
    except (KeyError, InvalidOperation):
        raise PaymentNotCompletedError("Order carries no usable amount")
    return amount, currency
