from decimal import Decimal

import httpx
import pytest

from raidergo.core.config import Settings
from raidergo.core.exceptions import (
    AuthenticityError,
    ConfigurationError,
    PaymentNotCompletedError,
    ProviderAuthError,
    ProviderUnavailableError,
)
from raidergo.services.paypal import PayPalOrderVerifier

async def test_completed_order_returns_authoritative_amount(paypal):
    paypal.add_order("ORDER-1", value="49.99", custom_id="user-1|C1")

    order = await paypal.verifier().verify("ORDER-1", expected_reference="user-1|C1")

    assert order.status == "COMPLETED"
    assert order.amount == Decimal("49.99")
    assert order.currency == "USD"
    assert order.external_reference == "user-1|C1"

async def test_token_exchange_uses_client_credentials(paypal):
    paypal.add_order("ORDER-1")
    await paypal.verifier().verify("ORDER-1")

    token_request, order_request = paypal.calls
    assert token_request.method == "POST"
    assert token_request.headers["Authorization"].startswith("Basic ")
    assert token_request.content == b"grant_type=client_credentials"
    assert order_request.url.path == "/v2/checkout/orders/ORDER-1"

async def test_order_id_is_escaped_in_the_lookup_path(paypal):
    with pytest.raises(PaymentNotCompletedError):
        await paypal.verifier().verify("../../v1/identity")

    order_request = paypal.calls[-1]
    assert order_request.url.raw_path == b"/v2/checkout/orders/..%2F..%2Fv1%2Fidentity"

async def test_approved_order_counts_as_paid(paypal):
    paypal.add_order("ORDER-2", status="APPROVED")
    order = await paypal.verifier().verify("ORDER-2")
    assert order.status == "APPROVED"

async def test_captured_amount_wins_over_unit_amount(paypal):
    paypal.add_order("ORDER-3", value="49.99", captured="45.00")
    order = await paypal.verifier().verify("ORDER-3")
    assert order.amount == Decimal("45.00")

@pytest.mark.parametrize("status", ["CREATED", "SAVED", "VOIDED", "PAYER_ACTION_REQUIRED"])
async def test_unpaid_status_is_rejected(paypal, status):
    paypal.add_order("ORDER-4", status=status)
    with pytest.raises(PaymentNotCompletedError):
        await paypal.verifier().verify("ORDER-4")

async def test_unknown_order_is_rejected(paypal):
    with pytest.raises(PaymentNotCompletedError):
        await paypal.verifier().verify("MISSING")

async def test_custom_id_mismatch_is_an_authenticity_error(paypal):
    paypal.add_order("ORDER-5", custom_id="someone-else|C1")
    with pytest.raises(AuthenticityError):
        await paypal.verifier().verify("ORDER-5", expected_reference="user-1|C1")

async def test_order_without_custom_id_is_accepted(paypal):
    paypal.add_order("ORDER-6")
    order = await paypal.verifier().verify("ORDER-6", expected_reference="user-1|C1")
    assert order.external_reference is None

async def test_rejected_credentials_raise_provider_auth_error(paypal):
    paypal.token_status = 401
    with pytest.raises(ProviderAuthError):
        await paypal.verifier().verify("ORDER-1")

async def test_token_endpoint_outage_is_retryable(paypal):
    paypal.token_status = 503
    with pytest.raises(ProviderUnavailableError):
        await paypal.verifier().verify("ORDER-1")

async def test_timeout_is_retryable(paypal):
    paypal.add_order("ORDER-7")
    paypal.order_error = httpx.ReadTimeout("timed out")
    with pytest.raises(ProviderUnavailableError):
        await paypal.verifier().verify("ORDER-7")

def test_from_settings_requires_credentials():
    with pytest.raises(ConfigurationError):
        PayPalOrderVerifier.from_settings(Settings(PAYPAL_CLIENT_ID="client-id", PAYPAL_CLIENT_SECRET=None))

def test_from_settings_applies_timeout_and_base():
    verifier = PayPalOrderVerifier.from_settings(
        Settings(
            PAYPAL_CLIENT_ID="client-id",
            PAYPAL_CLIENT_SECRET="client-secret",
            PAYPAL_API_BASE="https://api-m.sandbox.paypal.com/",
            PROVIDER_TIMEOUT_SECONDS=5,
        )
    )
    assert verifier.api_base == "https://api-m.sandbox.paypal.com"
    assert verifier.timeout == 5
