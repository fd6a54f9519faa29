from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from decimal import Decimal, InvalidOperation
from bson.decimal128 import Decimal128
from typing import Optional
import logging

from raidergo.models.payment import CaptureRequest, CheckoutLinkRequest
from raidergo.db.session import get_db
from raidergo.core.config import Settings, get_settings
from raidergo.core.exceptions import BuyerMismatchError, PaymentError, PaymentNotCompletedError
from raidergo.services.auth import get_current_buyer_id_optional
from raidergo.services.notification import notify_admins_unrecorded_payment, notify_purchase_recorded
from raidergo.services.paypal import PayPalOrderVerifier
from raidergo.services.purchase import record_purchase
from raidergo.services.verifone import (
    PAID_SALE_STATUSES,
    authenticate_ipn,
    build_checkout_link,
    compose_external_reference,
    resolve_buyer,
)

logger = logging.getLogger(__name__)
router = APIRouter()

def error_response(error: PaymentError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content={"error": error.message})

def get_paypal_verifier(settings: Settings = Depends(get_settings)) -> PayPalOrderVerifier:
    return PayPalOrderVerifier.from_settings(settings)

def _as_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal128):
        return value.to_decimal()
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None

@router.post("/payments/verifone/link")
async def create_verifone_link(
    data: CheckoutLinkRequest,
    db=Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Build a signed hosted-checkout link priced from the course catalog"""
    try:
        settings.require_verifone_link()
    except PaymentError as e:
        logger.error(f"[Generate Link] {e.message}")
        return error_response(e)

    course = await db.courses.find_one({"id": data.course_id})
    if not course:
        return JSONResponse(status_code=404, content={"error": "Course not found"})

    price = _as_decimal(course.get("price"))
    if price is None or price <= 0:
        return JSONResponse(status_code=400, content={"error": "Course price not set"})

    url = build_checkout_link(
        settings,
        course_id=data.course_id,
        price=price,
        currency=course.get("currency") or "USD",
        buyer_id=data.user_id,
        title=data.title,
    )
    logger.info(f"[Generate Link] Checkout link created for course {data.course_id}")
    return {"url": url}

@router.post("/payments/paypal/capture")
async def capture_paypal_purchase(
    data: CaptureRequest,
    db=Depends(get_db),
    verifier: PayPalOrderVerifier = Depends(get_paypal_verifier),
    token_buyer_id: Optional[str] = Depends(get_current_buyer_id_optional),
):
    """Re-verify a widget-approved PayPal order server side and record the purchase"""
    logger.info(f"[PayPal Verify] Checking order {data.order_id} for user {data.user_id}")

    if token_buyer_id is not None and token_buyer_id != data.user_id:
        logger.warning(f"[Security] Session user {token_buyer_id} tried to capture for {data.user_id}")
        return error_response(BuyerMismatchError("Session does not match the purchasing user"))

    try:
        order = await verifier.verify(
            data.order_id,
            expected_reference=compose_external_reference(data.course_id, data.user_id),
        )
    except PaymentError as e:
        logger.error(f"[PayPal Verify] Order {data.order_id} rejected: {e.message}")
        return error_response(e)

    if data.amount is not None and data.amount != order.amount:
        logger.warning(
            f"[PayPal Verify] Client claimed {data.amount} for order {data.order_id}, PayPal reports {order.amount}"
        )

    try:
        course = await db.courses.find_one({"id": data.course_id})
        list_price = _as_decimal(course.get("price")) if course else None
        list_currency = course.get("currency") if course else None
        if list_currency and list_currency != order.currency:
            logger.warning(
                f"[PayPal Verify] Order {data.order_id} paid in {order.currency}, course is sold in {list_currency}"
            )
            return error_response(PaymentNotCompletedError("Order currency does not match the course"))
        if list_price is not None and order.amount < list_price:
            logger.warning(
                f"[PayPal Verify] Order {data.order_id} paid {order.amount} {order.currency}, course lists {list_price}"
            )
            return error_response(PaymentNotCompletedError("Order amount is below the course price"))
        if list_price is not None and order.amount != list_price:
            logger.info(f"[PayPal Verify] Order {data.order_id} paid {order.amount}, above list price {list_price}")

        result = await record_purchase(
            db,
            buyer_id=data.user_id,
            course_id=data.course_id,
            amount=order.amount,
            currency=order.currency,
            provider_ref=order.order_id,
            provider="paypal",
        )
        if result.created:
            await notify_purchase_recorded(db, result.purchase, course.get("title") if course else None)
    except PaymentError as e:
        logger.error(f"[PayPal Verify] Order {data.order_id} not recorded: {e.message}")
        return error_response(e)
    except Exception as e:
        logger.error(f"PayPal Verify Error: {str(e)}")
        return JSONResponse(status_code=500, content={"error": "Failed to record purchase"})

    if not result.created:
        return {"success": True, "message": "Already purchased"}
    return {"success": True}

@router.post("/payments/verifone/webhook")
async def verifone_webhook(
    request: Request,
    db=Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Verifone IPN: authenticate, record paid sales, always acknowledge authentic calls"""
    try:
        secret = settings.require_verifone_ipn()
    except PaymentError as e:
        logger.error(f"[Verifone Webhook] {e.message}")
        return error_response(e)

    try:
        form = await request.form()
    except Exception as e:
        logger.error(f"[Verifone Webhook] Unreadable body: {str(e)}")
        return JSONResponse(status_code=400, content={"error": "Malformed form body"})

    fields = [(key, str(value)) for key, value in form.multi_items()]
    if not fields:
        return JSONResponse(status_code=400, content={"error": "Empty IPN payload"})

    try:
        payload = authenticate_ipn(secret, fields)
    except PaymentError as e:
        return error_response(e)

    ref_no = payload.get("REFNO")
    sale_status = payload.get("SALE_STATUS")
    logger.info(f"[Verifone Webhook] REFNO {ref_no} status {sale_status}")

    if sale_status in PAID_SALE_STATUSES:
        try:
            await _record_paid_ipn(db, payload)
        except Exception as e:
            # Redelivery would not fix this; an operator has to
            logger.error(f"[Verifone Webhook] Failed to record REFNO {ref_no}: {str(e)}")

    return PlainTextResponse("OK")

async def _record_paid_ipn(db, payload: dict):
    ref_no = payload.get("REFNO")
    reference = payload.get("EXTERNAL_REFERENCE", "")
    customer_email = payload.get("CUSTOMER_EMAIL")

    buyer_id, course_id = await resolve_buyer(db, reference, customer_email)
    amount = _as_decimal(payload.get("TOTAL_PRICE"))
    currency = payload.get("CURRENCY")

    problem = None
    if not ref_no:
        problem = "missing REFNO"
    elif not course_id:
        problem = "missing course reference"
    elif not buyer_id:
        problem = f"no buyer found for reference '{reference}'"
    elif amount is None or not currency:
        problem = "missing amount or currency"

    if problem:
        logger.warning(f"[Verifone Webhook] Paid order {ref_no} not recorded: {problem}")
        await notify_admins_unrecorded_payment(
            db,
            reason=problem,
            provider_ref=ref_no,
            course_id=course_id,
            details={
                "EXTERNAL_REFERENCE": reference,
                "CUSTOMER_EMAIL": customer_email,
                "TOTAL_PRICE": payload.get("TOTAL_PRICE"),
                "CURRENCY": currency,
            },
        )
        return None

    result = await record_purchase(
        db,
        buyer_id=buyer_id,
        course_id=course_id,
        amount=amount,
        currency=currency,
        provider_ref=ref_no,
        provider="verifone",
    )
    if result.created:
        course = await db.courses.find_one({"id": course_id})
        await notify_purchase_recorded(db, result.purchase, course.get("title") if course else None)
    return result
