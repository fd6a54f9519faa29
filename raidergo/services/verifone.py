from decimal import Decimal
from typing import List, Optional, Tuple
from urllib.parse import urlencode
import logging

from raidergo.core.config import Settings
from raidergo.core.exceptions import SignatureMismatchError
from raidergo.services import signature

logger = logging.getLogger(__name__)

REFERENCE_SEPARATOR = "|"
PAID_SALE_STATUSES = {"COMPLETE", "AUTHCC"}
HASH_FIELD = "HASH"
DEFAULT_PRODUCT_NAME = "Digital Course Access"

def compose_external_reference(course_id: str, buyer_id: Optional[str] = None) -> str:
    if buyer_id:
        return f"{buyer_id}{REFERENCE_SEPARATOR}{course_id}"
    return course_id

def split_external_reference(reference: str) -> Tuple[Optional[str], str]:
    """Returns (buyer_id, course_id); buyer_id is None for course-only references"""
    if REFERENCE_SEPARATOR in reference:
        buyer_id, course_id = reference.split(REFERENCE_SEPARATOR, 1)
        return buyer_id or None, course_id
    return None, reference

def build_checkout_link(
    settings: Settings,
    course_id: str,
    price: Decimal,
    currency: str = "USD",
    buyer_id: Optional[str] = None,
    title: Optional[str] = None,
) -> str:
    merchant, secret = settings.require_verifone_link()
    base_url = settings.PUBLIC_BASE_URL.rstrip("/")

    params = {
        "merchant": merchant,
        "dynamic": "1",
        "currency": currency,
        "prod": title or DEFAULT_PRODUCT_NAME,
        "price": str(price),
        "qty": "1",
        "type": "digital",
        "order-ext-ref": compose_external_reference(course_id, buyer_id),
        "item-ext-ref": course_id,
        "return-url": f"{base_url}/payment/success?{urlencode({'course_id': course_id})}",
        "return-type": "redirect",
    }
    # Every parameter sent is signed, nothing more
    params["signature"] = signature.sign_params(secret, params)
    return f"{settings.VERIFONE_CHECKOUT_URL}?{urlencode(params)}"

def authenticate_ipn(secret: str, fields: List[Tuple[str, str]]) -> dict:
    """
    Check the IPN HASH over every other posted field and return the payload
    as a dict (first value wins for repeated keys).
    """
    digest = None
    signed = []
    for key, value in fields:
        if key == HASH_FIELD:
            digest = value
        else:
            signed.append((key, value))

    if not digest:
        logger.warning("[Verifone Webhook] No HASH found in request")
        raise SignatureMismatchError("Missing IPN signature")
    if not signature.verify(secret, signed, digest):
        logger.warning("[Verifone Webhook] HASH mismatch, payload rejected")
        raise SignatureMismatchError("Invalid IPN signature")

    payload = {}
    for key, value in signed:
        payload.setdefault(key, value)
    return payload

async def resolve_buyer(db, reference: str, customer_email: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Map an external reference to (buyer_id, course_id), looking the payer up by email if needed"""
    if not reference:
        return None, None

    buyer_id, course_id = split_external_reference(reference)
    if buyer_id or not course_id:
        return buyer_id, course_id or None

    if not customer_email:
        return None, course_id

    user = await db.users.find_one({"email": customer_email.strip().lower()})
    if user is None:
        # Directory emails may not be normalised
        user = await db.users.find_one({"email": customer_email.strip()})
    return (user["id"] if user else None), course_id
