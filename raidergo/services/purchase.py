from decimal import Decimal
import logging

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from raidergo.core.exceptions import AuthenticityError
from raidergo.models.payment import Purchase, RecordResult

logger = logging.getLogger(__name__)

async def ensure_indexes(db):
    """Unique keys that make purchase recording idempotent"""
    await db.purchases.create_index([("provider_ref", ASCENDING)], unique=True, name="uniq_provider_ref")
    await db.purchases.create_index(
        [("buyer_id", ASCENDING), ("course_id", ASCENDING)], unique=True, name="uniq_buyer_course"
    )

async def record_purchase(
    db,
    buyer_id: str,
    course_id: str,
    amount: Decimal,
    currency: str,
    provider_ref: str,
    provider: str,
) -> RecordResult:
    """
    Insert a completed purchase once.

    A duplicate provider_ref or (buyer, course) pair is a successful no-op:
    the existing row is returned with created=False. A provider_ref already
    recorded for another buyer or course raises AuthenticityError.
    """
    purchase = Purchase(
        buyer_id=buyer_id,
        course_id=course_id,
        amount=amount,
        currency=currency,
        payment_status="completed",
        provider=provider,
        provider_ref=provider_ref,
    )

    try:
        await db.purchases.insert_one(purchase.to_document())
    except DuplicateKeyError:
        existing = await db.purchases.find_one({"provider_ref": provider_ref})
        if existing is None:
            existing = await db.purchases.find_one({"buyer_id": buyer_id, "course_id": course_id})
        if existing is None:
            # The conflicting row vanished between insert and read
            raise
        if existing.get("buyer_id") != buyer_id or existing.get("course_id") != course_id:
            logger.warning(
                f"[Security] {provider} ref {provider_ref} already recorded for buyer {existing.get('buyer_id')}, "
                f"course {existing.get('course_id')}; refused for buyer {buyer_id}, course {course_id}"
            )
            raise AuthenticityError("Payment already belongs to another purchase")
        logger.info(f"Purchase already recorded for {provider} ref {provider_ref}")
        existing.pop("_id", None)
        return RecordResult(purchase=Purchase(**existing), created=False)

    logger.info(f"Purchase {purchase.id} recorded: buyer {buyer_id}, course {course_id}, {amount} {currency}")
    return RecordResult(purchase=purchase, created=True)
