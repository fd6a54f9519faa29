from typing import Optional, Dict, Any
import logging

from raidergo.models.notification import Notification
from raidergo.models.payment import Purchase

logger = logging.getLogger(__name__)

async def notify_purchase_recorded(db, purchase: Purchase, course_title: Optional[str] = None):
    """Tell the buyer their course is unlocked"""
    name = f"'{course_title}'" if course_title else "your course"
    notification = Notification(
        user_id=purchase.buyer_id,
        title="Purchase Successful!",
        message=f"You now have access to {name}.",
        type="success",
        course_id=purchase.course_id,
        provider_ref=purchase.provider_ref,
        action_url=f"/courses/{purchase.course_id}",
    )
    try:
        await db.notifications.insert_one(notification.model_dump())
    except Exception as e:
        # The purchase row is what grants access; a lost notification is not fatal
        logger.error(f"Failed to notify buyer {purchase.buyer_id}: {str(e)}")
        return None
    return notification

async def notify_admins_unrecorded_payment(
    db,
    reason: str,
    provider_ref: Optional[str],
    course_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> int:
    """Surface a paid event that could not be turned into a purchase to every admin"""
    admin_users = await db.users.find({"role": "admin"}).to_list(100)

    notifications_sent = 0
    for admin in admin_users:
        notification = Notification(
            user_id=admin["id"],
            title="Payment needs attention",
            message=f"A paid order ({provider_ref or 'no reference'}) was not recorded: {reason}",
            type="warning",
            course_id=course_id,
            provider_ref=provider_ref,
            details=details or {},
        )
        try:
            await db.notifications.insert_one(notification.model_dump())
            notifications_sent += 1
        except Exception as e:
            logger.error(f"Failed to send notification to admin {admin['id']}: {str(e)}")

    if not notifications_sent:
        logger.warning(f"No admin could be notified about unrecorded payment {provider_ref}")
    return notifications_sent
