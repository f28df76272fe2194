"""
Notification hand-off.

Delivery (email, push) belongs to an external service; the engine only emits
a structured event. Failures never affect the calling operation.
"""
from typing import Optional, Dict, Any

import structlog

from ..config import settings


logger = structlog.get_logger(__name__)


def notify_user(
    user_id,
    kind: str,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Fire-and-forget notification.

    Args:
        user_id: Recipient user ID
        kind: Notification kind (payment_claimed|payment_confirmed|ticket_assigned|...)
        title: Short title
        message: Body text
        data: Extra routing data (entity ids)

    Returns:
        True if the notification was emitted
    """
    if not settings.enable_notifications or not user_id:
        return False
    try:
        logger.info(
            "notification_emitted",
            user_id=str(user_id),
            kind=kind,
            title=title,
            message=message,
            data={k: str(v) for k, v in (data or {}).items()},
        )
        return True
    except Exception as e:
        logger.warning("notification_failed", user_id=str(user_id), kind=kind, error=str(e))
        return False
