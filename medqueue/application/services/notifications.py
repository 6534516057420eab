import logging
from datetime import timedelta

from ..ports.notifier import Notifier
from ..ports.waitlist_repo import Bucket

logger = logging.getLogger(__name__)


def send_quietly(notifier: Notifier, user_id: str, message: str, urgent: bool = False) -> None:
    """Fire-and-forget delivery; a failing notifier never fails the caller."""
    try:
        notifier.notify(user_id, message, urgent=urgent)
    except Exception as exc:
        logger.warning("Notification to %s failed: %s", user_id, exc)


def describe_bucket(bucket: Bucket) -> str:
    return f"doctor {bucket.doctor_id} on {bucket.date.strftime('%Y-%m-%d')} at {bucket.time}"


def describe_window(window: timedelta) -> str:
    minutes = int(window.total_seconds() // 60)
    if minutes % 60 == 0:
        hours = minutes // 60
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minutes"
