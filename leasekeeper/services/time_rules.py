"""
Time helpers.
Business dates ("today") are taken in the configured timezone; timestamps are stored as naive UTC.
"""
from datetime import datetime, date
from typing import Optional
import pytz
from ..config import settings


def now_utc() -> datetime:
    return datetime.utcnow().replace(tzinfo=None)


def today_local(timezone_str: Optional[str] = None) -> date:
    """
    Get the current calendar date in the business timezone.

    Args:
        timezone_str: Timezone name (default from settings)

    Returns:
        Local date
    """
    tz = pytz.timezone(timezone_str or settings.tz_default)
    return datetime.now(tz).date()


def to_utc_naive(dt: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(pytz.UTC).replace(tzinfo=None)
