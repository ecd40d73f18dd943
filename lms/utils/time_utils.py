import math
import time

import pytz
from datetime import datetime

JAKARTA = pytz.timezone("Asia/Jakarta")

def get_jakarta_time():
    """
    Returns the current time in Asia/Jakarta (WIB) as a naive datetime.
    """
    return datetime.now(JAKARTA).replace(tzinfo=None)

def to_jakarta_naive(value: datetime) -> datetime:
    """Aware datetimes are converted to WIB; naive ones are taken as WIB already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(JAKARTA).replace(tzinfo=None)

def seconds_until(deadline: float, now: float = None) -> int:
    """Whole seconds left until an epoch timestamp, rounded up, never negative."""
    if now is None:
        now = time.time()
    return max(0, math.ceil(deadline - now))
