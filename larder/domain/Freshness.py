"""Freshness classification of a batch, derived from its expiration and the current instant."""
from datetime import datetime, timedelta
from enum import Enum

from larder.utilities.constants import EXPIRING_WINDOW
from larder.utilities.dates import as_utc


class Freshness(str, Enum):
    Fresh = "Fresh"
    ExpiringToday = "ExpiringToday"
    Expired = "Expired"

    def __str__(self) -> str:
        return self.value


def classify(expiration: datetime, now: datetime, window: timedelta = EXPIRING_WINDOW) -> Freshness:
    """Return the freshness of something expiring at `expiration`, seen at `now`.

    Expired once `now` is past the expiration; ExpiringToday while the
    expiration lies in the rolling [now, now + window) interval; Fresh after.
    An expiration equal to `now` is ExpiringToday.
    """
    expiration = as_utc(expiration)
    now = as_utc(now)
    if now > expiration:
        return Freshness.Expired
    if expiration < now + window:
        return Freshness.ExpiringToday
    return Freshness.Fresh


__all__ = ["Freshness", "classify"]
