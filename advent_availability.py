import datetime
import os

import pytz

from advent_doors import TOTAL_DOORS

# Lokale Zeitzone festlegen
local_timezone = pytz.timezone(os.environ.get("ADVENT_TIMEZONE", "Europe/Berlin"))

ADVENT_MONTH = 12


def get_local_datetime():
    utc_dt = datetime.datetime.now(pytz.utc)  # aktuelle Zeit in UTC
    return utc_dt.astimezone(local_timezone)  # konvertiere in lokale Zeitzone


def to_local_datetime(value):
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            return local_timezone.localize(value)
        return value.astimezone(local_timezone)
    return value


def available_day(now=None):
    """Return the highest door number that may be opened at ``now``.

    0 before December, the day of month from December 1st to 24th and 24
    after Christmas Eve. ``now`` is interpreted in the calendar's timezone.
    """
    if now is None:
        now = get_local_datetime()
    now = to_local_datetime(now)

    if now.month < ADVENT_MONTH:
        return 0
    if now.month > ADVENT_MONTH or now.day > TOTAL_DOORS:
        return TOTAL_DOORS
    return now.day


def effective_available_day(test_mode, now=None):
    if test_mode:
        return TOTAL_DOORS
    return available_day(now)
