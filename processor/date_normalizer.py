"""Normalization of iCalendar DTSTART/DTEND values into canonical instants."""
import logging
import re
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

# YYYYMMDDTHHMMSS with an optional trailing Z
TIMESTAMP_PATTERN = re.compile(
    r'^(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})(Z?)$', re.ASCII
)
# YYYYMMDD (all-day)
DATE_ONLY_PATTERN = re.compile(r'^(\d{4})(\d{2})(\d{2})$', re.ASCII)

CANONICAL_FORMAT = '%Y-%m-%dT%H:%M:%S.%fZ'


def parse_ical_date(value: str) -> Optional[str]:
    """
    Convert an iCalendar date or date-time value to a canonical instant.

    Timestamps ending in ``Z`` are UTC. Timestamps without it are read as
    wall-clock time in the local zone of the running process; any TZID
    parameter the feed carried is not consulted. Date-only values become
    midnight UTC of that day.

    Args:
        value: Raw property value (text after the colon)

    Returns:
        Canonical instant string or None if the value is not recognized
    """
    match = TIMESTAMP_PATTERN.match(value)
    if match:
        year, month, day, hour, minute, second = (
            int(part) for part in match.groups()[:6]
        )
        is_utc = match.group(7) == 'Z'
        try:
            moment = datetime(year, month, day, hour, minute, second)
            if is_utc:
                moment = moment.replace(tzinfo=timezone.utc)
            else:
                # Naive datetimes are interpreted in the local zone
                moment = moment.astimezone()
            return format_instant(moment)
        except (ValueError, OverflowError) as e:
            logger.debug(f"Invalid date-time value {value!r}: {e}")
            return None

    match = DATE_ONLY_PATTERN.match(value)
    if match:
        year, month, day = (int(part) for part in match.groups())
        try:
            return format_instant(
                datetime(year, month, day, tzinfo=timezone.utc)
            )
        except ValueError as e:
            logger.debug(f"Invalid date value {value!r}: {e}")
            return None

    logger.debug(f"Unknown date format: {value!r}")
    return None


def format_instant(moment: datetime) -> str:
    """
    Render an aware datetime as a canonical UTC string with milliseconds.

    Example: ``2025-08-05T16:00:00.000Z``
    """
    utc = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return utc.isoformat(timespec='milliseconds') + 'Z'


def to_datetime(instant: str) -> datetime:
    """Parse a canonical instant string back into an aware UTC datetime."""
    return datetime.strptime(instant, CANONICAL_FORMAT).replace(
        tzinfo=timezone.utc
    )


def calendar_date(instant: str) -> str:
    """Return the YYYY-MM-DD portion of a canonical instant."""
    return instant.split('T')[0]
