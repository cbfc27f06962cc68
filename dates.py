import logging
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from config import DAYS_BACK, PARTNER_DATE_FORMAT, PARTNER_TIMEZONE, TARGET_TIMEZONE
from models import DateWindow

logger = logging.getLogger(__name__)

# Event dates look like "Tue Jan 02 2024 10:00:00 +0000 (UTC)"
EVENT_DATE_FORMAT = "%a %b %d %Y %H:%M:%S"
EVENT_DATE_SUFFIX = "+0000 (UTC)"
# Zone abbreviations denote fixed offsets from UTC, in hours
ZONE_OFFSETS = {
    "UTC": 0,
    "GMT": 0,
    "Z": 0,
    "WET": 0,
    "WEST": 1,
    "BST": 1,
    "CET": 1,
    "CEST": 2,
    "EET": 2,
    "EEST": 3,
    "EST": -5,
    "EDT": -4,
    "CST": -6,
    "CDT": -5,
    "MST": -7,
    "MDT": -6,
    "PST": -8,
    "PDT": -7,
}


def init_dates(days_back=DAYS_BACK, now=None):
    """Compute the trailing window ending at ``now``.

    The local bounds keep the local UTC offset; the partner bounds are the
    same instants rendered in GMT as ``YYYY-MM-DD HH:MM:SS``.
    """
    if days_back < 0:
        raise ValueError(f"days_back must not be negative, got {days_back}")

    local_end = (now or datetime.now()).astimezone()
    local_start = local_end - timedelta(days=days_back)

    partner_zone = ZoneInfo(PARTNER_TIMEZONE)
    window = DateWindow(
        local_start=local_start,
        local_end=local_end,
        partner_start=local_start.astimezone(partner_zone).strftime(PARTNER_DATE_FORMAT),
        partner_end=local_end.astimezone(partner_zone).strftime(PARTNER_DATE_FORMAT),
    )
    logger.debug("Date window: %s to %s (GMT)", window.partner_start, window.partner_end)
    return window


def format_partner_date(value, target_timezone=TARGET_TIMEZONE):
    """Render a partner event date as ``YYYY-MM-DD HH:MM:SS`` in ``target_timezone``.

    A trailing zone abbreviation sets the source offset, otherwise UTC is
    assumed. Returns None when the string does not match the expected format
    exactly or names an unknown zone.
    """
    text = value.replace(EVENT_DATE_SUFFIX, "").strip()
    offset = 0
    head, _, zone = text.rpartition(" ")
    if zone.isalpha():
        if zone.upper() not in ZONE_OFFSETS:
            return None
        offset = ZONE_OFFSETS[zone.upper()]
        text = head

    try:
        parsed = datetime.strptime(text, EVENT_DATE_FORMAT)
    except ValueError:
        return None

    parsed = parsed.replace(tzinfo=timezone(timedelta(hours=offset)))
    return parsed.astimezone(ZoneInfo(target_timezone)).strftime(PARTNER_DATE_FORMAT)
