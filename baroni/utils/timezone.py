"""Slot time parsing and local-to-UTC conversion.

Stars declare a country rather than an IANA zone, so offsets come from a
fixed lookup table. Times inside a slot are local wall-clock times.
"""

import logging
import re
from datetime import date, datetime, timedelta
from typing import Optional

logger = logging.getLogger(__name__)

# Country -> UTC offset in hours. Keys cover common spellings and ISO codes.
COUNTRY_TIMEZONES: dict[str, float] = {
    "India": 5.5,
    "भारत": 5.5,
    "Bharat": 5.5,
    "IN": 5.5,
    "Mali": 0,
    "ML": 0,
    "Senegal": 0,
    "SN": 0,
    "Côte d'Ivoire": 0,
    "Ivory Coast": 0,
    "CI": 0,
    "Burkina Faso": 0,
    "BF": 0,
    "Guinea": 0,
    "GN": 0,
}

_AMPM_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*(AM|PM)$", re.IGNORECASE)
_H24_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_LOOSE_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*(AM|PM)?$", re.IGNORECASE)
_YMD_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def get_country_offset(country: Optional[str]) -> float:
    """UTC offset in hours for a country; unknown or empty means UTC."""
    if not country:
        return 0
    name = country.strip()
    if name in COUNTRY_TIMEZONES:
        return COUNTRY_TIMEZONES[name]
    lowered = name.lower()
    for key, offset in COUNTRY_TIMEZONES.items():
        if key.lower() == lowered:
            return offset
    return 0


def normalize_time(value: str) -> str:
    """Return a single time as 24-hour HH:MM. Accepts 24-hour or h:mm AM/PM."""
    if not isinstance(value, str):
        raise ValueError("Invalid time")
    raw = value.strip()

    m = _AMPM_RE.match(raw)
    if m:
        hour, minute, suffix = int(m.group(1)), int(m.group(2)), m.group(3).upper()
        if hour < 1 or hour > 12:
            raise ValueError("Hour must be 1-12")
        if minute > 59:
            raise ValueError("Minute must be 00-59")
        if suffix == "PM" and hour != 12:
            hour += 12
        if suffix == "AM" and hour == 12:
            hour = 0
        return f"{hour:02d}:{minute:02d}"

    m = _H24_RE.match(raw)
    if m:
        return f"{int(m.group(1)):02d}:{m.group(2)}"

    raise ValueError("Invalid time format")


def normalize_slot(slot: str) -> str:
    """Canonical "HH:MM - HH:MM" form of a slot string."""
    if not isinstance(slot, str):
        raise ValueError("Invalid time slot")
    parts = slot.split("-")
    if len(parts) != 2:
        raise ValueError("Time slot must be in start-end format")
    return f"{normalize_time(parts[0])} - {normalize_time(parts[1])}"


def slot_start_minutes(slot: str) -> Optional[int]:
    """Minutes since midnight of a slot's start, or None if unparseable.

    Works on canonical slots as well as legacy "09:30 AM - 09:50 AM" strings.
    """
    if not isinstance(slot, str):
        return None
    start = slot.split("-")[0].strip()
    m = _LOOSE_RE.match(start)
    if not m:
        return None
    hour, minute = int(m.group(1)), int(m.group(2))
    suffix = (m.group(3) or "").upper()
    if suffix == "PM" and hour != 12:
        hour += 12
    if suffix == "AM" and hour == 12:
        hour = 0
    return hour * 60 + minute


def parse_ymd(value: str) -> date:
    m = _YMD_RE.match(str(value or "").strip())
    if not m:
        raise ValueError("Invalid date format; expected YYYY-MM-DD")
    return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def format_ymd(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def local_now(utc_now: datetime, country: Optional[str]) -> datetime:
    """Wall-clock time in the star's country for a naive UTC instant."""
    return utc_now + timedelta(hours=get_country_offset(country))


def convert_local_to_utc(date_str: str, time_str: str, country: Optional[str]) -> Optional[datetime]:
    """Naive UTC instant of a slot's start given the star's country.

    Returns None when either the date or the slot cannot be parsed.
    """
    try:
        day = parse_ymd(date_str)
    except ValueError:
        return None
    minutes = slot_start_minutes(time_str)
    if minutes is None:
        return None

    offset = get_country_offset(country)
    local_start = datetime(day.year, day.month, day.day) + timedelta(minutes=minutes)
    utc_start = local_start - timedelta(hours=offset)
    logger.debug(
        "Converted %s %s (%s, offset %sh) -> %s UTC",
        date_str, time_str, country or "unknown", offset, utc_start.isoformat(),
    )
    return utc_start


def parse_legacy_start(date_str: str, time_str: str) -> Optional[datetime]:
    """Start instant for rows stored before utc_start_time existed.

    The raw strings carry no zone, so they are read as UTC wall-clock.
    """
    return convert_local_to_utc(date_str, time_str, None)
