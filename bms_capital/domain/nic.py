"""Sri Lankan National Identity Code (NIC) parsing"""

import re
from datetime import date, timedelta
from typing import Optional, Tuple

OLD_NIC_PATTERN = re.compile(r"^\d{9}[VX]$")
NEW_NIC_PATTERN = re.compile(r"^\d{12}$")
VALID_NIC_PATTERN = re.compile(r"^(\d{9}[VXvx]|\d{12})$")

# Female day-of-year values are offset by 500 in the issuing scheme
FEMALE_DAY_OFFSET = 500

# NIC day counts always assume a 366-day year
REFERENCE_LEAP_YEAR = 2000

MAX_NIC_LENGTH = 12
MIN_LOOKUP_LENGTH = 9


def normalize_nic(value: str) -> str:
    """Keep digits and V/X only, uppercase, truncate to 12 characters"""
    return re.sub(r"[^0-9vVxX]", "", value).upper()[:MAX_NIC_LENGTH]


def is_valid_nic(nic: str) -> bool:
    """True for the old (9 digits + V/X) and new (12 digits) formats; surrounding whitespace is not accepted"""
    return bool(VALID_NIC_PATTERN.fullmatch(nic))


def _split_nic(nic: str) -> Optional[Tuple[int, int]]:
    """Return (birth_year, raw_day_value), or None for a malformed NIC"""
    clean = nic.upper()
    if OLD_NIC_PATTERN.fullmatch(clean):
        return int("19" + clean[0:2]), int(clean[2:5])
    if NEW_NIC_PATTERN.fullmatch(clean):
        return int(clean[0:4]), int(clean[4:7])
    return None


def extract_gender_from_nic(nic: str) -> Optional[str]:
    """'Female' when the day field carries the 500 offset, else 'Male'"""
    parts = _split_nic(nic)
    if parts is None:
        return None
    _, day_value = parts
    return "Female" if day_value > FEMALE_DAY_OFFSET else "Male"


def extract_birthday_from_nic(nic: str) -> Optional[str]:
    """
    Derive the date of birth as YYYY-MM-DD.

    Month and day come from placing the day-of-year on the reference leap
    year, so day 60 is always February 29 regardless of the birth year.
    Out-of-range day values roll over the same way calendar arithmetic does.

    Example:
        881234567V -> year 1988, day 123 -> 1988-05-02
    """
    parts = _split_nic(nic)
    if parts is None:
        return None
    birth_year, day_value = parts

    if day_value > FEMALE_DAY_OFFSET:
        day_value -= FEMALE_DAY_OFFSET

    reference = date(REFERENCE_LEAP_YEAR, 1, 1) + timedelta(days=day_value - 1)
    return f"{birth_year}-{reference.month:02d}-{reference.day:02d}"
