"""
Indonesian date and currency parsing for detail pages.

Month names are rewritten to their English form before strptime, so parsing
does not depend on the process locale.
"""

import re
from datetime import date, datetime

INDONESIAN_TO_ENGLISH_MONTHS = {
    "januari": "January",
    "februari": "February",
    "pebruari": "February",
    "maret": "March",
    "april": "April",
    "mei": "May",
    "juni": "June",
    "juli": "July",
    "agustus": "August",
    "september": "September",
    "oktober": "October",
    "november": "November",
    "nopember": "November",
    "desember": "December",
}

_MONTH_RE = re.compile(
    r"\b(" + "|".join(INDONESIAN_TO_ENGLISH_MONTHS) + r")\b",
    re.IGNORECASE,
)

# Weekday prefix such as "Senin, "
_WEEKDAY_RE = re.compile(r"^(senin|selasa|rabu|kamis|jumat|jum'at|sabtu|minggu),\s*", re.IGNORECASE)

DATE_FORMATS = (
    "%d %B %Y",
    "%d/%m/%Y",
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%B %Y",
)

TIME_SUFFIXES = (" %H:%M", " %H:%M:%S", "")


def normalize_months(text: str) -> str:
    """Replace Indonesian month names with English ones, any case."""
    return _MONTH_RE.sub(lambda m: INDONESIAN_TO_ENGLISH_MONTHS[m.group(1).lower()], text)


def _clean(text: str) -> str:
    text = " ".join(text.split())
    text = _WEEKDAY_RE.sub("", text)
    text = re.sub(r"\s*(WIB|WITA|WIT)$", "", text)
    return normalize_months(text).strip()


def parse_datetime(text: str | None) -> datetime | None:
    """
    Parse a date with an optional HH:MM time.

    Returns None when no accepted format matches. Month-only dates land on
    the first day of the month.
    """
    if not text:
        return None

    cleaned = _clean(text)
    for fmt in DATE_FORMATS:
        for suffix in TIME_SUFFIXES:
            try:
                return datetime.strptime(cleaned, fmt + suffix)
            except ValueError:
                continue
    return None


def parse_date(text: str | None) -> date | None:
    parsed = parse_datetime(text)
    return parsed.date() if parsed else None


def parse_currency(text: str | None) -> float | None:
    """
    Parse an Indonesian rupiah amount.

    "Rp. 150.000.000,50" -> 150000000.5
    """
    if not text:
        return None

    cleaned = re.sub(r"(?i)rp\.?", "", text)
    cleaned = re.sub(r"\s+", "", cleaned).replace(".", "").replace(",", ".")
    cleaned = re.sub(r"[^0-9.\-]", "", cleaned)
    if not cleaned or cleaned in (".", "-"):
        return None

    try:
        return float(cleaned)
    except ValueError:
        return None
