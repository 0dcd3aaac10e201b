"""
Validity window for the new certificate: one day less than the CA has left.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone

from issuer.errors import CAExpiredError

SECONDS_PER_DAY = 86400

# `openssl x509 -enddate` prints e.g. "notAfter=Jun  1 12:00:00 2030 GMT".
# Month names are always English, whatever LC_TIME says.
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
_OPENSSL_DATE = re.compile(
    r"^(?P<month>[A-Z][a-z]{2})\s+(?P<day>\d{1,2})\s+"
    r"(?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2})\s+"
    r"(?P<year>\d{4})(?:\s+GMT)?$"
)


def compute_validity_days(not_after: datetime, now: datetime | None = None) -> int:
    """
    Return whole days until *not_after*, minus one.

    Both instants are reduced to whole epoch seconds before the floor
    division.  Raises CAExpiredError when the result is not positive.
    """
    if now is None:
        now = datetime.now(tz=timezone.utc)
    end_seconds = int(_as_utc(not_after).timestamp())
    now_seconds = int(_as_utc(now).timestamp())

    validity_days = (end_seconds - now_seconds) // SECONDS_PER_DAY - 1
    if validity_days <= 0:
        raise CAExpiredError(
            "CA has already expired or expires in less than one day. "
            "Cannot issue new certificate."
        )
    return validity_days


def parse_openssl_date(text: str) -> datetime:
    """Parse an OpenSSL ``notAfter=`` date into a timezone-aware UTC datetime."""
    value = text.strip()
    if "=" in value:
        value = value.split("=", 1)[1].strip()
    match = _OPENSSL_DATE.match(value)
    if match is None or match["month"] not in _MONTHS:
        raise ValueError(f"unrecognised OpenSSL date {value!r}")
    return datetime(
        int(match["year"]),
        _MONTHS.index(match["month"]) + 1,
        int(match["day"]),
        int(match["hour"]),
        int(match["minute"]),
        int(match["second"]),
        tzinfo=timezone.utc,
    )


def _as_utc(moment: datetime) -> datetime:
    # Naive datetimes are taken to be UTC, as older cryptography returns them.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment
