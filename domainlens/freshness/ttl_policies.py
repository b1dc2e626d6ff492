"""
TTL configuration and per-section expiry policies.

Every policy is a pure function of its explicit arguments that returns the
timestamp at which freshly fetched data becomes stale. Results are always
clamped into the section's [min, max] window, and bad hints fall back to the
section default instead of raising.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from .core import Section

HOUR = 3600
DAY = 24 * HOUR


# TTL configuration by section (in seconds)
TTL_CONFIG: Dict[Section, Dict[str, Any]] = {
    Section.DNS: {
        "default_ttl": HOUR,          # used when the record carries no TTL
        "min_ttl": HOUR,
        "max_ttl": DAY,               # ceiling for long upstream TTLs
    },
    Section.HEADERS: {
        "default_ttl": 6 * HOUR,
        "min_ttl": 6 * HOUR,
        "max_ttl": 6 * HOUR,
    },
    Section.HOSTING: {
        "default_ttl": DAY,
        "min_ttl": DAY,
        "max_ttl": DAY,
    },
    Section.SEO: {
        "default_ttl": DAY,
        "min_ttl": DAY,
        "max_ttl": DAY,
    },
    Section.CERTIFICATES: {
        "default_ttl": DAY,           # normal sliding window
        "min_ttl": HOUR,              # never re-check more often than this
        "max_ttl": DAY,
        "safety_buffer": 2 * DAY,     # re-check this long before validTo
    },
    Section.REGISTRATION: {
        "default_ttl": DAY,
        "min_ttl": HOUR,
        "max_ttl": DAY,
        "expiry_threshold": 7 * DAY,  # switch to aggressive window inside this
        "aggressive_ttl": HOUR,
    },
}


def get_ttl_bounds(section: Section) -> Dict[str, int]:
    """Return (default, min, max) TTL in seconds for a section."""
    config = TTL_CONFIG[section]
    return {
        "default_ttl": config["default_ttl"],
        "min_ttl": config["min_ttl"],
        "max_ttl": config["max_ttl"],
    }


def _clamp(section: Section, now: datetime, expires_at: datetime) -> datetime:
    config = TTL_CONFIG[section]
    lower = now + timedelta(seconds=config["min_ttl"])
    upper = now + timedelta(seconds=config["max_ttl"])
    return max(lower, min(upper, expires_at))


def _as_datetime(value: Any, like: datetime) -> Optional[datetime]:
    """
    Coerce a hint to a datetime comparable with `like`.

    Naive values are taken as UTC when `like` is aware (and vice versa).
    Returns None for anything unusable, including values at the edge of the
    datetime range that cannot be converted.
    """
    if not isinstance(value, datetime):
        return None
    try:
        if like.tzinfo is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        if like.tzinfo is None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
    except (OverflowError, ValueError):
        return None
    return value


def _fixed(section: Section, now: datetime) -> datetime:
    return _clamp(section, now, now + timedelta(seconds=TTL_CONFIG[section]["default_ttl"]))


def ttl_for_headers(now: datetime) -> datetime:
    """HTTP headers: fixed window."""
    return _fixed(Section.HEADERS, now)


def ttl_for_hosting(now: datetime) -> datetime:
    """Hosting detection: fixed window."""
    return _fixed(Section.HOSTING, now)


def ttl_for_seo(now: datetime) -> datetime:
    """SEO metadata: fixed window."""
    return _fixed(Section.SEO, now)


def ttl_for_dns_record(now: datetime, record_ttl_seconds: Any = None) -> datetime:
    """
    DNS records honour the upstream TTL, clamped to [default, ceiling].

    Args:
        now: Fetch time
        record_ttl_seconds: The record's own TTL, if the resolver returned one

    Returns:
        Expiry timestamp
    """
    config = TTL_CONFIG[Section.DNS]
    ttl = config["default_ttl"]
    if (
        isinstance(record_ttl_seconds, (int, float))
        and not isinstance(record_ttl_seconds, bool)
        and math.isfinite(record_ttl_seconds)
        and record_ttl_seconds > 0
    ):
        ttl = max(config["default_ttl"], min(config["max_ttl"], record_ttl_seconds))
    return _clamp(Section.DNS, now, now + timedelta(seconds=ttl))


def ttl_for_certificates(now: datetime, valid_to: Optional[datetime] = None) -> datetime:
    """
    Certificates use a sliding window that tightens as expiry approaches.

    The next check is min(normal window, validTo - safety buffer), but never
    sooner than the minimum check interval.
    """
    config = TTL_CONFIG[Section.CERTIFICATES]
    window_end = now + timedelta(seconds=config["default_ttl"])

    expiry = _as_datetime(valid_to, now)
    if expiry is not None:
        try:
            recheck_at = expiry - timedelta(seconds=config["safety_buffer"])
            window_end = min(window_end, recheck_at)
        except OverflowError:
            # validTo too close to the datetime range limits; use the normal window
            pass

    return _clamp(Section.CERTIFICATES, now, window_end)


def ttl_for_registration(now: datetime, expiration_date: Optional[datetime] = None) -> datetime:
    """
    Registration data is refreshed daily, hourly once the registration
    itself is within the expiry threshold (or already expired).
    """
    config = TTL_CONFIG[Section.REGISTRATION]
    ttl = config["default_ttl"]

    expiry = _as_datetime(expiration_date, now)
    if expiry is not None:
        try:
            remaining = (expiry - now).total_seconds()
        except OverflowError:
            remaining = None
        if remaining is not None and remaining <= config["expiry_threshold"]:
            ttl = config["aggressive_ttl"]

    return _clamp(Section.REGISTRATION, now, now + timedelta(seconds=ttl))


def ttl_for_section(section: Section, now: datetime, hint: Any = None) -> datetime:
    """
    Dispatch to the policy for a section.

    `hint` is the record TTL for DNS, validTo for certificates and the
    expiration date for registration; it is ignored elsewhere.
    """
    if section == Section.DNS:
        return ttl_for_dns_record(now, hint)
    if section == Section.CERTIFICATES:
        return ttl_for_certificates(now, hint)
    if section == Section.REGISTRATION:
        return ttl_for_registration(now, hint)
    return _fixed(section, now)
