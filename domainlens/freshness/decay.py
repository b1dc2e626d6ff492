"""
Inactivity decay tables for revalidation scheduling.

The longer nobody has looked at a domain, the further out its next refresh is
pushed, until a hard cutoff after which it is no longer refreshed at all.
"""
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from .core import Section

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class DecayTier:
    """Multiplier that applies once inactivity reaches `days`."""
    days: float
    multiplier: float


@dataclass(frozen=True)
class DecayProfile:
    name: str
    tiers: Tuple[DecayTier, ...]   # ascending by days, first tier starts at 0
    cutoff_days: float             # exclusive: stop only when strictly beyond


FAST_CHANGING = DecayProfile(
    name="fast",
    tiers=(
        DecayTier(days=0, multiplier=1),
        DecayTier(days=3, multiplier=3),
        DecayTier(days=14, multiplier=10),
        DecayTier(days=60, multiplier=30),
    ),
    cutoff_days=180,
)

SLOW_CHANGING = DecayProfile(
    name="slow",
    tiers=(
        DecayTier(days=0, multiplier=1),
        DecayTier(days=3, multiplier=5),
        DecayTier(days=14, multiplier=20),
        DecayTier(days=60, multiplier=50),
    ),
    cutoff_days=90,
)

# Section -> decay profile
DECAY_PROFILES: Dict[Section, DecayProfile] = {
    Section.DNS: FAST_CHANGING,
    Section.HEADERS: FAST_CHANGING,
    Section.CERTIFICATES: FAST_CHANGING,
    Section.REGISTRATION: SLOW_CHANGING,
    Section.HOSTING: SLOW_CHANGING,
    Section.SEO: SLOW_CHANGING,
}


def get_decay_profile(section: Section) -> DecayProfile:
    return DECAY_PROFILES[section]


def inactive_days(last_accessed_at: Optional[datetime], now: datetime) -> Optional[float]:
    """
    Days since last access, or None when unknown or in the future.

    Naive datetimes are treated as UTC.
    """
    if last_accessed_at is None:
        return None
    if now.tzinfo is not None and last_accessed_at.tzinfo is None:
        last_accessed_at = last_accessed_at.replace(tzinfo=timezone.utc)
    elif now.tzinfo is None and last_accessed_at.tzinfo is not None:
        last_accessed_at = last_accessed_at.astimezone(timezone.utc).replace(tzinfo=None)

    elapsed = (now - last_accessed_at).total_seconds()
    if elapsed < 0:
        return None
    return elapsed / SECONDS_PER_DAY


def get_decay_multiplier(
    section: Section,
    last_accessed_at: Optional[datetime],
    now: datetime,
) -> float:
    """
    Multiplier for the section's base refresh interval.

    Unknown or future access times get the normal cadence (1).
    """
    days = inactive_days(last_accessed_at, now)
    if days is None:
        return 1

    tiers = get_decay_profile(section).tiers
    for tier in reversed(tiers):
        if days >= tier.days:
            return tier.multiplier
    return tiers[0].multiplier


def should_stop_revalidation(
    section: Section,
    last_accessed_at: Optional[datetime],
    now: datetime,
) -> bool:
    """True once inactivity is strictly beyond the section's cutoff."""
    days = inactive_days(last_accessed_at, now)
    if days is None:
        return False
    return days > get_decay_profile(section).cutoff_days


def apply_decay(base_interval: float, multiplier: float) -> float:
    """Scale an interval; non-positive or non-finite inputs pass through unchanged."""
    if not math.isfinite(base_interval) or base_interval <= 0:
        return base_interval
    if not math.isfinite(multiplier) or multiplier <= 0:
        return base_interval
    return base_interval * multiplier
