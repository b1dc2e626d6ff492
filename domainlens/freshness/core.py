"""
Core freshness data structures.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class Section(Enum):
    """Sections of domain data with independent refresh cadences."""
    DNS = "dns"                       # record TTL driven, 1-24 hours
    HEADERS = "headers"               # 6 hours
    HOSTING = "hosting"               # 24 hours
    CERTIFICATES = "certificates"     # 1-24 hours, tightens near expiry
    SEO = "seo"                       # 24 hours
    REGISTRATION = "registration"     # 24 hours, 1 hour near expiry


@dataclass
class CacheRecord(Generic[T]):
    """
    A persisted fact as read back from storage.

    `stale` is decided by the store from the record's expires_at, which the
    TTL policies computed when the record was written.
    """
    data: Optional[T] = None
    fetched_at: Optional[datetime] = None
    stale: bool = False

    @property
    def has_data(self) -> bool:
        return self.data is not None

    @classmethod
    def miss(cls) -> "CacheRecord[T]":
        return cls(data=None, fetched_at=None, stale=False)


@dataclass
class FetchResult(Generic[T]):
    """
    Outcome of a fresh fetch.

    Expected/permanent failures (NXDOMAIN, no certificate, ...) come back as
    `success=False` with an error code; fetchers raise only for transient
    infrastructure errors.
    """
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: T) -> "FetchResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "FetchResult[T]":
        return cls(success=False, error=error)


@dataclass
class SwrResult(Generic[T]):
    """Result of a stale-while-revalidate read."""
    success: bool
    data: Optional[T] = None
    cached: bool = False    # served from cache (fresh or stale)
    stale: bool = False     # expired data served while a refresh runs
    error: Optional[str] = None

    @classmethod
    def from_fetch(cls, result: FetchResult[T]) -> "SwrResult[T]":
        if result.success:
            return cls(success=True, data=result.data, cached=False, stale=False)
        return cls(success=False, data=None, error=result.error or "fetch_failed")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        if not self.success:
            return {"success": False, "error": self.error, "data": None}
        return {
            "success": True,
            "cached": self.cached,
            "stale": self.stale,
            "data": self.data,
        }
