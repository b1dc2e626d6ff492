"""
Custom exceptions for the domainlens engine.
"""
from dataclasses import dataclass
from typing import List, Optional


class DomainLensError(Exception):
    """Base exception for all domainlens errors."""
    pass


class CatalogError(DomainLensError):
    """Error loading or validating the provider catalog."""
    pass


class CatalogSourceError(CatalogError):
    """
    The catalog document could not be fetched.

    Raised when:
    - The catalog file is missing or not valid JSON
    - The catalog URL is unreachable or returns an error status
    """

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


@dataclass(frozen=True)
class CatalogIssue:
    """One validation problem, located by category, entry index and field."""
    category: Optional[str]
    index: Optional[int]
    field: Optional[str]
    message: str

    def __str__(self) -> str:
        location = []
        if self.category is not None:
            location.append(self.category)
        if self.index is not None:
            location.append(f"[{self.index}]")
        if self.field:
            location.append(f".{self.field}")
        where = "".join(location) or "<document>"
        return f"{where}: {self.message}"


class CatalogValidationError(CatalogError):
    """The catalog document failed validation as a whole."""

    def __init__(self, issues: List[CatalogIssue]):
        self.issues = list(issues)
        summary = "; ".join(str(issue) for issue in self.issues[:5])
        if len(self.issues) > 5:
            summary += f" (+{len(self.issues) - 5} more)"
        super().__init__(f"Invalid provider catalog: {summary}")


class StoreUnavailableError(DomainLensError):
    """The shared key-value store could not be reached."""
    pass


class DeduplicationUnavailableError(DomainLensError):
    """
    Raised by a fail-closed deduplication gate when the shared store is down.
    """

    def __init__(self, key: str):
        super().__init__(f"Deduplication store unavailable for key {key!r}")
        self.key = key


class TaskQueueError(DomainLensError):
    """The durable task queue rejected or failed a submission."""
    pass
