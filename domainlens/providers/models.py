"""
Data models for provider classification.

Defines provider categories, catalog entries, provider references and the
raw signals collected by the upstream fetchers.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .rules import Rule


# Namespace for deterministic provider ids
PROVIDER_ID_NAMESPACE = uuid.UUID("6f1c9a4e-2d7b-4c55-9a0e-7b3f1d2c8e41")


class ProviderCategory(Enum):
    """Categories of providers a domain can be attributed to."""
    HOSTING = "hosting"
    DNS = "dns"
    EMAIL = "email"
    CA = "ca"
    REGISTRAR = "registrar"


@dataclass(frozen=True)
class ProviderRef:
    """Reference to a classified provider, as returned to callers."""
    id: str
    name: str
    domain: str

    def to_dict(self) -> Dict[str, Optional[str]]:
        """Convert to dictionary for JSON response."""
        return {"id": self.id, "name": self.name, "domain": self.domain}

    @staticmethod
    def null_dict() -> Dict[str, Optional[str]]:
        """All-null sentinel used on the wire when nothing matched."""
        return {"id": None, "name": None, "domain": None}


@dataclass(frozen=True)
class ProviderEntry:
    """A single catalog entry: a provider and the rule that detects it."""
    name: str
    domain: str
    rule: Rule

    def to_ref(self, category: ProviderCategory) -> ProviderRef:
        """Build the stable reference for this entry within a category."""
        provider_id = uuid.uuid5(
            PROVIDER_ID_NAMESPACE,
            f"{category.value}:{self.domain.lower()}:{self.name.lower()}",
        )
        return ProviderRef(id=str(provider_id), name=self.name, domain=self.domain)


@dataclass(frozen=True)
class Header:
    """HTTP response header as received."""
    name: str
    value: str


@dataclass(frozen=True)
class DnsRecord:
    """DNS record as returned by the resolver."""
    type: str       # A, AAAA, MX, NS, TXT, ...
    name: str
    value: str
    ttl: Optional[int] = None
    priority: Optional[int] = None


@dataclass
class Signals:
    """
    Raw evidence collected for a domain.

    Headers keep their received order; all comparisons made against
    signals are case-insensitive.
    """
    headers: List[Header] = field(default_factory=list)
    dns_records: List[DnsRecord] = field(default_factory=list)
    cert_issuer: str = ""
    registrar: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Signals":
        """Create from dictionary (header pairs may be dicts or 2-tuples)."""
        headers: List[Header] = []
        for item in data.get("headers") or []:
            if isinstance(item, dict):
                headers.append(Header(name=str(item["name"]), value=str(item.get("value", ""))))
            else:
                name, value = item
                headers.append(Header(name=str(name), value=str(value)))

        records: List[DnsRecord] = []
        for item in data.get("dns_records", data.get("dnsRecords")) or []:
            records.append(DnsRecord(
                type=str(item["type"]),
                name=str(item.get("name", "")),
                value=str(item["value"]),
                ttl=item.get("ttl"),
                priority=item.get("priority"),
            ))

        return cls(
            headers=headers,
            dns_records=records,
            cert_issuer=data.get("cert_issuer", data.get("certIssuer")) or "",
            registrar=data.get("registrar") or "",
        )


CategoryEntries = Tuple[ProviderEntry, ...]


@dataclass(frozen=True)
class CatalogSnapshot:
    """
    Immutable, versioned catalog contents.

    Readers hold a reference to one snapshot for the whole classification,
    so a concurrent reload can never be observed half-applied.
    """
    entries: Dict[ProviderCategory, CategoryEntries]
    version: str = "empty"
    loaded_at: Optional[datetime] = None

    @classmethod
    def empty(cls) -> "CatalogSnapshot":
        """Snapshot used before any catalog was loaded: nothing matches."""
        return cls(entries={category: () for category in ProviderCategory})

    def providers(self, category: ProviderCategory) -> CategoryEntries:
        """Entries for a category, in authoritative (tie-break) order."""
        return self.entries.get(category, ())

    @property
    def is_empty(self) -> bool:
        return not any(self.entries.values())

    def counts(self) -> Dict[str, int]:
        return {category.value: len(self.providers(category)) for category in ProviderCategory}
