"""
Pydantic schemas for API request/response models
"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from domainlens.providers import DnsRecord, Header, Signals


# ===== SIGNAL SCHEMAS =====

class HeaderIn(BaseModel):
    """HTTP response header"""
    name: str
    value: str = ""


class DnsRecordIn(BaseModel):
    """DNS record as returned by the resolver"""
    type: str
    name: str = ""
    value: str
    ttl: Optional[int] = None
    priority: Optional[int] = None


class SignalsIn(BaseModel):
    """Evidence collected for one domain"""
    headers: List[HeaderIn] = Field(default_factory=list)
    dns_records: List[DnsRecordIn] = Field(default_factory=list)
    cert_issuer: str = ""
    registrar: str = ""

    def to_signals(self) -> Signals:
        return Signals(
            headers=[Header(name=h.name, value=h.value) for h in self.headers],
            dns_records=[
                DnsRecord(type=r.type, name=r.name, value=r.value, ttl=r.ttl, priority=r.priority)
                for r in self.dns_records
            ],
            cert_issuer=self.cert_issuer,
            registrar=self.registrar,
        )


class ClassifyRequest(BaseModel):
    """Classification request"""
    domain: Optional[str] = None
    signals: SignalsIn


# ===== PROVIDER SCHEMAS =====

class ProviderRefOut(BaseModel):
    """Classified provider; every field is null when nothing matched"""
    id: Optional[str] = None
    name: Optional[str] = None
    domain: Optional[str] = None

    class Config:
        from_attributes = True


class ClassifyResponse(BaseModel):
    """Per-category classification"""
    domain: Optional[str] = None
    catalog_version: str
    hosting: ProviderRefOut
    dns: ProviderRefOut
    email: ProviderRefOut
    ca: ProviderRefOut
    registrar: ProviderRefOut


# ===== CATALOG SCHEMAS =====

class CatalogStatus(BaseModel):
    """Catalog status"""
    version: str
    loaded_at: Optional[str] = None
    source: Optional[str] = None
    counts: Dict[str, int]
    reloads: int = 0
    failures: int = 0
    last_attempt_at: Optional[str] = None
    last_error: Optional[str] = None


class CatalogReloadResponse(BaseModel):
    """Outcome of a manual reload"""
    reloaded: bool
    catalog: CatalogStatus
