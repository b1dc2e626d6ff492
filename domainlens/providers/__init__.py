"""
Provider classification: catalog, rule evaluation and first-match classifier.
"""
from .models import (
    CatalogSnapshot,
    DnsRecord,
    Header,
    ProviderCategory,
    ProviderEntry,
    ProviderRef,
    Signals,
)
from .rules import DetectionContext, build_context, evaluate
from .parser import parse_catalog
from .sources import (
    CatalogSource,
    HttpCatalogSource,
    JsonFileCatalogSource,
    StaticCatalogSource,
    build_catalog_source,
)
from .catalog import CatalogReloader, ProviderCatalog, get_provider_catalog
from .classifier import classify, classify_all

__all__ = [
    # Models
    "CatalogSnapshot",
    "DnsRecord",
    "Header",
    "ProviderCategory",
    "ProviderEntry",
    "ProviderRef",
    "Signals",
    # Rules
    "DetectionContext",
    "build_context",
    "evaluate",
    # Catalog
    "parse_catalog",
    "CatalogSource",
    "HttpCatalogSource",
    "JsonFileCatalogSource",
    "StaticCatalogSource",
    "build_catalog_source",
    "CatalogReloader",
    "ProviderCatalog",
    "get_provider_catalog",
    # Classifier
    "classify",
    "classify_all",
]
