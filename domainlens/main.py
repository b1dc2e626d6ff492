"""
DomainLens - Main FastAPI Application
Provider classification, catalog status and freshness statistics over HTTP
"""
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI

from config.settings import settings
from domainlens.freshness import (
    AccessTracker,
    RevalidationWorker,
    SwrCoordinator,
    get_access_tracker,
    get_revalidation_worker,
    get_swr_coordinator,
)
from domainlens.providers import (
    CatalogReloader,
    ProviderCatalog,
    ProviderCategory,
    classify_all,
    get_provider_catalog,
)
from domainlens.schemas import (
    CatalogReloadResponse,
    CatalogStatus,
    ClassifyRequest,
    ClassifyResponse,
    ProviderRefOut,
)

load_dotenv()

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("main")

# Version tracking
APP_VERSION = "v0.1.0"
APP_NAME = "DomainLens"
APP_STAGE = "Alpha"


@asynccontextmanager
async def lifespan(app: FastAPI):
    reloader = None
    if settings.catalog_reload_seconds > 0:
        reloader = CatalogReloader(get_provider_catalog(), settings.catalog_reload_seconds)
        reloader.start()
    try:
        yield
    finally:
        if reloader is not None:
            reloader.stop()


app = FastAPI(
    title=f"{APP_NAME} ({APP_STAGE})",
    description="Provider classification and adaptive freshness for domain reports",
    version=APP_VERSION,
    lifespan=lifespan,
)


def get_catalog() -> ProviderCatalog:
    """Catalog dependency (overridden in tests)."""
    return get_provider_catalog()


def get_tracker() -> AccessTracker:
    return get_access_tracker()


def get_coordinator() -> SwrCoordinator:
    return get_swr_coordinator()


def get_worker() -> RevalidationWorker:
    return get_revalidation_worker()


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/version")
def version_info():
    """Version information endpoint."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "stage": APP_STAGE,
        "full": f"{APP_NAME} {APP_VERSION} ({APP_STAGE})"
    }


@app.get("/cache/stats")
def cache_stats(
    coordinator: SwrCoordinator = Depends(get_coordinator),
    tracker: AccessTracker = Depends(get_tracker),
    worker: RevalidationWorker = Depends(get_worker),
):
    """Freshness engine statistics: SWR reads, access tracking, revalidation runs."""
    return {
        "swr": coordinator.get_stats(),
        "access": {"tracked_domains": tracker.tracked_count},
        "revalidation": worker.get_stats(),
    }


@app.post("/api/classify", response_model=ClassifyResponse)
def classify_signals(
    request: ClassifyRequest,
    catalog: ProviderCatalog = Depends(get_catalog),
    tracker: AccessTracker = Depends(get_tracker),
):
    """
    Classify collected signals into one provider per category.

    Categories with no matching provider come back as the all-null sentinel.
    A request naming a domain counts as a user access for that domain.
    """
    if request.domain:
        tracker.record_access(request.domain)

    snapshot = catalog.snapshot
    results = classify_all(request.signals.to_signals(), snapshot)

    by_category = {}
    for category in ProviderCategory:
        ref = results.get(category)
        by_category[category.value] = ProviderRefOut(**ref.to_dict()) if ref else ProviderRefOut()

    domain = request.domain.strip().lower() if request.domain else None
    return ClassifyResponse(domain=domain, catalog_version=snapshot.version, **by_category)


@app.get("/api/catalog", response_model=CatalogStatus)
def catalog_status(catalog: ProviderCatalog = Depends(get_catalog)):
    """Catalog version, per-category counts and last reload error."""
    return CatalogStatus(**catalog.get_stats())


@app.post("/api/catalog/reload", response_model=CatalogReloadResponse)
def reload_catalog(catalog: ProviderCatalog = Depends(get_catalog)):
    """Reload the catalog from its source; the previous snapshot survives failures."""
    reloaded = catalog.reload()
    if not reloaded:
        logger.warning(f"Manual catalog reload did not apply: {catalog.last_error}")
    return CatalogReloadResponse(reloaded=reloaded, catalog=CatalogStatus(**catalog.get_stats()))
