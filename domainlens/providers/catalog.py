"""
Provider catalog holder with atomic snapshot swaps and periodic reload.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from config.settings import settings
from ..errors import CatalogError, CatalogValidationError
from .models import CatalogSnapshot
from .parser import parse_catalog
from .sources import CatalogSource, build_catalog_source

logger = logging.getLogger("providers.catalog")


class ProviderCatalog:
    """
    Holds the current catalog snapshot.

    Readers call `snapshot` and use the returned object for the whole
    classification. A reload builds a complete new snapshot first and then
    publishes it with a single reference assignment, so readers never see a
    half-updated catalog. Failed reloads keep the last good snapshot.

    Usage:
        catalog = ProviderCatalog(source)
        catalog.reload()
        ref = classify(ProviderCategory.DNS, signals, catalog.snapshot)
    """

    def __init__(
        self,
        source: Optional[CatalogSource] = None,
        initial: Optional[CatalogSnapshot] = None,
    ):
        self._source = source
        self._snapshot: CatalogSnapshot = initial or CatalogSnapshot.empty()
        # Serialises reloads only; readers never take this lock
        self._reload_lock = threading.Lock()
        self._last_error: Optional[str] = None
        self._last_attempt_at: Optional[datetime] = None
        self._reload_count = 0
        self._failure_count = 0

    @property
    def snapshot(self) -> CatalogSnapshot:
        """The current snapshot (empty until the first successful load)."""
        return self._snapshot

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def load_document(self, raw: Any) -> CatalogSnapshot:
        """
        Validate a raw document and publish it.

        Raises:
            CatalogValidationError: the previous snapshot stays in place
        """
        snapshot = parse_catalog(raw)
        with self._reload_lock:
            previous = self._snapshot
            self._snapshot = snapshot
            self._last_error = None
            self._reload_count += 1
        if previous.version != snapshot.version:
            logger.info(
                f"Catalog updated: {previous.version} -> {snapshot.version} "
                f"({sum(snapshot.counts().values())} providers)"
            )
        return snapshot

    def reload(self) -> bool:
        """
        Fetch, validate and publish the catalog from the configured source.

        Returns:
            True if a new snapshot was published, False if the previous one
            was kept (no source, fetch failure or validation failure)
        """
        if self._source is None:
            logger.debug("No catalog source configured; keeping current snapshot")
            return False

        self._last_attempt_at = datetime.now(timezone.utc)
        try:
            raw = self._source.fetch()
            self.load_document(raw)
            return True
        except CatalogValidationError as e:
            self._record_failure(str(e))
            for issue in e.issues:
                logger.error(f"Catalog validation failed ({self._source.name}): {issue}")
            return False
        except CatalogError as e:
            self._record_failure(str(e))
            logger.warning(f"Catalog reload failed ({self._source.name}): {e}")
            return False

    def _record_failure(self, message: str) -> None:
        with self._reload_lock:
            self._last_error = message
            self._failure_count += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get catalog status."""
        snapshot = self._snapshot
        return {
            "version": snapshot.version,
            "loaded_at": snapshot.loaded_at.isoformat() if snapshot.loaded_at else None,
            "source": self._source.name if self._source else None,
            "counts": snapshot.counts(),
            "reloads": self._reload_count,
            "failures": self._failure_count,
            "last_attempt_at": self._last_attempt_at.isoformat() if self._last_attempt_at else None,
            "last_error": self._last_error,
        }


class CatalogReloader:
    """
    Background thread that reloads a catalog on a fixed interval.

    The thread is a daemon and stops promptly when `stop()` is called.
    """

    def __init__(self, catalog: ProviderCatalog, interval_seconds: float):
        self._catalog = catalog
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="catalog-reloader",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Catalog reloader started (every {self._interval}s)")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._catalog.reload()
            except Exception as e:
                # reload() reports its own errors; this guards the thread
                logger.error(f"Unexpected catalog reload error: {e}", exc_info=True)


# Global catalog instance
_provider_catalog: Optional[ProviderCatalog] = None
_catalog_lock = threading.Lock()


def get_provider_catalog() -> ProviderCatalog:
    """Get or create the global catalog, loading it on first use."""
    global _provider_catalog
    if _provider_catalog is None:
        with _catalog_lock:
            if _provider_catalog is None:
                catalog = ProviderCatalog(build_catalog_source(settings.catalog_source))
                catalog.reload()
                _provider_catalog = catalog
    return _provider_catalog
