"""
Signal classifier: first matching catalog entry wins.
"""
import logging
from typing import Dict, Optional

from .models import CatalogSnapshot, ProviderCategory, ProviderRef, Signals
from .rules import DetectionContext, build_context, evaluate

logger = logging.getLogger("providers.classifier")


def classify(
    category: ProviderCategory,
    signals,
    catalog: CatalogSnapshot,
) -> Optional[ProviderRef]:
    """
    Classify signals into a provider for one category.

    Scans the category's entries in stored order and returns the first one
    whose rule matches. Catalog order is the authoritative tie-break when
    several rules could match.

    Args:
        category: Provider category to classify
        signals: Signals or a pre-built DetectionContext
        catalog: Snapshot to classify against

    Returns:
        ProviderRef of the first match, or None
    """
    ctx = signals if isinstance(signals, DetectionContext) else build_context(signals)
    for entry in catalog.providers(category):
        if evaluate(entry.rule, ctx):
            return entry.to_ref(category)
    return None


def classify_all(
    signals: Signals,
    catalog: CatalogSnapshot,
) -> Dict[ProviderCategory, Optional[ProviderRef]]:
    """Classify every category against one snapshot."""
    ctx = build_context(signals)
    results = {category: classify(category, ctx, catalog) for category in ProviderCategory}
    logger.debug(
        f"Classified against catalog {catalog.version}: "
        + ", ".join(f"{c.value}={r.name if r else None}" for c, r in results.items())
    )
    return results
