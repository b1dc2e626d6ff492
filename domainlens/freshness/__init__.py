"""
Freshness engine: TTL policies, stale-while-revalidate reads and decayed
revalidation scheduling and execution.
"""
from .core import CacheRecord, FetchResult, Section, SwrResult
from .ttl_policies import (
    TTL_CONFIG,
    get_ttl_bounds,
    ttl_for_certificates,
    ttl_for_dns_record,
    ttl_for_headers,
    ttl_for_hosting,
    ttl_for_registration,
    ttl_for_section,
    ttl_for_seo,
)
from .coalescer import RequestCoalescer
from .swr import SwrCoordinator, get_swr_coordinator
from .decay import (
    DECAY_PROFILES,
    apply_decay,
    get_decay_multiplier,
    should_stop_revalidation,
)
from .scheduler import RevalidationScheduler, RevalidationTask, get_scheduler
from .access import AccessTracker, get_access_tracker
from .worker import RevalidationWorker, get_revalidation_worker, run_id, run_status_lookup

__all__ = [
    # Core types
    "CacheRecord",
    "FetchResult",
    "Section",
    "SwrResult",
    # TTL policies
    "TTL_CONFIG",
    "get_ttl_bounds",
    "ttl_for_certificates",
    "ttl_for_dns_record",
    "ttl_for_headers",
    "ttl_for_hosting",
    "ttl_for_registration",
    "ttl_for_section",
    "ttl_for_seo",
    # Reads
    "RequestCoalescer",
    "SwrCoordinator",
    "get_swr_coordinator",
    # Scheduling
    "DECAY_PROFILES",
    "apply_decay",
    "get_decay_multiplier",
    "should_stop_revalidation",
    "RevalidationScheduler",
    "RevalidationTask",
    "get_scheduler",
    "AccessTracker",
    "get_access_tracker",
    # Execution
    "RevalidationWorker",
    "get_revalidation_worker",
    "run_id",
    "run_status_lookup",
]
