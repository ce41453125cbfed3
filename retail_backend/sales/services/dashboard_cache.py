# sales/services/dashboard_cache.py

"""
LEDGER SUMMARY CACHE

Dashboard and per-client receivable summaries are cached in the Django cache
under a generation-scoped key. Invalidation bumps the generation, so every
summary computed before the bump is ignored without enumerating keys.

Invalidation is scheduled with transaction.on_commit by the mutating services;
it is never part of the ledger transaction itself.
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.core.cache import cache

logger = logging.getLogger("sales.ledger")

GENERATION_KEY = "ledger:generation"


def _generation() -> int:
    value = cache.get(GENERATION_KEY)
    if value is None:
        cache.add(GENERATION_KEY, 1, timeout=None)
        value = cache.get(GENERATION_KEY, 1)
    return int(value)


def cache_key(name: str, *parts) -> str:
    suffix = ":".join(str(p) for p in parts)
    base = f"ledger:{_generation()}:{name}"
    return f"{base}:{suffix}" if suffix else base


def get_or_compute(name: str, compute, *parts):
    key = cache_key(name, *parts)
    value = cache.get(key)
    if value is None:
        value = compute()
        cache.set(key, value, timeout=getattr(settings, "LEDGER_DASHBOARD_CACHE_TTL", 120))
    return value


def invalidate_ledger_caches() -> None:
    try:
        cache.incr(GENERATION_KEY)
    except ValueError:
        cache.set(GENERATION_KEY, 2, timeout=None)
    logger.debug("Ledger caches invalidated")
