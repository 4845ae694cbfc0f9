from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Optional, Tuple

import requests
from django.conf import settings

from core.exceptions import TransientDependencyFailure

logger = logging.getLogger(__name__)

RateFetcher = Callable[[str, str], Decimal]
Clock = Callable[[], float]

DEFAULT_TTL_SECONDS = 4 * 60 * 60


@dataclass(frozen=True)
class CachedRate:
    rate: Decimal
    fetched_at: float


class RateCache:
    """
    Time-bounded cache of currency conversion rates.

    ``fetch`` and ``clock`` are injected. A fresh entry is served from memory;
    an expired or missing one is fetched, and if the fetch fails the last known
    (stale) rate is returned when there is one.
    """

    def __init__(self, fetch: RateFetcher, *, clock: Clock = time.monotonic, ttl: float = DEFAULT_TTL_SECONDS):
        self._fetch = fetch
        self._clock = clock
        self._ttl = ttl
        self._entries: Dict[Tuple[str, str], CachedRate] = {}
        self._lock = threading.Lock()

    def peek(self, source: str, target: str) -> Optional[CachedRate]:
        with self._lock:
            return self._entries.get((source.upper(), target.upper()))

    def get_rate(self, source: str, target: str) -> Decimal:
        source, target = source.upper(), target.upper()
        if source == target:
            return Decimal(1)

        key = (source, target)
        cached = self.peek(source, target)
        now = self._clock()
        if cached and now - cached.fetched_at < self._ttl:
            return cached.rate

        try:
            rate = Decimal(str(self._fetch(source, target)))
        except Exception as exc:
            if cached:
                logger.warning("Rate fetch for %s-%s failed (%s); using stale rate.", source, target, exc)
                return cached.rate
            logger.error("Rate fetch for %s-%s failed with no cached value: %s", source, target, exc)
            raise TransientDependencyFailure("Could not fetch currency conversion rate.") from exc

        with self._lock:
            self._entries[key] = CachedRate(rate=rate, fetched_at=now)
        return rate

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


def fetch_exchangerate_api(source: str, target: str) -> Decimal:
    api_key = getattr(settings, "EXCHANGERATE_API_KEY", "")
    if not api_key:
        raise TransientDependencyFailure("Currency conversion service is not configured.")

    base_url = settings.EXCHANGERATE_API_URL.rstrip("/")
    response = requests.get(f"{base_url}/{api_key}/pair/{source}/{target}", timeout=10)
    response.raise_for_status()
    data = response.json()
    if data.get("result") != "success":
        raise ValueError(data.get("error-type") or "Failed to get conversion data.")
    return Decimal(str(data["conversion_rate"]))


_rate_cache: Optional[RateCache] = None
_rate_cache_lock = threading.Lock()


def get_rate_cache() -> RateCache:
    global _rate_cache
    with _rate_cache_lock:
        if _rate_cache is None:
            _rate_cache = RateCache(
                fetch_exchangerate_api,
                ttl=getattr(settings, "CURRENCY_RATE_TTL_SECONDS", DEFAULT_TTL_SECONDS),
            )
        return _rate_cache


def reset_rate_cache(cache: Optional[RateCache] = None) -> None:
    global _rate_cache
    with _rate_cache_lock:
        _rate_cache = cache
