import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

import redis
from cachetools import TTLCache

from countries import CountryData, country_data
from exceptions import BackendUnavailable, InvalidCountryCode

logger = logging.getLogger(__name__)

STATS_KEY = "visit_stats"
DEFAULT_TOP_LIMIT = 10


class VisitTracker:
    """Per-country visit counters stored in a single Redis hash.

    Each country is one field of ``visit_stats`` holding its cumulative
    count. Increments go through ``HINCRBY`` so concurrent requests never
    lose an update; nothing here reads a counter back to write it again.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        countries: Optional[CountryData] = None,
        stats_cache_ttl: float = 0,
        stats_cache_timer: Callable[[], float] = time.monotonic,
    ):
        self.redis = redis_client
        self.countries = countries if countries is not None else country_data
        self.stats_key = STATS_KEY
        self._stats_cache: Optional[TTLCache] = None
        self._stats_lock = threading.Lock()
        if stats_cache_ttl > 0:
            self._stats_cache = TTLCache(maxsize=1, ttl=stats_cache_ttl, timer=stats_cache_timer)

    def _validate(self, country_code: Any) -> str:
        if not self.countries.is_valid_code(country_code):
            raise InvalidCountryCode(country_code)
        return country_code.lower()

    def track_visit(self, country_code: Any) -> Dict[str, Any]:
        code = self._validate(country_code)
        try:
            new_count = self.redis.hincrby(self.stats_key, code, 1)
        except redis.RedisError as e:
            logger.error(f"Error tracking visit for {code}: {e}")
            raise BackendUnavailable("track_visit") from e

        logger.info(f"Visit tracked for country: {code}, new count: {new_count}")
        return {"country": code, "count": int(new_count)}

    def track_visits(self, country_codes: Iterable[Any]) -> List[Dict[str, Any]]:
        """Increment several counters in one round-trip.

        All codes are validated before anything is written, so one bad code
        rejects the whole batch. Repeated codes are incremented once per
        occurrence and each entry reports the count after its own increment.
        """
        codes = [self._validate(code) for code in country_codes]
        if not codes:
            return []

        try:
            pipe = self.redis.pipeline(transaction=False)
            for code in codes:
                pipe.hincrby(self.stats_key, code, 1)
            counts = pipe.execute()
        except redis.RedisError as e:
            logger.error(f"Error tracking batch of {len(codes)} visits: {e}")
            raise BackendUnavailable("track_visits") from e

        logger.info(f"Batch of {len(codes)} visits tracked")
        return [{"country": code, "count": int(count)} for code, count in zip(codes, counts)]

    def get_statistics(self) -> Dict[str, int]:
        try:
            stats = self.redis.hgetall(self.stats_key)
        except redis.RedisError as e:
            logger.error(f"Error retrieving statistics: {e}")
            raise BackendUnavailable("get_statistics") from e

        result = {country: int(count) for country, count in stats.items()}
        logger.info(f"Retrieved statistics for {len(result)} countries")
        return result

    def get_statistics_cached(self) -> Dict[str, int]:
        """``get_statistics`` behind a short-lived in-process cache.

        Falls through to Redis on every call when the cache is disabled. The
        cache is shared by request threads, so every access holds the lock.
        """
        if self._stats_cache is None:
            return self.get_statistics()

        cache_key = "stats"
        with self._stats_lock:
            try:
                stats = self._stats_cache[cache_key]
            except KeyError:
                stats = self.get_statistics()
                self._stats_cache[cache_key] = stats
        return dict(stats)

    def get_country_stats(self, country_code: Any) -> int:
        code = self._validate(country_code)
        try:
            count = self.redis.hget(self.stats_key, code)
        except redis.RedisError as e:
            logger.error(f"Error retrieving statistics for {code}: {e}")
            raise BackendUnavailable("get_country_stats") from e

        return int(count) if count is not None else 0

    def get_total_visits(self) -> int:
        return sum(self.get_statistics().values())

    def get_top_countries(self, limit: Optional[int] = DEFAULT_TOP_LIMIT) -> List[Dict[str, Any]]:
        # Equal counts are ordered by country code so the output is stable
        if limit is None:
            limit = DEFAULT_TOP_LIMIT
        if limit <= 0:
            return []

        stats = self.get_statistics()
        ranked = sorted(stats.items(), key=lambda item: (-item[1], item[0]))
        return [{"country": country, "count": count} for country, count in ranked[:limit]]

    def reset_statistics(self) -> Dict[str, Any]:
        try:
            self.redis.delete(self.stats_key)
        except redis.RedisError as e:
            logger.error(f"Error resetting statistics: {e}")
            raise BackendUnavailable("reset_statistics") from e

        if self._stats_cache is not None:
            with self._stats_lock:
                self._stats_cache.clear()

        logger.info("Statistics reset successfully")
        return {"success": True, "message": "Statistics reset successfully"}

    def get_country_name(self, country_code: Any) -> Optional[str]:
        return self.countries.get_name(country_code)
