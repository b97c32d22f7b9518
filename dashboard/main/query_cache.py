"""
Cache for upstream GET results.

Entries are stored in Django's cache under hashed keys. Every leading run of
key segments (``["/v1/api/users"]``, ``["/v1/api/users", "page=0"]``) owns a
generation stamp, and an entry's cache key includes the stamps of all its
prefixes. Invalidating a prefix writes a new stamp, so every entry below it
becomes unreachable without the backend having to list them. A stamp that is
missing, whether never written or culled, starts a new generation too.
"""
import hashlib
import json
import logging
import time

from django.core.cache import cache

logger = logging.getLogger(__name__)

ENTRY_PREFIX = "query"
STAMP_PREFIX = "query-stamp"


def make_cache_key(prefix, *parts):
    """Generate a unique cache key from key segments"""
    key_data = json.dumps(parts)
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def key_prefixes(key):
    """``["a", "b"]`` -> ``[["a"], ["a", "b"]]``"""
    return [list(key[:n]) for n in range(1, len(key) + 1)]


class QueryCache:
    """Query results for one caller, keyed by URL-derived segment lists."""

    def __init__(self, namespace="anonymous", backend=None):
        self.namespace = namespace
        self.backend = backend or cache

    def _stamp_key(self, prefix):
        return make_cache_key(STAMP_PREFIX, self.namespace, list(prefix))

    def _stamps(self, key):
        stamp_keys = [self._stamp_key(prefix) for prefix in key_prefixes(key)]
        found = self.backend.get_many(stamp_keys)

        stamps = []
        for stamp_key in stamp_keys:
            stamp = found.get(stamp_key)
            if stamp is None:
                stamp = time.time_ns()
                # add() keeps whichever stamp another request wrote first
                if not self.backend.add(stamp_key, stamp, None):
                    stamp = self.backend.get(stamp_key, stamp)
            stamps.append(stamp)
        return stamps

    def _entry_key(self, key):
        return make_cache_key(ENTRY_PREFIX, self.namespace, list(key), self._stamps(key))

    def get(self, key, stale_time):
        """Return the cached entry for ``key`` if younger than ``stale_time`` seconds."""
        if stale_time <= 0:
            return None

        entry = self.backend.get(self._entry_key(key))
        if entry is None:
            logger.debug(f"Cache MISS for {key}")
            return None

        if time.time() - entry["updated_at"] >= stale_time:
            logger.debug(f"Cache STALE for {key}")
            return None

        logger.debug(f"Cache HIT for {key}")
        return entry

    def set(self, key, data):
        self.backend.set(self._entry_key(key), {"data": data, "updated_at": time.time()})

    def invalidate(self, prefix):
        """Make every entry whose key starts with ``prefix`` unreachable."""
        stamp_key = self._stamp_key(prefix)
        current = self.backend.get(stamp_key)
        stamp = time.time_ns()
        # Coarse clocks can repeat a reading
        if current is not None and stamp <= current:
            stamp = current + 1
        self.backend.set(stamp_key, stamp, None)
        logger.info(f"Invalidated cached queries matching {list(prefix)}")
