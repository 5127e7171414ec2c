import copy
import hashlib
import json
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from jungian_journals.config import CACHE_FILE, RECOMMENDATION_CACHE_TTL_HOURS
from jungian_journals.logger import get_logger

logger = get_logger(__name__)


def hash_history(history_list: List[str]) -> str:
    sorted_ids = sorted(history_list)
    serialized = json.dumps(sorted_ids, sort_keys=True)
    return hashlib.sha256(serialized.encode()).hexdigest()


class CacheManager:
    """Per-user recommendation cache persisted to a JSON file."""

    def __init__(self, cache_file: Optional[str] = CACHE_FILE, ttl_hours: float = RECOMMENDATION_CACHE_TTL_HOURS):
        self.cache_file = cache_file
        self.ttl = timedelta(hours=ttl_hours)
        self.cache = {}
        # guards self.cache; sync routes run concurrently in a threadpool
        self._lock = threading.RLock()
        self.load_cache_from_file()

    def load_cache_from_file(self):
        if not self.cache_file or not os.path.exists(self.cache_file):
            return
        try:
            with open(self.cache_file, 'r') as f:
                loaded_cache = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache file {self.cache_file}: {e}")
            return

        for value in loaded_cache.values():
            if isinstance(value, dict) and isinstance(value.get('ts'), str):
                try:
                    value['ts'] = datetime.fromisoformat(value['ts'])
                except ValueError:
                    value['ts'] = None
        self.cache = loaded_cache

    def save_cache_to_file(self):
        if not self.cache_file:
            return
        with self._lock:
            cache_to_save = copy.deepcopy(self.cache)
        for value in cache_to_save.values():
            if isinstance(value, dict) and isinstance(value.get('ts'), datetime):
                value['ts'] = value['ts'].isoformat()
        try:
            with open(self.cache_file, 'w') as f:
                json.dump(cache_to_save, f, default=str)
        except OSError as e:
            logger.warning(f"Could not write cache file {self.cache_file}: {e}")

    @staticmethod
    def _key(user_id: str, history_hash: str) -> str:
        return f"{user_id}-{history_hash}"

    def get(self, user_id: str, history_hash: str, now: datetime = None) -> Optional[List[Dict]]:
        """Cached recommendations, or None when missing or older than the TTL."""
        with self._lock:
            cached = self.cache.get(self._key(user_id, history_hash))
        if not cached or not isinstance(cached.get('ts'), datetime):
            return None

        now = now or datetime.now(timezone.utc)
        cached_ts = cached['ts']
        if cached_ts.tzinfo is None:
            cached_ts = cached_ts.replace(tzinfo=timezone.utc)
        if now - cached_ts > self.ttl:
            return None
        return cached.get('recs', [])

    def set(self, user_id: str, history_hash: str, recs: List[Dict], now: datetime = None):
        with self._lock:
            # one entry per user; a new hash means new history
            for key in [k for k, v in self.cache.items() if isinstance(v, dict) and v.get('user_id') == user_id]:
                del self.cache[key]
            self.cache[self._key(user_id, history_hash)] = {
                'user_id': user_id,
                'hash': history_hash,
                'recs': recs,
                'ts': now or datetime.now(timezone.utc),
            }
            self.save_cache_to_file()

    def clear(self):
        with self._lock:
            self.cache = {}
            self.save_cache_to_file()
