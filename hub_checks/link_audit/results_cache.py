"""
Simple Result Cache for External Links

Tracks which external URLs were verified recently so repeated runs do not
hammer the same hosts. One JSON file for easy visibility and debugging.
Only successful checks are cached; broken links are always re-checked.
"""
import json
import threading
import logging
from pathlib import Path
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

from .config import CACHE_FILE, CACHE_TTL_HOURS
from .storage import atomic_write_json

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    # Hand-edited entries may lack an offset; they are read as UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class LinkCache:
    """
    Cache of external URLs that answered successfully.

    Shared by the worker threads of a run, so every access takes a lock.
    """

    def __init__(self, cache_file: Path = CACHE_FILE, ttl_hours: int = CACHE_TTL_HOURS):
        """
        Initialize the cache.

        Args:
            cache_file: JSON file backing the cache
            ttl_hours: How long a successful check stays trusted
        """
        self.cache_file = Path(cache_file)
        self.ttl = timedelta(hours=ttl_hours)
        self._lock = threading.Lock()

        # Load existing entries or initialize empty
        self._load()

    def _load(self) -> None:
        """Load cache from file or initialize if doesn't exist"""
        self.entries: Dict[str, Dict[str, Any]] = {}
        if not self.cache_file.exists():
            return

        try:
            with open(self.cache_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            # A corrupt cache only costs a re-check
            logger.warning(f"Ignoring unreadable link cache {self.cache_file}: {e}")
            return

        urls = data.get('urls') if isinstance(data, dict) else None
        if not isinstance(urls, dict):
            logger.warning(f"Ignoring link cache {self.cache_file}: unexpected layout")
            return
        self.entries = {url: entry for url, entry in urls.items() if isinstance(entry, dict)}

    def save(self) -> None:
        """Save cache to file"""
        with self._lock:
            data = {
                "urls": dict(sorted(self.entries.items())),
                "last_updated": _utcnow().isoformat().replace("+00:00", "Z"),
                "summary": {
                    "total_urls": len(self.entries),
                    "ttl_hours": self.ttl.total_seconds() / 3600
                }
            }
            atomic_write_json(data, self.cache_file)

    def is_fresh(self, url: str, now: datetime = None) -> bool:
        """
        Check if a URL was verified within the TTL.

        Args:
            url: URL to check
            now: Reference time (default: current UTC time)

        Returns:
            True if the URL can be skipped this run
        """
        now = now or _utcnow()
        with self._lock:
            entry = self.entries.get(url)
        if not entry:
            return False

        checked_at = _parse_timestamp(entry.get('checked_at'))
        if checked_at is None:
            return False
        return now - checked_at < self.ttl

    def mark_checked(self, url: str, status_code: int = None, final_url: str = None) -> None:
        """
        Record a successful check of a URL.

        Args:
            url: URL that resolved
            status_code: HTTP status of the final response
            final_url: URL after redirects, if different
        """
        entry = {
            "checked_at": _utcnow().isoformat().replace("+00:00", "Z"),
            "status_code": status_code
        }
        if final_url and final_url != url:
            entry["final_url"] = final_url

        with self._lock:
            self.entries[url] = entry

    def forget(self, url: str) -> None:
        """Drop a URL, e.g. because it is broken now"""
        with self._lock:
            self.entries.pop(url, None)

    def prune(self, now: datetime = None) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        now = now or _utcnow()
        with self._lock:
            expired = [
                url for url, entry in self.entries.items()
                if (_parse_timestamp(entry.get('checked_at')) or datetime.min.replace(tzinfo=timezone.utc))
                + self.ttl <= now
            ]
            for url in expired:
                del self.entries[url]

        if expired:
            logger.debug(f"Pruned {len(expired)} expired cache entries")
        return len(expired)

    def get_summary(self, now: datetime = None) -> Dict[str, Any]:
        """
        Get summary of cached URLs.

        Returns:
            Dictionary with summary information
        """
        now = now or _utcnow()
        with self._lock:
            urls = list(self.entries)

        fresh = [url for url in urls if self.is_fresh(url, now)]
        hosts = sorted({url.split("/")[2] for url in urls if url.count("/") >= 2})

        return {
            "cache_file": str(self.cache_file),
            "total_urls": len(urls),
            "fresh_urls": len(fresh),
            "expired_urls": len(urls) - len(fresh),
            "ttl_hours": self.ttl.total_seconds() / 3600,
            "hosts": hosts
        }


def print_cache_summary(cache_file: Path = CACHE_FILE) -> None:
    """Print a nice summary of the link cache"""
    summary = LinkCache(cache_file).get_summary()

    if summary['total_urls'] == 0:
        print("No cached link checks yet.")
        return

    print("=" * 80)
    print("LINK AUDIT - EXTERNAL URL CACHE")
    print("=" * 80)
    print(f"Cache file: {summary['cache_file']}")
    print(f"TTL: {summary['ttl_hours']:.0f} hours")
    print(f"URLs cached: {summary['total_urls']}")
    print(f"  Fresh: {summary['fresh_urls']}")
    print(f"  Expired: {summary['expired_urls']}")
    print(f"Hosts: {', '.join(summary['hosts'])}")
    print("=" * 80)
