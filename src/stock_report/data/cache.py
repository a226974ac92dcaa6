"""On-disk cache for the bulk registry table."""

import gzip
import hashlib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import diskcache
import pytz

if TYPE_CHECKING:
    from stock_report.data.sources import RegistryRow

logger = logging.getLogger(__name__)

REGISTRY_CACHE_KEY = "registry://sec/company_tickers"


class RegistryCache:
    """
    Cache stores the normalized registry rows as gzipped JSON.

    The table is a few MB and changes rarely; one entry per cache directory,
    expired by TTL.
    """

    def __init__(self, cache_dir: str | Path):
        self.cache: diskcache.Cache = diskcache.Cache(str(cache_dir))

    def store(self, rows: list["RegistryRow"], ttl: int | None = None) -> str:
        """
        Store rows + metadata, return the content hash.

        Args:
            rows: Normalized registry rows
            ttl: Expiry in seconds (None never expires)

        Returns:
            Short sha256 of the uncompressed JSON
        """
        json_bytes = json.dumps(
            [row.to_dict() for row in rows], sort_keys=True, separators=(",", ":")
        ).encode("utf-8")
        json_gz = gzip.compress(json_bytes)
        digest = hashlib.sha256(json_bytes).hexdigest()[:16]

        entry: dict[str, Any] = {
            "json_gz": json_gz,
            "encoding": "gzip",
            "size_bytes": len(json_bytes),
            "compressed_bytes": len(json_gz),
            "rows": len(rows),
            "hash": digest,
            "stored_at": datetime.now(pytz.utc).isoformat(),
        }
        self.cache.set(REGISTRY_CACHE_KEY, entry, expire=ttl)
        logger.debug(f"Cached registry table ({len(rows)} rows, hash={digest})")
        return digest

    def load(self) -> tuple[list["RegistryRow"], str] | None:
        """
        Cached rows and their stored_at timestamp, or None on a miss.

        A corrupt entry is dropped and reported as a miss.
        """
        from stock_report.data.sources import RegistryRow

        entry = self.cache.get(REGISTRY_CACHE_KEY)
        if not entry:
            return None
        try:
            payload = json.loads(gzip.decompress(entry["json_gz"]).decode("utf-8"))
            rows = [RegistryRow(**item) for item in payload]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Discarding corrupt registry cache entry: {e}")
            self.cache.delete(REGISTRY_CACHE_KEY)
            return None
        return rows, entry["stored_at"]

    def close(self) -> None:
        self.cache.close()
