"""
Campus feature: versioned campus content with one active row per college.

`campus_ai_content` is an append-only log. publish() inserts version N+1 and
moves the active flag onto it inside one Postgres transaction (the
`publish_campus_content` function, serialized per college by an advisory
lock and backed by unique indexes). Readers go through a small in-process
TTL cache keyed by college and never wait on a publish: at worst they see the
previous version for up to CAMPUS_CACHE_TTL_SECONDS.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any

from cachetools import TTLCache
from postgrest.exceptions import APIError
from supabase import Client
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import Settings, get_settings
from app.core.exceptions import ConcurrencyConflict, SystemFailureError
from app.features.academic.schemas import College
from app.features.campus.generator import CampusContentGenerator
from app.features.campus.schemas import (
    CAMPUS_CONTENT_FIELDS,
    CampusContent,
    CampusContentFields,
)

logger = logging.getLogger(__name__)

TABLE = "campus_ai_content"
PUBLISH_FUNCTION = "publish_campus_content"

# unique_violation, serialization_failure, deadlock_detected
CONFLICT_CODES = {"23505", "40001", "40P01"}

# Process-wide cache of active rows (TTLCache is not thread-safe on its own)
_active_cache: TTLCache | None = None
_cache_lock = threading.Lock()


def get_active_cache() -> TTLCache:
    global _active_cache
    with _cache_lock:
        if _active_cache is None:
            settings = get_settings()
            _active_cache = TTLCache(
                maxsize=settings.CAMPUS_CACHE_MAXSIZE,
                ttl=settings.CAMPUS_CACHE_TTL_SECONDS,
            )
        return _active_cache


class CampusContentService:
    """get_active / publish / list_versions over `campus_ai_content`."""

    def __init__(self, db: Client, settings: Settings | None = None, cache: TTLCache | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.cache = cache if cache is not None else get_active_cache()

    # ── Reads ────────────────────────────────────────────

    def get_active(self, college_id: str) -> CampusContent | None:
        """Active content for a college, or None if it was never generated."""
        with _cache_lock:
            cached = self.cache.get(college_id)
        if cached is not None:
            return cached

        result = (
            self.db.table(TABLE)
            .select("*")
            .eq("college_id", college_id)
            .eq("is_active", True)
            .order("content_version", desc=True)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None

        content = CampusContent(**result.data[0])
        self._remember(content)
        return content

    def list_versions(self, college_id: str) -> list[CampusContent]:
        """Every version of a college's content, newest first."""
        result = (
            self.db.table(TABLE)
            .select("*")
            .eq("college_id", college_id)
            .order("content_version", desc=True)
            .execute()
        )
        return [CampusContent(**row) for row in result.data or []]

    def invalidate(self, college_id: str) -> None:
        with _cache_lock:
            self.cache.pop(college_id, None)

    # ── Publish ──────────────────────────────────────────

    def publish(self, college_id: str, fields: CampusContentFields | dict[str, Any]) -> int:
        """Store a new version and make it the active one.

        Returns:
            The new content_version.

        Raises:
            ConcurrencyConflict: still colliding after CAMPUS_PUBLISH_MAX_ATTEMPTS.
            SystemFailureError: database unavailable; previous version stays active.
        """
        if isinstance(fields, dict):
            fields = CampusContentFields(**{k: v for k, v in fields.items() if k in CAMPUS_CONTENT_FIELDS})

        retrying = Retrying(
            retry=retry_if_exception_type(ConcurrencyConflict),
            stop=stop_after_attempt(self.settings.CAMPUS_PUBLISH_MAX_ATTEMPTS),
            wait=wait_exponential(multiplier=0.05, max=1),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                content = self._publish_once(college_id, fields)

        self._remember(content)
        logger.info(f"📢 Published campus content v{content.content_version} for college {college_id}")
        return content.content_version

    def _publish_once(self, college_id: str, fields: CampusContentFields) -> CampusContent:
        params = {"p_college_id": college_id}
        params.update({f"p_{name}": value for name, value in fields.model_dump().items()})
        try:
            result = self.db.rpc(PUBLISH_FUNCTION, params).execute()
        except APIError as e:
            if e.code in CONFLICT_CODES:
                raise ConcurrencyConflict(f"Concurrent publish for college {college_id}") from e
            raise SystemFailureError("Could not publish campus content", original_error=e.message) from e
        except Exception as e:
            raise SystemFailureError("Could not publish campus content", original_error=str(e)) from e

        row = result.data[0] if isinstance(result.data, list) and result.data else result.data
        if not row:
            raise SystemFailureError("Publish returned no row")
        return CampusContent(**row)

    def _remember(self, content: CampusContent) -> None:
        # Never let a slower reader overwrite a newer version
        with _cache_lock:
            current = self.cache.get(content.college_id)
            if current is None or current.content_version <= content.content_version:
                self.cache[content.college_id] = content

    # ── Regeneration ─────────────────────────────────────

    def refresh(self, college: College, generator: CampusContentGenerator) -> int:
        """Generate fresh content for a college and publish it."""
        fields = generator.generate(college)
        return self.publish(college.college_id, fields)

    def refresh_stale(self, generator: CampusContentGenerator) -> dict:
        """Regenerate every active version older than CAMPUS_STALE_AFTER_HOURS.

        Returns:
            dict: { "refreshed": int, "errors": int }
        """
        stats = {"refreshed": 0, "errors": 0}
        cutoff = datetime.now(timezone.utc) - timedelta(hours=self.settings.CAMPUS_STALE_AFTER_HOURS)
        result = (
            self.db.table(TABLE)
            .select("college_id")
            .eq("is_active", True)
            .lt("generated_at", cutoff.isoformat())
            .execute()
        )
        for row in result.data or []:
            college_id = row["college_id"]
            college_res = self.db.table("colleges").select("*").eq("college_id", college_id).limit(1).execute()
            if not college_res.data:
                logger.warning(f"⚠️ Active campus content for unknown college {college_id}")
                stats["errors"] += 1
                continue
            try:
                self.refresh(College(**college_res.data[0]), generator)
                stats["refreshed"] += 1
            except Exception as e:
                logger.error(f"❌ Refresh of campus content for {college_id} failed: {e}")
                stats["errors"] += 1
        return stats
