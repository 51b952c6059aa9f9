"""
Background tasks for (re)generating campus content.

Generation is triggered from outside the cache: by the API on a cache miss or
an explicit refresh, and optionally by a periodic scheduler job.
"""

import logging
import threading

from app.core.database import get_supabase_admin_client
from app.features.academic.schemas import College
from app.features.campus.generator import CampusContentGenerator, LLMCampusContentGenerator
from app.features.campus.service import CampusContentService

logger = logging.getLogger(__name__)

# Colleges with a generation currently running in this process
_in_flight: set[str] = set()
_in_flight_lock = threading.Lock()

_default_generator: CampusContentGenerator | None = None


def get_default_generator() -> CampusContentGenerator:
    global _default_generator
    if _default_generator is None:
        _default_generator = LLMCampusContentGenerator()
    return _default_generator


def generate_campus_content(
    college: College,
    service: CampusContentService | None = None,
    generator: CampusContentGenerator | None = None,
) -> int | None:
    """Generate and publish content for one college.

    Repeated misses for the same college while a generation is running are
    dropped. Returns the published version, or None if skipped or failed.
    """
    with _in_flight_lock:
        if college.college_id in _in_flight:
            logger.info(f"⏳ Campus content for {college.college_id} already generating, skipping")
            return None
        _in_flight.add(college.college_id)

    try:
        service = service or CampusContentService(get_supabase_admin_client())
        return service.refresh(college, generator or get_default_generator())
    except Exception as e:
        logger.error(f"❌ Campus content generation for {college.college_id} failed: {e}", exc_info=True)
        return None
    finally:
        with _in_flight_lock:
            _in_flight.discard(college.college_id)


def refresh_stale_campus_content() -> dict:
    """Scheduler callback: regenerate content older than CAMPUS_STALE_AFTER_HOURS."""
    try:
        service = CampusContentService(get_supabase_admin_client())
        stats = service.refresh_stale(get_default_generator())
    except Exception as e:
        logger.error(f"❌ Stale campus content refresh failed: {e}")
        return {"refreshed": 0, "errors": 1}

    logger.info(f"✅ Campus refresh finished: refreshed={stats['refreshed']}, errors={stats['errors']}")
    return stats
