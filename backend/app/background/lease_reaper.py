"""
Background job: return expired handbook leases to the queue.

A worker that dies between claim and commit leaves its handbook in
`processing`. Once `processing_started_at` is older than
HANDBOOK_LEASE_TTL_SECONDS the row goes back to `uploaded` and another worker
can claim it. The commit guard makes a late result from the old lease a no-op.
"""

import logging

from app.core.database import get_supabase_admin_client
from app.core.exceptions import SystemFailureError
from app.features.handbooks.pipeline import HandbookPipeline

logger = logging.getLogger(__name__)


def reclaim_expired_leases(pipeline: HandbookPipeline | None = None) -> dict:
    """Run one reclaim pass.

    Returns:
        dict: { "reclaimed": int, "errors": int }
    """
    stats = {"reclaimed": 0, "errors": 0}
    try:
        pipeline = pipeline or HandbookPipeline(get_supabase_admin_client())
        stats["reclaimed"] = len(pipeline.reclaim_expired())
    except SystemFailureError as e:
        logger.error(f"❌ Lease reclaim failed: {e.detail}")
        stats["errors"] += 1

    if stats["reclaimed"]:
        logger.info(f"♻️ Lease reaper finished: reclaimed={stats['reclaimed']}")
    return stats
