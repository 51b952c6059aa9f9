"""
Handbooks feature: the extraction state machine.

    uploaded ──claim──▶ processing ──complete──▶ completed
        ▲                   │
        └──lease reclaim────┤
                            └──fail──────────▶ failed

Every transition is one conditional UPDATE whose WHERE clause carries the
expected current state, so the database does the compare-and-set and there
is never a read-then-write window. Nothing here holds a lock across the
extraction call: claim commits, the worker extracts, then complete/fail
commits separately.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from supabase import Client

from app.config import Settings, get_settings
from app.core.exceptions import ConcurrencyConflict, SystemFailureError
from app.features.handbooks.schemas import (
    HANDBOOK_FIELDS,
    HandbookExtraction,
    HandbookLease,
    HandbookStatus,
)

logger = logging.getLogger(__name__)

TABLE = "user_handbooks"


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class HandbookPipeline:
    """Claim / complete / fail / reclaim on `user_handbooks`."""

    def __init__(self, db: Client, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()

    # ── Claim ────────────────────────────────────────────

    def claim_next(self) -> HandbookLease | None:
        """Move the oldest `uploaded` handbook to `processing`.

        Returns None once no uploaded handbook is left. Losing a race for a
        candidate just moves on to the next one.
        """
        while True:
            candidates = self._uploaded_candidates()
            if not candidates:
                return None

            for candidate in candidates:
                try:
                    return self._try_claim(candidate["handbook_id"])
                except ConcurrencyConflict:
                    logger.debug(f"Lost claim race for handbook {candidate['handbook_id']}")

    def _uploaded_candidates(self) -> list[dict]:
        try:
            result = (
                self.db.table(TABLE)
                .select("handbook_id")
                .eq("processing_status", HandbookStatus.UPLOADED.value)
                .order("upload_date", desc=False)
                .limit(self.settings.HANDBOOK_CLAIM_BATCH_SIZE)
                .execute()
            )
        except Exception as e:
            raise SystemFailureError("Could not query pending handbooks", original_error=str(e)) from e
        return result.data or []

    def _try_claim(self, handbook_id: str) -> HandbookLease:
        try:
            result = (
                self.db.table(TABLE)
                .update({
                    "processing_status": HandbookStatus.PROCESSING.value,
                    "processing_started_at": _utcnow_iso(),
                })
                .eq("handbook_id", handbook_id)
                .eq("processing_status", HandbookStatus.UPLOADED.value)
                .execute()
            )
        except Exception as e:
            raise SystemFailureError("Could not claim handbook", original_error=str(e)) from e

        if not result.data:
            raise ConcurrencyConflict(f"Handbook {handbook_id} was claimed by another worker")

        row = result.data[0]
        logger.info(f"🔒 Claimed handbook {handbook_id} ({row['original_filename']})")
        return HandbookLease(
            handbook_id=row["handbook_id"],
            user_id=row["user_id"],
            academic_id=row["academic_id"],
            storage_path=row["storage_path"],
            original_filename=row["original_filename"],
            processing_started_at=row["processing_started_at"],
        )

    # ── Commit ───────────────────────────────────────────

    def complete(self, lease: HandbookLease, fields: HandbookExtraction | dict[str, Any]) -> bool:
        """Write the extracted categories and mark the handbook `completed`.

        Returns False (and writes nothing) when the handbook was deleted or
        its lease reclaimed in the meantime.
        """
        if isinstance(fields, HandbookExtraction):
            values = fields.populated()
        else:
            values = self._known_fields(lease.handbook_id, fields)

        update = {
            **values,
            "processing_status": HandbookStatus.COMPLETED.value,
            "processed_date": _utcnow_iso(),
            "error_message": None,
        }
        committed = self._guarded_commit(lease, update)
        if committed:
            logger.info(
                f"🎉 Handbook {lease.handbook_id} completed with "
                f"{len(values)}/{len(HANDBOOK_FIELDS)} categories"
            )
        return committed

    def fail(self, lease: HandbookLease, message: str) -> bool:
        """Mark the handbook `failed` with ``message``. Same guard as complete()."""
        update = {
            "processing_status": HandbookStatus.FAILED.value,
            "error_message": message or "Extraction failed",
            "processed_date": _utcnow_iso(),
        }
        committed = self._guarded_commit(lease, update)
        if committed:
            logger.warning(f"❌ Handbook {lease.handbook_id} failed: {message}")
        return committed

    def _guarded_commit(self, lease: HandbookLease, update: dict) -> bool:
        try:
            result = (
                self.db.table(TABLE)
                .update(update)
                .eq("handbook_id", lease.handbook_id)
                .eq("processing_status", HandbookStatus.PROCESSING.value)
                .eq("processing_started_at", lease.processing_started_at)
                .execute()
            )
        except Exception as e:
            raise SystemFailureError("Could not commit extraction result", original_error=str(e)) from e

        if not result.data:
            logger.warning(
                f"⚠️ Discarding result for handbook {lease.handbook_id}: "
                f"deleted or lease reclaimed before commit"
            )
            return False
        return True

    @staticmethod
    def _known_fields(handbook_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        unknown = set(fields) - set(HANDBOOK_FIELDS)
        if unknown:
            logger.warning(f"⚠️ Ignoring unknown categories for handbook {handbook_id}: {sorted(unknown)}")
        # Validates that every category is a JSON object (or null)
        extraction = HandbookExtraction(**{k: v for k, v in fields.items() if k in HANDBOOK_FIELDS})
        return extraction.populated()

    # ── Lease reclaim ────────────────────────────────────

    def reclaim_expired(self, ttl_seconds: int | None = None) -> list[str]:
        """Send `processing` rows older than the lease TTL back to `uploaded`.

        Returns:
            Ids of the reclaimed handbooks.
        """
        ttl = ttl_seconds if ttl_seconds is not None else self.settings.HANDBOOK_LEASE_TTL_SECONDS
        cutoff = (datetime.now(timezone.utc) - timedelta(seconds=ttl)).isoformat()
        try:
            result = (
                self.db.table(TABLE)
                .update({
                    "processing_status": HandbookStatus.UPLOADED.value,
                    "processing_started_at": None,
                })
                .eq("processing_status", HandbookStatus.PROCESSING.value)
                .lt("processing_started_at", cutoff)
                .execute()
            )
        except Exception as e:
            raise SystemFailureError("Could not reclaim expired leases", original_error=str(e)) from e

        reclaimed = [row["handbook_id"] for row in (result.data or [])]
        if reclaimed:
            logger.warning(f"♻️ Reclaimed {len(reclaimed)} expired lease(s): {reclaimed}")
        return reclaimed
