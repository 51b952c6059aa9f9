"""
Background extraction worker.

Each worker is an independent scheduler job that drains claimable handbooks:
  1. claim_next() → uploaded → processing (commits immediately)
  2. download the PDF from storage
  3. call the extraction capability (slow, no lock held)
  4. complete() or fail() in a second short statement

A bad or unreadable PDF in step 3 ends up as a `failed` record. Storage being
unavailable in step 2, or a failure to commit in step 4, is only logged: the
lease reaper hands the row to another worker.
"""

import logging

from supabase import Client

from app.config import get_settings
from app.core.database import get_supabase_admin_client
from app.core.exceptions import ExtractionFailure, SystemFailureError
from app.core.storage import BlobStorage
from app.features.handbooks.extraction import HandbookExtractor, LLMHandbookExtractor
from app.features.handbooks.pipeline import HandbookPipeline
from app.features.handbooks.schemas import HandbookLease

logger = logging.getLogger(__name__)

# Shared by every worker job in this process (lazy init)
_default_extractor: HandbookExtractor | None = None


def get_default_extractor() -> HandbookExtractor:
    global _default_extractor
    if _default_extractor is None:
        _default_extractor = LLMHandbookExtractor()
    return _default_extractor


class ExtractionWorker:
    """Processes handbooks one lease at a time."""

    def __init__(
        self,
        pipeline: HandbookPipeline,
        storage: BlobStorage,
        extractor: HandbookExtractor,
        name: str = "extraction-worker",
    ):
        self.pipeline = pipeline
        self.storage = storage
        self.extractor = extractor
        self.name = name

    def run_once(self) -> bool:
        """Claim and process one handbook. Returns False when nothing was claimable."""
        lease = self.pipeline.claim_next()
        if lease is None:
            return False
        self.process(lease)
        return True

    def drain(self, max_items: int | None = None) -> int:
        """Process handbooks until none are claimable (or ``max_items`` reached)."""
        processed = 0
        while max_items is None or processed < max_items:
            if not self.run_once():
                break
            processed += 1
        if processed:
            logger.info(f"✅ [{self.name}] processed {processed} handbook(s)")
        return processed

    def process(self, lease: HandbookLease) -> None:
        logger.info(f"🚀 [{self.name}] extracting handbook {lease.handbook_id} ({lease.original_filename})")
        try:
            data = self.storage.get(lease.storage_path)
        except SystemFailureError as e:
            # Row stays in processing until the lease reaper re-queues it
            logger.error(
                f"❌ [{self.name}] storage unavailable for {lease.handbook_id}, "
                f"lease will expire: {e.detail or e.message}"
            )
            return

        try:
            extraction = self.extractor.extract(data, lease.original_filename)
        except ExtractionFailure as e:
            self._commit_failure(lease, e.reason)
            return
        except Exception as e:
            logger.error(f"❌ [{self.name}] extractor crashed on {lease.handbook_id}: {e}", exc_info=True)
            self._commit_failure(lease, f"Extraction error: {e}")
            return

        try:
            self.pipeline.complete(lease, extraction)
        except SystemFailureError as e:
            logger.error(f"❌ [{self.name}] could not commit {lease.handbook_id}, lease will expire: {e.detail}")

    def _commit_failure(self, lease: HandbookLease, message: str) -> None:
        try:
            self.pipeline.fail(lease, message)
        except SystemFailureError as e:
            logger.error(f"❌ [{self.name}] could not record failure of {lease.handbook_id}: {e.detail}")


def build_worker(name: str, db: Client | None = None, extractor: HandbookExtractor | None = None) -> ExtractionWorker:
    settings = get_settings()
    db = db or get_supabase_admin_client()
    return ExtractionWorker(
        pipeline=HandbookPipeline(db, settings),
        storage=BlobStorage(db, settings.HANDBOOK_BUCKET),
        extractor=extractor or get_default_extractor(),
        name=name,
    )


def run_extraction_worker(name: str) -> int:
    """Scheduler callback: one polling round of one worker."""
    try:
        return build_worker(name).drain()
    except SystemFailureError as e:
        logger.error(f"❌ [{name}] polling round aborted: {e.message} ({e.detail})")
        return 0
