"""
Handbooks feature: ingestion gateway and user-facing handbook management.

Upload flow: validate size/type → resolve the academic context → check enrollment
ownership → store file → insert `uploaded` record. Validation and ownership run
before any side effect; a failed insert removes the stored file again.
"""

import logging
import uuid
from datetime import datetime, timezone

from supabase import Client

from app.config import Settings, get_settings
from app.core.exceptions import (
    NotFoundError,
    SystemFailureError,
    ValidationError,
)
from app.core.storage import BlobStorage, secure_filename
from app.features.academic.resolver import AcademicContextResolver
from app.features.handbooks.schemas import HandbookRecord, HandbookStatus

logger = logging.getLogger(__name__)

TABLE = "user_handbooks"
PDF_CONTENT_TYPE = "application/pdf"
PDF_MAGIC = b"%PDF-"


class HandbookGateway:
    """Accepts handbook uploads and serves the owner's handbook records."""

    def __init__(
        self,
        db: Client,
        resolver: AcademicContextResolver | None = None,
        storage: BlobStorage | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.resolver = resolver or AcademicContextResolver(db)
        self.storage = storage or BlobStorage(db, self.settings.HANDBOOK_BUCKET)

    # ── Ingestion ────────────────────────────────────────

    def validate_file(self, data: bytes, content_type: str | None) -> None:
        """Raise ValidationError unless ``data`` is a non-empty PDF within the size limit."""
        max_bytes = self.settings.HANDBOOK_MAX_BYTES
        if len(data) > max_bytes:
            raise ValidationError(
                "File too large",
                detail=f"Maximum handbook size is {max_bytes // (1024 * 1024)}MB.",
                status_code=413,
            )
        if not data:
            raise ValidationError("Empty file", detail="The uploaded file has no content.")
        if (content_type or "").split(";")[0].strip().lower() != PDF_CONTENT_TYPE:
            raise ValidationError(
                "Only PDF files are allowed",
                detail=f"Got content type '{content_type}'.",
                status_code=415,
            )
        if not data.startswith(PDF_MAGIC):
            raise ValidationError(
                "Only PDF files are allowed",
                detail="The file content is not a PDF document.",
                status_code=415,
            )

    def submit(
        self,
        user_id: str,
        academic_id: str,
        data: bytes,
        filename: str,
        content_type: str | None = PDF_CONTENT_TYPE,
    ) -> str:
        """Store a handbook and create its `uploaded` record.

        Returns:
            The new handbook_id.

        Raises:
            ValidationError: size/type rejected, nothing stored.
            NotFoundError: ENROLLMENT_MISSING (404, user can fix their profile)
                or COLLEGE_MISSING (500, data problem), nothing stored.
            AuthorizationError: academic_id not owned by user_id, nothing stored.
            SystemFailureError: storage or database unavailable, nothing left behind.
        """
        self.validate_file(data, content_type)
        self.resolver.resolve(user_id)
        self.resolver.require_enrollment(user_id, academic_id)

        # {academic_id}/{user_id}/... : storage policies key on the user folder
        safe_filename = secure_filename(filename)
        storage_path = f"{academic_id}/{user_id}/{uuid.uuid4().hex}_{safe_filename}"
        self.storage.put(storage_path, data, PDF_CONTENT_TYPE)

        insert_data = {
            "user_id": user_id,
            "academic_id": academic_id,
            "storage_path": storage_path,
            "original_filename": filename,
            "file_size_bytes": len(data),
            "processing_status": HandbookStatus.UPLOADED.value,
            "upload_date": datetime.now(timezone.utc).isoformat(),
        }
        try:
            result = self.db.table(TABLE).insert(insert_data).execute()
            handbook_id = result.data[0]["handbook_id"]
        except Exception as e:
            logger.error(f"❌ Could not record handbook {storage_path}: {e}")
            self._remove_quietly(storage_path)
            raise SystemFailureError("Could not record the handbook", original_error=str(e)) from e

        logger.info(f"📥 Handbook {handbook_id} uploaded by {user_id} ({len(data)} bytes)")
        return handbook_id

    def resubmit(self, user_id: str, handbook_id: str) -> str:
        """Explicit retry of a failed handbook as a brand-new submission.

        The failed record stays as it is; the stored PDF is copied into a new
        record that starts again at `uploaded`.
        """
        record = self.get_handbook(user_id, handbook_id)
        if record.processing_status != HandbookStatus.FAILED:
            raise ValidationError(
                "Only failed handbooks can be resubmitted",
                detail=f"Handbook is currently '{record.processing_status.value}'.",
                status_code=409,
            )
        data = self.storage.get(record.storage_path)
        new_id = self.submit(user_id, record.academic_id, data, record.original_filename)
        logger.info(f"🔁 Handbook {handbook_id} resubmitted as {new_id}")
        return new_id

    # ── Queries ──────────────────────────────────────────

    def list_handbooks(self, user_id: str, status: HandbookStatus | None = None) -> list[HandbookRecord]:
        """The user's handbooks, newest upload first."""
        query = self.db.table(TABLE).select("*").eq("user_id", user_id)
        if status:
            query = query.eq("processing_status", status.value)
        try:
            result = query.order("upload_date", desc=True).execute()
        except Exception as e:
            raise SystemFailureError("Could not list handbooks", original_error=str(e)) from e
        return [HandbookRecord(**row) for row in result.data or []]

    def get_handbook(self, user_id: str, handbook_id: str) -> HandbookRecord:
        try:
            result = (
                self.db.table(TABLE)
                .select("*")
                .eq("handbook_id", handbook_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise SystemFailureError("Could not load the handbook", original_error=str(e)) from e
        if not result.data:
            raise NotFoundError("Handbook not found")
        return HandbookRecord(**result.data[0])

    # ── Deletion ─────────────────────────────────────────

    def delete_handbook(self, user_id: str, handbook_id: str) -> None:
        """Delete the record, then its file.

        Deleting the row is also what cancels an in-flight extraction: the
        worker's commit finds no row and drops its result.
        """
        try:
            result = (
                self.db.table(TABLE)
                .delete()
                .eq("handbook_id", handbook_id)
                .eq("user_id", user_id)
                .execute()
            )
        except Exception as e:
            raise SystemFailureError("Could not delete the handbook", original_error=str(e)) from e
        if not result.data:
            raise NotFoundError("Handbook not found")

        storage_path = result.data[0].get("storage_path")
        if storage_path:
            self._remove_quietly(storage_path)
        logger.info(f"🗑️ Handbook {handbook_id} deleted by {user_id}")

    def _remove_quietly(self, storage_path: str) -> None:
        try:
            self.storage.delete(storage_path)
        except SystemFailureError:
            # Orphaned object; the record is already gone so nothing points at it
            logger.warning(f"⚠️ Left orphaned file {storage_path}")
