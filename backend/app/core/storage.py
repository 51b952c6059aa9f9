"""
Blob storage wrapper around a Supabase Storage bucket.

Paths are always relative to the bucket. Any failure from the storage API is
reported as SystemFailureError so callers never have to know the client's
exception types.
"""

import logging
import re
import unicodedata

from supabase import Client

from app.core.exceptions import SystemFailureError

logger = logging.getLogger(__name__)


def secure_filename(filename: str) -> str:
    """Strip accents and special characters, replace whitespace with underscores."""
    filename = unicodedata.normalize('NFKD', filename).encode('ascii', 'ignore').decode('ascii')
    filename = re.sub(r'[^\w\.-]', '_', filename)
    return filename or "handbook.pdf"


class BlobStorage:
    """put / get / delete on one bucket."""

    def __init__(self, db: Client, bucket: str):
        self.db = db
        self.bucket = bucket

    def put(self, path: str, data: bytes, content_type: str) -> str:
        try:
            self.db.storage.from_(self.bucket).upload(
                path=path,
                file=data,
                file_options={"content-type": content_type},
            )
        except Exception as e:
            logger.error(f"❌ Upload to {self.bucket}/{path} failed: {e}")
            raise SystemFailureError("Could not store the file", original_error=str(e)) from e
        logger.info(f"✅ Stored {len(data)} bytes at {self.bucket}/{path}")
        return path

    def get(self, path: str) -> bytes:
        try:
            return self.db.storage.from_(self.bucket).download(path)
        except Exception as e:
            logger.error(f"❌ Download of {self.bucket}/{path} failed: {e}")
            raise SystemFailureError("Could not read the stored file", original_error=str(e)) from e

    def delete(self, path: str) -> None:
        try:
            self.db.storage.from_(self.bucket).remove([path])
        except Exception as e:
            logger.warning(f"⚠️ Could not remove {self.bucket}/{path}: {e}")
            raise SystemFailureError("Could not delete the stored file", original_error=str(e)) from e
        logger.info(f"🗑️ Removed {self.bucket}/{path}")
