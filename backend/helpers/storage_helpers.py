"""
Supabase Storage wrapper for raw image/audio objects.

Object keys: {images|audios|uploads}/{YYYY}/{MM}/{uuid}{ext}
"""

import asyncio
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

MIME_TO_EXT = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/wav": ".wav",
    "audio/m4a": ".m4a",
    "audio/mp4": ".m4a",
    "audio/webm": ".webm",
    "audio/ogg": ".ogg",
}


def _folder_for(mime_type: str) -> str:
    if mime_type.startswith("image/"):
        return "images"
    if mime_type.startswith("audio/"):
        return "audios"
    return "uploads"


def generate_object_key(filename: Optional[str], mime_type: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    ext = os.path.splitext(filename or "")[1].lower() or MIME_TO_EXT.get(mime_type, "")
    return f"{_folder_for(mime_type)}/{now:%Y}/{now:%m}/{uuid.uuid4()}{ext}"


class SupabaseBlobStore:
    """
    Upload/delete against one Supabase Storage bucket.

    The supabase client is synchronous, so calls are pushed to a worker thread
    to keep the event loop free while sibling files are processed.
    """

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    def _require_client(self):
        if self.client is None:
            raise RuntimeError("Supabase is not configured. Set SUPABASE_URL and SUPABASE_KEY in .env")
        return self.client

    def _upload_sync(self, data: bytes, content_type: str, filename: Optional[str]) -> str:
        storage = self._require_client().storage.from_(self.bucket)
        key = generate_object_key(filename, content_type)
        storage.upload(path=key, file=data, file_options={"content-type": content_type})
        url = storage.get_public_url(key)
        logger.info(f"[Upload] Stored {filename or key} -> {url}")
        return url

    async def upload(self, data: bytes, content_type: str, filename: Optional[str] = None) -> str:
        return await asyncio.to_thread(self._upload_sync, data, content_type, filename)

    def extract_key(self, reference: str) -> str:
        """Accept either an object key or a public URL produced by upload()."""
        marker = f"/object/public/{self.bucket}/"
        if marker in reference:
            return reference.split(marker, 1)[1].split("?", 1)[0]
        return reference

    def _delete_sync(self, reference: str) -> None:
        key = self.extract_key(reference)
        self._require_client().storage.from_(self.bucket).remove([key])
        logger.info(f"[Upload] Deleted {key}")

    async def delete(self, reference: str) -> None:
        await asyncio.to_thread(self._delete_sync, reference)
