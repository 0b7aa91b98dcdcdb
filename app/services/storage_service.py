from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import os
import shutil
import uuid

from fastapi import UploadFile

from ..core.config import settings
from ..core.exceptions import BadRequestError, InternalServerError

logger = logging.getLogger(__name__)

class StorageService:
    """Local-disk file storage returning public URLs under MEDIA_URL."""

    def __init__(self, base_dir: Optional[str] = None, base_url: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.UPLOAD_DIR)
        self.base_url = base_url or settings.MEDIA_URL

    def upload(self, upload_file: Optional[UploadFile], folder: str) -> dict:
        """Persist an uploaded file and return ``{"url": ...}``."""
        if upload_file is None or not upload_file.filename:
            raise BadRequestError("File is missing.")

        size = self._size_of(upload_file)
        if size == 0:
            raise BadRequestError("Uploaded file is empty.")
        if size > settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024:
            raise BadRequestError(f"File exceeds the {settings.MAX_UPLOAD_SIZE_MB}MB limit.")

        # Unique name so repeated uploads never overwrite each other
        safe_name = os.path.basename(upload_file.filename).replace(" ", "_")
        filename = f"{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}_{safe_name}"
        target_dir = self.base_dir / folder

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            with open(target_dir / filename, "wb") as out:
                shutil.copyfileobj(upload_file.file, out)
        except OSError as e:
            logger.error(f"File upload to {target_dir} failed: {str(e)}")
            raise InternalServerError("Failed to store the uploaded file.")

        url = f"{self.base_url.rstrip('/')}/{folder}/{filename}"
        logger.info(f"Stored upload {safe_name} as {url}")

        return {"url": url}

    @staticmethod
    def _size_of(upload_file: UploadFile) -> int:
        stream = upload_file.file
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(0)
        return size
