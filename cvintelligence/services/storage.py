# ============================================================================
# services/storage.py - Temporary Upload Storage
# ============================================================================

import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from fastapi import UploadFile
from cvintelligence.core.config import settings
from cvintelligence.core.errors import UnsupportedFile

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {
    ".pdf": {"application/pdf"},
    ".doc": {"application/msword"},
    ".docx": {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"},
}
# Browsers and CLI clients often send these for any binary file
GENERIC_CONTENT_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

CHUNK_SIZE = 64 * 1024


@dataclass
class StoredUpload:
    path: Path
    original_filename: str
    size: int
    extension: str
    content_type: str


def validate_upload(filename: Optional[str], content_type: Optional[str], size: int,
                    max_bytes: Optional[int] = None) -> str:
    """Return the normalized extension or raise UnsupportedFile."""
    max_bytes = settings.MAX_UPLOAD_BYTES if max_bytes is None else max_bytes
    extension = Path(filename or "").suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        raise UnsupportedFile("Tipo de arquivo não suportado. Use PDF, DOC ou DOCX.")

    content_type = (content_type or "").split(";")[0].strip().lower()
    if content_type not in GENERIC_CONTENT_TYPES and content_type not in ALLOWED_EXTENSIONS[extension]:
        raise UnsupportedFile("Tipo de arquivo não suportado. Use PDF, DOC ou DOCX.")

    if size <= 0:
        raise UnsupportedFile("Nenhum arquivo enviado")
    if size > max_bytes:
        raise UnsupportedFile("Arquivo muito grande. O limite é de 5MB.")
    return extension


class StorageService:
    def __init__(self, upload_dir: Optional[str] = None, max_bytes: Optional[int] = None):
        self.upload_dir = Path(upload_dir or settings.UPLOAD_DIR)
        self.max_bytes = settings.MAX_UPLOAD_BYTES if max_bytes is None else max_bytes
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    async def save_upload(self, file: UploadFile, user_id: int) -> StoredUpload:
        """Validate and write the upload to a unique temporary path.

        The body is streamed in chunks and rejected as soon as it passes the
        size limit, so oversized files never land on disk in full.
        """
        validate_upload(file.filename, file.content_type, 1, self.max_bytes)
        extension = Path(file.filename).suffix.lower()
        file_path = self.upload_dir / str(user_id) / f"{uuid.uuid4()}{extension}"
        file_path.parent.mkdir(parents=True, exist_ok=True)

        size = 0
        try:
            with open(file_path, "wb") as buffer:
                while True:
                    chunk = await file.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.max_bytes:
                        break
                    buffer.write(chunk)
            validate_upload(file.filename, file.content_type, size, self.max_bytes)
        except BaseException:
            self.cleanup(file_path)
            raise

        return StoredUpload(
            path=file_path,
            original_filename=file.filename,
            size=size,
            extension=extension,
            content_type=(file.content_type or "").split(";")[0].strip().lower(),
        )

    def cleanup(self, path: Optional[Path]) -> None:
        """Delete a temporary upload. Failures are logged, never raised."""
        if path is None:
            return
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Error cleaning up file {path}: {e}")
