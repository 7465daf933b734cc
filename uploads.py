import os
import uuid
from typing import List

import structlog
from fastapi import UploadFile
from werkzeug.utils import secure_filename

from errors import ValidationError

logger = structlog.get_logger(__name__)

ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


def allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


class ImageStore:
    """Writes uploaded prescription images to disk and hands back their public paths."""

    def __init__(self, upload_dir: str, max_files: int = 5, url_prefix: str = "/uploads"):
        self.upload_dir = upload_dir
        self.max_files = max_files
        self.url_prefix = url_prefix

    def check(self, files: List[UploadFile]) -> None:
        if len(files) > self.max_files:
            raise ValidationError(f"Too many files. Maximum is {self.max_files} images")
        for f in files:
            content_type = f.content_type or ""
            if not content_type.startswith("image/") or not allowed_file(f.filename or ""):
                raise ValidationError("Only image files are allowed")

    def _filename(self, original: str) -> str:
        stem, ext = original.rsplit(".", 1)
        stem = secure_filename(stem)
        name = uuid.uuid4().hex
        if stem:
            name = f"{name}-{stem}"
        return f"{name}.{ext.lower()}"

    def save(self, files: List[UploadFile]) -> List[str]:
        self.check(files)
        if not files:
            return []
        os.makedirs(self.upload_dir, exist_ok=True)
        paths = []
        try:
            for f in files:
                filename = self._filename(f.filename)
                paths.append(f"{self.url_prefix}/{filename}")
                with open(os.path.join(self.upload_dir, filename), "wb") as out:
                    out.write(f.file.read())
        except Exception:
            self.discard(paths)
            raise
        logger.info("images_stored", count=len(paths))
        return paths

    def discard(self, paths: List[str]) -> None:
        """Remove previously stored images; paths that are already gone are ignored."""
        for path in paths:
            filename = path.rsplit("/", 1)[-1]
            try:
                os.remove(os.path.join(self.upload_dir, filename))
            except FileNotFoundError:
                pass
            except OSError:
                logger.exception("image_discard_failed", path=path)
