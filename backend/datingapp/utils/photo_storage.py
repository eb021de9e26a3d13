"""Photo storage backends.

Uploaded profile photos live in Cloudinary when `CLOUDINARY_CLOUD_NAME`
is configured, otherwise on local disk under `PHOTO_STORAGE_DIR` (served
by the app at `MEDIA_URL`). Both backends return the same small result
objects so the services never need to know which one is active.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from uuid import uuid4

import cloudinary
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError
from PIL import Image, UnidentifiedImageError

from ..config import settings

logger = logging.getLogger("datingapp.photos")

UPLOAD_FOLDER = "da-net8"
PHOTO_SIZE = 500


@dataclass
class UploadResult:
    public_id: Optional[str] = None
    secure_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DeletionResult:
    result: Optional[str] = None
    error: Optional[str] = None


def is_image(payload: bytes) -> bool:
    """Return True when Pillow recognises `payload` as an image."""
    try:
        Image.open(io.BytesIO(payload)).verify()
        return True
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        return False


class PhotoStorage:
    def add_photo(self, payload: bytes, filename: str) -> UploadResult:
        raise NotImplementedError

    def delete_photo(self, public_id: str) -> DeletionResult:
        raise NotImplementedError


class CloudinaryPhotoStorage(PhotoStorage):
    """Store photos in Cloudinary, cropped to a face-centred square."""

    def __init__(self, cloud_name: str, api_key: str, api_secret: str):
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)

    def add_photo(self, payload: bytes, filename: str) -> UploadResult:
        if not payload:
            return UploadResult()
        try:
            res = cloudinary.uploader.upload(
                io.BytesIO(payload),
                folder=UPLOAD_FOLDER,
                transformation=[{"height": PHOTO_SIZE, "width": PHOTO_SIZE, "crop": "fill", "gravity": "face"}],
            )
        except CloudinaryError as e:
            logger.warning("cloudinary upload failed for %s: %s", filename, e)
            return UploadResult(error=str(e))
        return UploadResult(public_id=res.get("public_id"), secure_url=res.get("secure_url"))

    def delete_photo(self, public_id: str) -> DeletionResult:
        try:
            res = cloudinary.uploader.destroy(public_id)
        except CloudinaryError as e:
            logger.warning("cloudinary delete failed for %s: %s", public_id, e)
            return DeletionResult(error=str(e))
        # "not found" is reported through `result`, not as a failure
        return DeletionResult(result=res.get("result"))


class LocalPhotoStorage(PhotoStorage):
    """Store photos as files under `root`, addressed by `{base_url}/{public_id}`.

    Images are re-encoded as a centre-cropped square JPEG, the local
    stand-in for the cloud transformation.
    """

    def __init__(self, root: Path, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _path_for(self, public_id: str) -> Path:
        path = (self.root / public_id).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError("invalid photo id")
        return path

    def add_photo(self, payload: bytes, filename: str) -> UploadResult:
        if not payload:
            return UploadResult()
        try:
            img = Image.open(io.BytesIO(payload))
            img = _crop_square(img.convert("RGB"), PHOTO_SIZE)
        except (UnidentifiedImageError, OSError) as e:
            return UploadResult(error=f"could not read image: {e}")
        public_id = f"{UPLOAD_FOLDER}/{uuid4().hex}.jpg"
        path = self._path_for(public_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        img.save(path, format="JPEG", quality=90)
        logger.info("stored photo %s (%s)", public_id, filename)
        return UploadResult(public_id=public_id, secure_url=f"{self.base_url}/{public_id}")

    def delete_photo(self, public_id: str) -> DeletionResult:
        try:
            path = self._path_for(public_id)
        except ValueError as e:
            return DeletionResult(error=str(e))
        if not path.exists():
            return DeletionResult(result="not found")
        path.unlink()
        return DeletionResult(result="ok")


def _crop_square(img: Image.Image, size: int) -> Image.Image:
    w, h = img.size
    side = min(w, h)
    left = (w - side) // 2
    top = (h - side) // 2
    img = img.crop((left, top, left + side, top + side))
    if side > size:
        img = img.resize((size, size))
    return img


_storage: Optional[PhotoStorage] = None


def get_photo_storage() -> PhotoStorage:
    """FastAPI dependency returning the configured storage backend."""
    global _storage
    if _storage is None:
        if settings.use_cloudinary:
            _storage = CloudinaryPhotoStorage(
                settings.CLOUDINARY_CLOUD_NAME,
                settings.CLOUDINARY_API_KEY,
                settings.CLOUDINARY_API_SECRET,
            )
        else:
            _storage = LocalPhotoStorage(settings.PHOTO_STORAGE_DIR, settings.MEDIA_URL)
    return _storage
