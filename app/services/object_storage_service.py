from __future__ import annotations

import hashlib
import logging
import mimetypes
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)

EXTENSION_OVERRIDES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/heic": "heic",
    "application/pdf": "pdf",
    "text/html": "html",
}


class ObjectStorageError(Exception):
    pass


class ObjectStorageNotFoundError(ObjectStorageError):
    pass


@dataclass(frozen=True)
class ObjectStorageObjectMeta:
    bucket: str
    object_key: str
    size_bytes: int
    etag: str
    content_type: str
    public_url: str
    absolute_path: Path


class LocalObjectStorageAdapter:
    def __init__(self, root_dir: Path) -> None:
        self._root_dir = root_dir
        self._root_dir.mkdir(parents=True, exist_ok=True)

    def _safe_object_path(self, bucket: str, object_key: str) -> Path:
        normalized_bucket = bucket.strip()
        if not normalized_bucket:
            raise ObjectStorageError("bucket is empty")
        key_path = PurePosixPath(object_key)
        if key_path.is_absolute() or ".." in key_path.parts:
            raise ObjectStorageError("invalid object key")
        if not key_path.parts:
            raise ObjectStorageError("object key is empty")
        return self._root_dir / normalized_bucket / Path(*key_path.parts)

    def put_bytes(self, *, bucket: str, object_key: str, content: bytes) -> tuple[Path, str]:
        path = self._safe_object_path(bucket, object_key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            raise ObjectStorageError(f"failed to store object {object_key}") from exc
        return path, hashlib.sha256(content).hexdigest()

    def read_bytes(self, *, bucket: str, object_key: str) -> bytes:
        path = self._safe_object_path(bucket, object_key)
        if not path.is_file():
            raise ObjectStorageNotFoundError("object not found")
        return path.read_bytes()

    def remove(self, *, bucket: str, object_key: str) -> bool:
        path = self._safe_object_path(bucket, object_key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ObjectStorageError(f"failed to remove object {object_key}") from exc
        return True

    def list_keys(self, *, bucket: str, prefix: str) -> list[str]:
        directory = self._safe_object_path(bucket, prefix.rstrip("/") or ".")
        if not directory.is_dir():
            return []
        bucket_root = self._root_dir / bucket.strip()
        return sorted(
            PurePosixPath(item.relative_to(bucket_root)).as_posix()
            for item in directory.iterdir()
            if item.is_file()
        )

    def get_download_path(self, *, bucket: str, object_key: str) -> Path:
        path = self._safe_object_path(bucket, object_key)
        if not path.exists() or not path.is_file():
            raise ObjectStorageNotFoundError("object not found")
        return path


class ObjectStorageService:
    def __init__(self) -> None:
        backend = os.getenv("OBJECT_STORAGE_BACKEND", "local").strip().lower()
        if backend != "local":
            raise ObjectStorageError(f"unsupported storage backend: {backend}")
        root_dir = Path(os.getenv("OBJECT_STORAGE_ROOT", "data/object_storage"))
        self._adapter = LocalObjectStorageAdapter(root_dir)
        self.default_bucket = os.getenv("OBJECT_STORAGE_BUCKET", "inspection-photos")
        self.public_base_url = os.getenv("OBJECT_STORAGE_PUBLIC_BASE_URL", "/api/files").rstrip("/")

    @staticmethod
    def extension_for(content_type: str, file_name: str | None = None) -> str:
        if file_name:
            suffix = Path(file_name).suffix.lstrip(".").lower()
            if suffix:
                return suffix
        normalized = content_type.split(";")[0].strip().lower()
        if normalized in EXTENSION_OVERRIDES:
            return EXTENSION_OVERRIDES[normalized]
        guessed = mimetypes.guess_extension(normalized)
        return guessed.lstrip(".") if guessed else "bin"

    def build_photo_key(self, *, inspection_id: str, step_number: int, photo_order: int, content_type: str) -> str:
        return f"{inspection_id}/{step_number}/{photo_order}.{self.extension_for(content_type)}"

    def build_report_key(
        self,
        *,
        inspection_id: str,
        report_type: str,
        content_type: str,
        file_name: str | None = None,
    ) -> str:
        extension = self.extension_for(content_type, file_name)
        return f"{self.reports_prefix(inspection_id)}{report_type}.{extension}"

    def reports_prefix(self, inspection_id: str) -> str:
        return f"{inspection_id}/reports/"

    def build_document_key(self, *, inspection_id: str, name: str) -> str:
        return f"{inspection_id}/{name}"

    def public_url(self, object_key: str) -> str:
        return f"{self.public_base_url}/{object_key}"

    def put(self, object_key: str, content: bytes, content_type: str) -> ObjectStorageObjectMeta:
        """Store content at the key, replacing whatever was there."""
        path, etag = self._adapter.put_bytes(bucket=self.default_bucket, object_key=object_key, content=content)
        return ObjectStorageObjectMeta(
            bucket=self.default_bucket,
            object_key=object_key,
            size_bytes=len(content),
            etag=etag,
            content_type=content_type,
            public_url=self.public_url(object_key),
            absolute_path=path,
        )

    def read(self, object_key: str) -> bytes:
        return self._adapter.read_bytes(bucket=self.default_bucket, object_key=object_key)

    def remove(self, object_keys: list[str]) -> list[str]:
        """Remove objects and return the keys that actually existed."""
        removed: list[str] = []
        for key in object_keys:
            if self._adapter.remove(bucket=self.default_bucket, object_key=key):
                removed.append(key)
            else:
                logger.debug("object %s already absent", key)
        return removed

    def list_keys(self, prefix: str) -> list[str]:
        return self._adapter.list_keys(bucket=self.default_bucket, prefix=prefix)

    def get_download_path(self, object_key: str) -> Path:
        return self._adapter.get_download_path(bucket=self.default_bucket, object_key=object_key)
