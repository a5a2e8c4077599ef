"""Filesystem-backed byte store.

Objects live at ``<root>/<bucket>/<path>``.  Paths are relative keys such as
``<owner_id>/<document_id>.pdf``; anything that would resolve outside the
bucket directory is rejected.  Disk I/O runs in a worker thread so large
uploads don't block the event loop.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from thinkfolio.interfaces.byte_store import IByteStore
from thinkfolio.utils.errors import NotFoundError, StoreError, ValidationError

logger = structlog.get_logger(logger_name=__name__)


class LocalFileByteStore(IByteStore):
    """Stores document bytes under a root directory on local disk."""

    def __init__(self, root: str | Path = Path("data/storage")) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    async def put(self, bucket: str, path: str, data: bytes) -> str:
        target = self._resolve(bucket, path)
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as exc:
            raise StoreError(message=f"Failed to write {bucket}/{path}: {exc}", provider_name="local_fs") from exc
        logger.info("bytes_stored", bucket=bucket, path=path, size=len(data))
        return path

    async def get(self, bucket: str, path: str) -> bytes:
        target = self._resolve(bucket, path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise NotFoundError(message=f"No stored object at {bucket}/{path}") from exc
        except OSError as exc:
            raise StoreError(message=f"Failed to read {bucket}/{path}: {exc}", provider_name="local_fs") from exc

    async def delete(self, bucket: str, path: str) -> None:
        target = self._resolve(bucket, path)
        try:
            await asyncio.to_thread(target.unlink, missing_ok=True)
        except OSError as exc:
            raise StoreError(message=f"Failed to delete {bucket}/{path}: {exc}", provider_name="local_fs") from exc
        logger.info("bytes_deleted", bucket=bucket, path=path)

    def _resolve(self, bucket: str, path: str) -> Path:
        if not bucket or not path:
            raise ValidationError(message="Bucket and path must both be non-empty")
        bucket_dir = (self._root / bucket).resolve()
        target = (bucket_dir / path).resolve()
        if not target.is_relative_to(bucket_dir) or target == bucket_dir:
            raise ValidationError(message=f"Storage path escapes its bucket: {path}")
        return target

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
