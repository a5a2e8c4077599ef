"""Byte storage for uploaded and fetched document files."""

from thinkfolio.providers.storage.local_byte_store import LocalFileByteStore

__all__ = ["LocalFileByteStore"]
