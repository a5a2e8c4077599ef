"""Abstract base class for the opaque byte store holding uploaded files."""

from __future__ import annotations

from abc import ABC, abstractmethod


class IByteStore(ABC):
    """Bucketed blob storage keyed by path."""

    @abstractmethod
    async def put(self, bucket: str, path: str, data: bytes) -> str:
        """Store *data* and return the path it was stored under."""

    @abstractmethod
    async def get(self, bucket: str, path: str) -> bytes:
        """Return stored bytes.

        Raises
        ------
        thinkfolio.utils.errors.NotFoundError
            If nothing is stored at *path*.
        """

    @abstractmethod
    async def delete(self, bucket: str, path: str) -> None:
        """Remove the object at *path*; missing objects are ignored."""
