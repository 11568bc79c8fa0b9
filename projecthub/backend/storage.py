"""
ProjectHub Storage Client — object storage buckets of the hosted backend.

Paths follow ``<project_id>/<name>``; the bucket's own access rules decide
who may read or write under a project prefix.
"""

from __future__ import annotations

import logging
from typing import Any, List
from urllib.parse import quote

from projecthub.engine.errors import BackendError

logger = logging.getLogger("projecthub.backend.storage")


class Bucket:
    """Operations on one storage bucket."""

    def __init__(self, backend: Any, name: str):
        self._backend = backend
        self.name = name

    def _object_path(self, path: str) -> str:
        return f"{self._backend.storage_url}/object/{self.name}/{quote(path)}"

    async def upload(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> str:
        """Upload ``content`` to ``path``; returns the stored path."""
        await self._backend.request(
            "POST",
            self._object_path(path),
            content=content,
            headers={"Content-Type": content_type, "x-upsert": "true" if upsert else "false"},
            table=f"storage:{self.name}",
            operation="upload",
        )
        logger.info(f"Uploaded {len(content)} bytes to {self.name}/{path}")
        return path

    async def remove(self, paths: List[str]) -> None:
        await self._backend.request(
            "DELETE",
            f"{self._backend.storage_url}/object/{self.name}",
            json={"prefixes": list(paths)},
            table=f"storage:{self.name}",
            operation="remove",
        )

    def get_public_url(self, path: str) -> str:
        return f"{self._backend.storage_url}/object/public/{self.name}/{quote(path)}"

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        """Short-lived download URL for a private object."""
        response = await self._backend.request(
            "POST",
            f"{self._backend.storage_url}/object/sign/{self.name}/{quote(path)}",
            json={"expiresIn": expires_in},
            table=f"storage:{self.name}",
            operation="sign",
        )
        payload = response.json()
        signed = payload.get("signedURL") or payload.get("signedUrl")
        if not signed:
            raise BackendError(
                "Signed URL missing from storage response",
                table=f"storage:{self.name}",
                operation="sign",
            )
        if signed.startswith("http"):
            return signed
        return f"{self._backend.storage_url}{signed}"


class StorageClient:
    """Entry point for buckets: ``client.storage.bucket("project-files")``."""

    def __init__(self, backend: Any):
        self._backend = backend

    def bucket(self, name: str) -> Bucket:
        return Bucket(self._backend, name)
