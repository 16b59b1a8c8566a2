"""Stores uploaded spreadsheets under the intake storage root."""

import asyncio
import hashlib
import os
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx

from order_intake.core.config import IntegrationSettings
from order_intake.core.exceptions import APIClientError, AppError, ValidationError
from order_intake.utils.logging import get_logger

LOGGER = get_logger(__name__)


class StorageService:
    """Copies a blob reference (http(s) URL or local path) into ``storage_root/<case_id>/``."""

    def __init__(self, storage_root: str, http_timeout: float = 60.0):
        self.storage_root = Path(storage_root)
        self.http_timeout = http_timeout

    @classmethod
    def from_settings(cls, integrations: IntegrationSettings) -> "StorageService":
        return cls(integrations.storage_root, integrations.http_timeout)

    async def store(self, case_id: str, blob_reference: str) -> Dict[str, Any]:
        """Fetch and persist the file.

        Returns:
            ``{"stored_path": str, "sha256": str, "filename": str, "size": int}``

        Raises:
            ValidationError: If the reference is empty or points to nothing
            APIClientError: If a remote download fails
        """
        if not blob_reference:
            raise ValidationError(f"Case {case_id}: file blob reference is empty")

        content = await self._fetch(case_id, blob_reference)
        filename = self.filename_of(blob_reference)
        digest = hashlib.sha256(content).hexdigest()

        target_dir = self.storage_root / case_id
        target = target_dir / f"{digest[:12]}-{filename}"
        try:
            await asyncio.to_thread(self._write, target, content)
        except OSError as e:
            LOGGER.error(f"Error writing file for case {case_id}: {str(e)}", exc_info=True)
            raise AppError(f"Case {case_id}: could not store file", original_error=e)

        LOGGER.info(
            "Stored intake file",
            extra={"case_id": case_id, "stored_path": str(target), "size": len(content)},
        )
        return {"stored_path": str(target), "sha256": digest, "filename": filename, "size": len(content)}

    def read(self, stored_path: str) -> bytes:
        return Path(stored_path).read_bytes()

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    @staticmethod
    def filename_of(blob_reference: str) -> str:
        path = urlparse(blob_reference).path if "://" in blob_reference else blob_reference
        return os.path.basename(path) or "upload.xlsx"

    async def _fetch(self, case_id: str, blob_reference: str) -> bytes:
        scheme = urlparse(blob_reference).scheme
        if scheme in ("http", "https"):
            try:
                async with httpx.AsyncClient(timeout=self.http_timeout, follow_redirects=True) as client:
                    response = await client.get(blob_reference)
            except httpx.HTTPError as e:
                LOGGER.error(f"Error downloading file for case {case_id}: {str(e)}", exc_info=True)
                raise APIClientError(f"Case {case_id}: download failed: {str(e)}", original_error=e)
            if response.status_code == 404:
                raise ValidationError(f"Case {case_id}: file not found at {blob_reference}")
            if response.status_code != 200:
                raise APIClientError(f"Case {case_id}: download returned {response.status_code}")
            return response.content

        local = Path(blob_reference[len("file://"):] if scheme == "file" else blob_reference)
        if not local.is_file():
            raise ValidationError(f"Case {case_id}: file not found at {blob_reference}")
        return await asyncio.to_thread(local.read_bytes)
