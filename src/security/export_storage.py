"""Storage for encrypted export bundles — one ``{export_id}.enc`` JSON envelope per export.

Only ciphertext ever touches disk. Metadata (token, TTL, download count) is
kept separately in ``export_records``. Deleting the file is crypto-shredding
in practice: the password was never stored anywhere.
"""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import Any, Protocol

from src.config import settings
from src.errors import StorageError
from src.security.encryption import EncryptedEnvelope


class ExportStorage(Protocol):
    async def write_encrypted_bundle(self, export_id: Any, envelope: EncryptedEnvelope) -> None: ...

    async def read_encrypted_bundle(self, export_id: Any) -> EncryptedEnvelope: ...

    async def delete_bundle(self, export_id: Any) -> bool: ...


class FileExportStorage:
    """Filesystem-backed bundle storage."""

    def __init__(self, base_dir: str | Path | None = None) -> None:
        self._base = Path(base_dir or settings.security.export_storage_dir)

    def _path(self, export_id: Any) -> Path:
        try:
            # Export ids are UUIDs; anything else could escape the directory
            name = str(uuid.UUID(str(export_id)))
        except ValueError:
            msg = "Export not found"
            raise StorageError(msg) from None
        return self._base / f"{name}.enc"

    @staticmethod
    def _write(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    # File I/O runs in a worker thread, off the event loop

    async def write_encrypted_bundle(self, export_id: Any, envelope: EncryptedEnvelope) -> None:
        await asyncio.to_thread(self._write, self._path(export_id), envelope.to_json())

    async def read_encrypted_bundle(self, export_id: Any) -> EncryptedEnvelope:
        path = self._path(export_id)
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            msg = "Export not found"
            raise StorageError(msg) from None
        return EncryptedEnvelope.from_json(raw)

    async def delete_bundle(self, export_id: Any) -> bool:
        return await asyncio.to_thread(self._unlink, self._path(export_id))


# Module-level singleton
export_storage = FileExportStorage()
