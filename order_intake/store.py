"""Durable token collection.

The whole collection lives in memory and is written back as a single JSON
document (``{"tokens": [...]}``) on every ``replace_all``. Writes go to a
temporary file next to the target and are moved into place with
``os.replace`` so a crash never leaves a half-written document.

The store does not serialize writers itself; the owner (TokenLifecycleManager)
holds a lock around each read-modify-write.
"""
from __future__ import annotations

import asyncio
import json
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

from pydantic import ValidationError

from .domain.tokens import TokenRecord
from .errors import StorageFailure
from .logging_conf import get_logger

__all__ = ["TokenStore"]

logger = get_logger("store.tokens")


class TokenStore:
    def __init__(self, path: str | os.PathLike[str] | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._records: list[TokenRecord] | None = None
        self._load_lock = asyncio.Lock()

    @property
    def path(self) -> Path | None:
        return self._path

    async def read_all(self) -> list[TokenRecord]:
        """Return copies of every record, in insertion order."""
        records = await self._ensure_loaded()
        return [r.model_copy() for r in records]

    async def replace_all(self, records: Iterable[TokenRecord]) -> None:
        """Swap in a new collection and flush it before returning."""
        await self._ensure_loaded()
        new_records = [r.model_copy() for r in records]
        if self._path is not None:
            await asyncio.to_thread(self._write, self._path, new_records)
        self._records = new_records

    async def _ensure_loaded(self) -> list[TokenRecord]:
        if self._records is not None:
            return self._records
        async with self._load_lock:
            if self._records is None:
                if self._path is None:
                    self._records = []
                else:
                    self._records = await asyncio.to_thread(self._read, self._path)
                    logger.info(
                        "tokens.load",
                        extra={
                            "event": "tokens_load",
                            "path": str(self._path),
                            "count": len(self._records),
                        },
                    )
        return self._records

    @staticmethod
    def _read(path: Path) -> list[TokenRecord]:
        if not path.exists():
            TokenStore._write(path, [])
            return []
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return [TokenRecord.model_validate(item) for item in data.get("tokens", [])]
        except (OSError, ValueError, AttributeError, ValidationError) as e:
            raise StorageFailure(f"token document {path} is unreadable: {e}") from e

    @staticmethod
    def _write(path: Path, records: list[TokenRecord]) -> None:
        doc = {"tokens": [r.model_dump(mode="json", by_alias=True) for r in records]}
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(doc, fh, ensure_ascii=False, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, path)
        except OSError as e:
            Path(tmp).unlink(missing_ok=True)
            raise StorageFailure(f"could not write token document {path}: {e}") from e
