from __future__ import annotations

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import asdict
from pathlib import Path

from auth.models import TokenRecord


class TokenSink(ABC):
    """Destination for token records; raises when the record was not stored."""

    @abstractmethod
    async def append(self, record: TokenRecord) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class FileTokenSink(TokenSink):
    def __init__(self, path: str | Path = ".tokens.json") -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    async def append(self, record: TokenRecord) -> None:
        async with self._lock:
            records = self.read_all()
            records.append(asdict(record))
            self._replace_records(records)

    def read_all(self) -> list[dict]:
        if not self._path.exists():
            return []

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise RuntimeError("Token sink file is invalid; expected top-level JSON array.")
        return raw

    def _replace_records(self, records: list[dict]) -> None:
        # Readers see either the previous array or the new one, never a partial write.
        self._path.parent.mkdir(parents=True, exist_ok=True)
        serialized = json.dumps(records, indent=2, ensure_ascii=False)

        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=self._path.parent,
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            handle.write(serialized)
            staged = Path(handle.name)

        try:
            os.replace(staged, self._path)
        except OSError:
            staged.unlink(missing_ok=True)
            raise
