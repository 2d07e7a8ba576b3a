from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from threading import RLock
from typing import Protocol

from pydantic import ValidationError

from .contracts import DocumentState
from .errors import StoreFailure


class DocumentPersistence(Protocol):
    def read(self) -> DocumentState: ...

    def write(self, state: DocumentState) -> None: ...


class InMemoryPersistence:
    """Keeps a serialized copy of the last written document."""

    def __init__(self, initial: DocumentState | None = None):
        self._lock = RLock()
        self._raw = (initial or DocumentState()).model_dump_json()
        self.write_count = 0

    def read(self) -> DocumentState:
        with self._lock:
            return DocumentState.model_validate_json(self._raw)

    def write(self, state: DocumentState) -> None:
        with self._lock:
            self._raw = state.model_dump_json()
            self.write_count += 1


class JsonFilePersistence:
    """Whole-document JSON file. A missing file reads as an empty document."""

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> DocumentState:
        if not self._path.exists():
            return DocumentState()
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StoreFailure(f"Failed to read {self._path}: {exc}") from exc
        if not raw.strip():
            return DocumentState()
        try:
            return DocumentState.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise StoreFailure(f"Corrupt document at {self._path}: {exc}") from exc

    def write(self, state: DocumentState) -> None:
        payload = json.dumps(state.model_dump(mode="json"), ensure_ascii=False, indent=2)
        tmp_name = ""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                dir=str(self._path.parent),
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            raise StoreFailure(f"Failed to write {self._path}: {exc}") from exc
