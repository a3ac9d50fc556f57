"""Record persistence.

The registry talks to a :class:`RecordStore`; the concrete backend (local
JSON file or a file in a GitHub repository) is chosen once at startup by
:func:`get_store`.
"""

from __future__ import annotations

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence

from .errors import PersistenceError
from .models import Participant


def records_from_json(payload: Any) -> List[Participant]:
    """Decode the stored list of records, rejecting unknown shapes."""
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise PersistenceError("Stored results must be a JSON list")
    records: List[Participant] = []
    for idx, raw in enumerate(payload):
        try:
            records.append(Participant.from_dict(raw))
        except ValueError as exc:
            raise PersistenceError(f"Stored record {idx} is invalid: {exc}") from exc
    return records


def records_to_json(records: Sequence[Participant]) -> str:
    return json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False)


class RecordStore(ABC):
    """Persistence collaborator: load and save the whole record list."""

    name = "abstract"

    @abstractmethod
    def load(self) -> List[Participant]:
        ...

    @abstractmethod
    def save(self, records: Sequence[Participant], message: Optional[str] = None) -> None:
        """Persist ``records``; raise :class:`PersistenceError` on failure."""


class JsonFileStore(RecordStore):
    """Records kept in a local JSON file."""

    name = "local"

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> List[Participant]:
        if not self.path.exists():
            return []
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Could not read {self.path}: {exc}") from exc
        if not text.strip():
            return []
        try:
            payload = json.loads(text)
        except ValueError as exc:
            raise PersistenceError(f"{self.path} is not valid JSON: {exc}") from exc
        return records_from_json(payload)

    def save(self, records: Sequence[Participant], message: Optional[str] = None) -> None:
        text = records_to_json(records)
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as exc:
            raise PersistenceError(f"Could not write {self.path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass


def get_store(config: Mapping[str, Any]) -> RecordStore:
    """Return the backend selected by ``RECORD_BACKEND``."""
    backend = (config.get("RECORD_BACKEND") or "local").lower()
    if backend == "github":
        from .datastore_github import GitHubStore

        return GitHubStore(
            repo=config.get("GITHUB_REPO") or "",
            path=config.get("GITHUB_FILE_PATH") or "results.json",
            branch=config.get("GITHUB_BRANCH") or "main",
            token=config.get("GITHUB_TOKEN"),
            timeout=config.get("GITHUB_TIMEOUT") or 10,
        )
    if backend == "local":
        return JsonFileStore(config.get("DATA_FILE") or "results.json")
    raise ValueError(f"Unknown RECORD_BACKEND {backend!r}; expected 'local' or 'github'")


__all__ = [
    "JsonFileStore",
    "RecordStore",
    "get_store",
    "records_from_json",
    "records_to_json",
]
