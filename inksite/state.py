"""Render cache tracking which documents were rendered as of which timestamp."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable

from pydantic import BaseModel, Field, ValidationError

from . import __version__
from .errors import CacheCorruptionError
from .manifests import DocumentMeta

logger = logging.getLogger(__name__)

CACHE_FILENAME = "render_cache.json"


class _CachePayload(BaseModel):
    version: str = Field(...)
    cache: Dict[str, datetime] = Field(default_factory=dict)


@dataclass
class BuildCache:
    """Persisted mapping of document id to the timestamp it was last rendered at.

    A cache written by a different package version is discarded as a whole.
    """

    version: str = __version__
    entries: Dict[str, datetime] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "BuildCache":
        return cls(version=__version__, entries={})

    @classmethod
    def load(cls, output_root: Path) -> "BuildCache":
        path = output_root / CACHE_FILENAME
        if not path.exists():
            return cls.empty()
        try:
            payload = _CachePayload.model_validate_json(path.read_bytes())
        except (OSError, ValidationError) as exc:
            raise CacheCorruptionError(f"Unreadable render cache {path}: {exc}") from exc

        if payload.version != __version__:
            logger.info(
                "Render cache %s was written by version %s; discarding it.",
                path,
                payload.version,
            )
            return cls.empty()
        return cls(version=payload.version, entries=dict(payload.cache))

    def get(self, document_id: str) -> datetime | None:
        return self.entries.get(document_id)

    def is_current(self, document: DocumentMeta) -> bool:
        """True when the cached timestamp equals the document's timestamp exactly.

        Any difference, newer or older, means the document must be re-rendered.
        """
        cached = self.entries.get(document.id)
        return cached is not None and cached == document.modified_at

    def record(self, documents: Iterable[DocumentMeta]) -> "BuildCache":
        """Return the cache describing ``documents`` at their current timestamps."""
        return BuildCache(
            version=__version__,
            entries={document.id: document.modified_at for document in documents},
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "version": self.version,
            "cache": {key: value.isoformat() for key, value in sorted(self.entries.items())},
        }

    def save(self, output_root: Path) -> Path:
        output_root.mkdir(parents=True, exist_ok=True)
        path = output_root / CACHE_FILENAME
        temp_path = path.with_suffix(".json.tmp")
        try:
            temp_path.write_text(
                json.dumps(self.to_dict(), ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
            temp_path.replace(path)
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise
        return path
