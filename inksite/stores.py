"""Document records and the stores they are fetched from."""

from __future__ import annotations

import io
import json
import logging
import uuid
import zipfile
from collections import defaultdict
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import SourceIntegrityError

logger = logging.getLogger(__name__)

# Fixed timestamp for archive entries so identical inputs zip to identical bytes.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


class DocumentType(str, Enum):
    """Type tag attached to every store entry."""

    DOCUMENT = "DocumentType"
    FOLDER = "CollectionType"


class DocumentRecord(BaseModel):
    """One entry of the flat listing returned by a document store."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(...)
    name: str = Field(...)
    parent: Optional[str] = Field(default=None, description="Parent folder id; empty for root entries.")
    type: str = Field(...)
    modified_at: datetime = Field(...)

    @field_validator("parent")
    def _normalize_parent(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value

    @field_validator("modified_at")
    def _ensure_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_document(self) -> bool:
        return self.type == DocumentType.DOCUMENT.value

    @property
    def is_folder(self) -> bool:
        return self.type == DocumentType.FOLDER.value


class DocumentCollection:
    """Index over a flat list of records supporting id lookup and child listing."""

    def __init__(self, records: Iterable[DocumentRecord]) -> None:
        self._by_id: dict[str, DocumentRecord] = {}
        self._children: dict[str | None, list[DocumentRecord]] = defaultdict(list)
        for record in records:
            self._by_id[normalize_id(record.id)] = record
            parent = normalize_id(record.parent) if record.parent is not None else None
            self._children[parent].append(record)

    def __len__(self) -> int:
        return len(self._by_id)

    def get(self, document_id: str) -> DocumentRecord | None:
        return self._by_id.get(normalize_id(document_id))

    def children(self, parent: str | None) -> list[DocumentRecord]:
        """Return direct children of ``parent`` (``None`` for the store root)."""
        key = normalize_id(parent) if parent is not None else None
        return list(self._children.get(key, []))


class DocumentStore(Protocol):
    """Source of documents for the fetch phase."""

    def list_documents(self) -> list[DocumentRecord]:
        ...

    def download_archive(self, document_id: str) -> bytes:
        ...


class LocalDocumentStore:
    """Read documents from a device export directory.

    The directory holds one ``<id>.metadata`` JSON file per entry plus, for
    documents, ``<id>.content``/``<id>.pagedata`` files and an ``<id>/``
    directory with the page files.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def list_documents(self) -> list[DocumentRecord]:
        if not self._root.is_dir():
            raise SourceIntegrityError(f"Document export directory not found: {self._root}")

        records: list[DocumentRecord] = []
        for metadata_path in sorted(self._root.glob("*.metadata")):
            try:
                payload = json.loads(metadata_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                raise SourceIntegrityError(f"Unreadable metadata file {metadata_path}: {exc}") from exc
            if payload.get("deleted"):
                logger.debug("Skipping deleted entry %s", metadata_path.stem)
                continue
            records.append(_record_from_metadata(metadata_path.stem, payload))
        logger.info("Listed %d entries from %s", len(records), self._root)
        return records

    def download_archive(self, document_id: str) -> bytes:
        files = self._archive_members(document_id)
        if not files:
            raise SourceIntegrityError(f"No files found for document {document_id} in {self._root}")

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for name, path in files:
                info = zipfile.ZipInfo(name, date_time=_ZIP_EPOCH)
                info.compress_type = zipfile.ZIP_DEFLATED
                archive.writestr(info, path.read_bytes())
        return buffer.getvalue()

    def _archive_members(self, document_id: str) -> list[tuple[str, Path]]:
        members: list[tuple[str, Path]] = []
        for path in sorted(self._root.glob(f"{document_id}.*")):
            if path.is_file():
                members.append((path.name, path))
        page_dir = self._root / document_id
        if page_dir.is_dir():
            for path in sorted(page_dir.rglob("*")):
                if path.is_file():
                    members.append((path.relative_to(self._root).as_posix(), path))
        return members


def _record_from_metadata(document_id: str, payload: dict) -> DocumentRecord:
    try:
        modified_ms = int(payload.get("lastModified") or 0)
    except (TypeError, ValueError):
        raise SourceIntegrityError(
            f"Entry {document_id} has an invalid lastModified value: {payload.get('lastModified')!r}"
        ) from None
    return DocumentRecord(
        id=document_id,
        name=str(payload.get("visibleName") or ""),
        parent=payload.get("parent") or None,
        type=str(payload.get("type") or ""),
        modified_at=datetime.fromtimestamp(modified_ms / 1000, tz=timezone.utc),
    )


def normalize_id(value: str) -> str:
    """Return the canonical form of a UUID id; other ids are returned unchanged."""
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        return value
