"""Fetch site material from a document store."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .errors import stage
from .manifests import Manifest, build_manifest, save_manifest
from .stores import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FetchResult:
    manifest: Manifest
    manifest_path: Path
    archives: list[Path] = field(default_factory=list)


def fetch_material(
    store: DocumentStore,
    *,
    site_root: str,
    material_dir: Path,
    on_progress: Callable[[str], None] | None = None,
) -> FetchResult:
    """Resolve the site manifest and download every referenced archive.

    Writes ``manifest.json`` and ``zip/<id>.zip`` under ``material_dir``.
    """
    with stage("Listing documents"):
        records = store.list_documents()

    with stage(f"Building manifest for site root '{site_root}'"):
        manifest = build_manifest(records, site_root)

    with stage("Saving manifest"):
        manifest_path = save_manifest(manifest, material_dir)

    archives_dir = material_dir / "zip"
    result = FetchResult(manifest=manifest, manifest_path=manifest_path)
    with stage("Downloading archives"):
        archives_dir.mkdir(parents=True, exist_ok=True)
        for document in manifest.documents():
            destination = archives_dir / f"{document.id}.zip"
            with stage(f"Downloading '{document.name}' ({document.id})"):
                data = store.download_archive(document.id)
                temp_path = destination.with_suffix(".zip.tmp")
                temp_path.write_bytes(data)
                temp_path.replace(destination)
            logger.debug("Wrote %s (%d bytes)", destination, len(data))
            result.archives.append(destination)
            if on_progress is not None:
                on_progress(document.id)
    return result
