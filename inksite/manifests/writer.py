"""Persistence helpers for the material manifest."""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import ValidationError

from ..errors import SourceIntegrityError
from .models import Manifest

MANIFEST_FILENAME = "manifest.json"


def save_manifest(manifest: Manifest, material_dir: Path) -> Path:
    """Serialize the manifest into ``material_dir`` via a temp file and rename."""
    material_dir.mkdir(parents=True, exist_ok=True)
    path = material_dir / MANIFEST_FILENAME
    temp_path = path.with_suffix(".json.tmp")
    try:
        with temp_path.open("w", encoding="utf-8") as handle:
            json.dump(manifest.model_dump(mode="json"), handle, ensure_ascii=False, indent=2)
        temp_path.replace(path)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise
    return path


def load_manifest(material_dir: Path) -> Manifest:
    """Read the manifest written by the fetch phase."""
    path = material_dir / MANIFEST_FILENAME
    if not path.exists():
        raise SourceIntegrityError(f"Manifest not found at {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise SourceIntegrityError(f"Manifest {path} is not valid JSON: {exc}") from exc
    try:
        return Manifest.model_validate(payload)
    except ValidationError as exc:
        raise SourceIntegrityError(f"Manifest {path} does not match the expected layout: {exc}") from exc
