from __future__ import annotations

import threading
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest

from inksite.config import Config
from inksite.manifests import DocumentMeta, Manifest, PostsNode, save_manifest
from inksite.rendering import RenderMode

HOME_ID = "11111111-1111-4111-8111-111111111111"
LOGO_ID = "22222222-2222-4222-8222-222222222222"
WELCOME_ID = "33333333-3333-4333-8333-333333333333"
SOUP_ID = "44444444-4444-4444-8444-444444444444"

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeRenderer:
    """Page renderer that echoes the page bytes into a tiny SVG."""

    def __init__(self, fail_on: bytes | None = None) -> None:
        self.calls: list[tuple[bytes, RenderMode, str | None]] = []
        self._lock = threading.Lock()
        self._fail_on = fail_on

    def render(self, page: bytes, *, mode: RenderMode, template: str | None = None) -> str:
        with self._lock:
            self.calls.append((page, mode, template))
        if self._fail_on is not None and page == self._fail_on:
            raise ValueError("unparsable page")
        return (
            '<svg xmlns="http://www.w3.org/2000/svg" '
            f'data-mode="{mode.value}" data-template="{template or ""}">'
            f"{page.decode('utf-8')}</svg>\n"
        )


def write_archive(
    archives_dir: Path,
    document_id: str,
    *,
    pages: int = 1,
    page_names: list[str] | None = None,
    pagedata: list[str] | None = None,
    extra: dict[str, bytes] | None = None,
) -> Path:
    """Write a notebook archive with ``pages`` numbered page entries."""
    archives_dir.mkdir(parents=True, exist_ok=True)
    path = archives_dir / f"{document_id}.zip"
    names = page_names if page_names is not None else [str(number) for number in range(pages)]
    with zipfile.ZipFile(path, "w") as archive:
        if pagedata is not None:
            archive.writestr(f"{document_id}.pagedata", "\n".join(pagedata))
        for name in names:
            archive.writestr(f"{document_id}/{name}.rm", f"{document_id}:{name}".encode("utf-8"))
        for name, data in (extra or {}).items():
            archive.writestr(name, data)
    return path


def meta(document_id: str, name: str, modified_at: datetime = BASE_TIME) -> DocumentMeta:
    return DocumentMeta(id=document_id, name=name, modified_at=modified_at)


def sample_manifest() -> Manifest:
    """Home, logo, a top-level 'Welcome' and 'Recipes/Soup'."""
    return Manifest(
        home=meta(HOME_ID, "Home"),
        logo=meta(LOGO_ID, "Logo"),
        posts=PostsNode(
            documents={"Welcome": meta(WELCOME_ID, "Welcome")},
            folders={"Recipes": PostsNode(documents={"Soup": meta(SOUP_ID, "Soup")})},
        ),
    )


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def site_config(tmp_path: Path) -> Config:
    return Config(
        title="Test Notebooks",
        material_dir=tmp_path / "material",
        output_dir=tmp_path / "site",
    )


@pytest.fixture
def material(site_config: Config) -> Callable[..., Manifest]:
    """Write a manifest and one archive per document into the material directory."""

    def _write(manifest: Manifest | None = None, pages: dict[str, int] | None = None) -> Manifest:
        manifest = manifest or sample_manifest()
        save_manifest(manifest, site_config.material_dir)
        for document in manifest.documents():
            count = (pages or {}).get(document.id, 1)
            write_archive(site_config.archives_dir, document.id, pages=count)
        return manifest

    return _write
