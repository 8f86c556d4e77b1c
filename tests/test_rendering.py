from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest

from inksite.errors import CacheCorruptionError, RenderError, SourceIntegrityError
from inksite.rendering import (
    DocumentArchive,
    RenderMode,
    plan_jobs,
    prune_orphans,
    render_all,
)
from inksite.state import BuildCache

from conftest import (
    BASE_TIME,
    HOME_ID,
    LOGO_ID,
    SOUP_ID,
    WELCOME_ID,
    FakeRenderer,
    meta,
    sample_manifest,
    write_archive,
)


def _render(output_root: Path, archives_dir: Path, renderer: FakeRenderer, cache: BuildCache | None = None, manifest=None):
    return render_all(
        manifest or sample_manifest(),
        output_root=output_root,
        archives_dir=archives_dir,
        renderer=renderer,
        cache=cache or BuildCache.empty(),
        workers=2,
    )


def _write_all(archives_dir: Path, pages: dict[str, int] | None = None) -> None:
    for document_id in (HOME_ID, LOGO_ID, WELCOME_ID, SOUP_ID):
        write_archive(archives_dir, document_id, pages=(pages or {}).get(document_id, 1))


def test_archive_pages_are_ordered_numerically(tmp_path: Path) -> None:
    path = write_archive(tmp_path, HOME_ID, page_names=["10", "2", "0", "1"])

    with DocumentArchive(HOME_ID, path) as archive:
        numbers = [page.number for page in archive.pages()]

    assert numbers == [0, 1, 2, 10]


def test_archive_orders_named_pages_by_content_listing(tmp_path: Path) -> None:
    content = json.dumps({"pages": ["page-b", "page-a"]}).encode("utf-8")
    path = write_archive(
        tmp_path,
        HOME_ID,
        page_names=["page-a", "page-b"],
        extra={f"{HOME_ID}.content": content},
    )

    with DocumentArchive(HOME_ID, path) as archive:
        entries = [(page.number, page.entry) for page in archive.pages()]

    assert entries == [(0, f"{HOME_ID}/page-b.rm"), (1, f"{HOME_ID}/page-a.rm")]


def test_archive_reads_templates_from_pagedata(tmp_path: Path) -> None:
    path = write_archive(tmp_path, HOME_ID, pages=2, pagedata=["P Lines small", "Blank"])

    with DocumentArchive(HOME_ID, path) as archive:
        assert archive.page_templates() == ["P Lines small", "Blank"]


def test_archive_rejects_unnumbered_pages(tmp_path: Path) -> None:
    path = write_archive(tmp_path, HOME_ID, page_names=["cover"])

    with DocumentArchive(HOME_ID, path) as archive:
        with pytest.raises(SourceIntegrityError, match="page number"):
            list(archive.pages())


def test_missing_archive_is_source_integrity_error(tmp_path: Path) -> None:
    with pytest.raises(SourceIntegrityError, match="Missing archive"):
        DocumentArchive(HOME_ID, tmp_path / f"{HOME_ID}.zip")


def test_invalid_archive_is_source_integrity_error(tmp_path: Path) -> None:
    path = tmp_path / f"{HOME_ID}.zip"
    path.write_bytes(b"not a zip")

    with pytest.raises(SourceIntegrityError, match="not a valid zip"):
        DocumentArchive(HOME_ID, path)


def test_plan_jobs_crops_only_the_logo() -> None:
    jobs = plan_jobs(sample_manifest())

    modes = {job.document.id: job.mode for job in jobs}
    assert modes == {
        HOME_ID: RenderMode.CANVAS,
        LOGO_ID: RenderMode.CROP,
        WELCOME_ID: RenderMode.CANVAS,
        SOUP_ID: RenderMode.CANVAS,
    }


def test_render_all_writes_numbered_pages(tmp_path: Path, fake_renderer: FakeRenderer) -> None:
    archives = tmp_path / "zip"
    _write_all(archives, pages={HOME_ID: 3})

    result = _render(tmp_path / "site", archives, fake_renderer)

    home_pages = result.artifacts[HOME_ID].pages
    assert [page.name for page in home_pages] == ["0.svg", "1.svg", "2.svg"]
    assert home_pages[1].read_text(encoding="utf-8").endswith(f"{HOME_ID}:1</svg>\n")
    assert result.rendered == sorted([HOME_ID, LOGO_ID, WELCOME_ID, SOUP_ID])
    assert result.reused == []
    assert result.page_count == 6


def test_render_all_passes_templates_and_logo_mode(tmp_path: Path, fake_renderer: FakeRenderer) -> None:
    archives = tmp_path / "zip"
    _write_all(archives)
    write_archive(archives, WELCOME_ID, pages=2, pagedata=["Grid", ""])

    _render(tmp_path / "site", archives, fake_renderer)

    calls = {page.decode("utf-8"): (mode, template) for page, mode, template in fake_renderer.calls}
    assert calls[f"{LOGO_ID}:0"] == (RenderMode.CROP, None)
    assert calls[f"{WELCOME_ID}:0"] == (RenderMode.CANVAS, "Grid")
    assert calls[f"{WELCOME_ID}:1"] == (RenderMode.CANVAS, None)


def test_cached_documents_are_reused(tmp_path: Path) -> None:
    archives = tmp_path / "zip"
    output = tmp_path / "site"
    _write_all(archives)
    _render(output, archives, FakeRenderer())
    cache = BuildCache.empty().record(sample_manifest().documents())

    second = FakeRenderer()
    result = _render(output, archives, second, cache)

    assert second.calls == []
    assert result.rendered == []
    assert len(result.reused) == 4
    assert result.artifacts[HOME_ID].pages == (output / "svg" / HOME_ID / "0.svg",)


def test_changed_document_is_rendered_again(tmp_path: Path) -> None:
    archives = tmp_path / "zip"
    output = tmp_path / "site"
    _write_all(archives)
    _render(output, archives, FakeRenderer())
    cache = BuildCache.empty().record(sample_manifest().documents())

    manifest = sample_manifest()
    manifest.posts.documents["Welcome"] = meta(WELCOME_ID, "Welcome", BASE_TIME + timedelta(minutes=5))
    second = FakeRenderer()
    result = _render(output, archives, second, cache, manifest)

    assert result.rendered == [WELCOME_ID]
    assert [page for page, _, _ in second.calls] == [f"{WELCOME_ID}:0".encode("utf-8")]


def test_rerender_replaces_stale_pages(tmp_path: Path) -> None:
    archives = tmp_path / "zip"
    output = tmp_path / "site"
    _write_all(archives, pages={HOME_ID: 3})
    _render(output, archives, FakeRenderer())

    write_archive(archives, HOME_ID, pages=1)
    result = _render(output, archives, FakeRenderer())

    assert sorted(path.name for path in (output / "svg" / HOME_ID).iterdir()) == ["0.svg"]
    assert len(result.artifacts[HOME_ID].pages) == 1


def test_cache_hit_without_pages_is_corruption(tmp_path: Path) -> None:
    archives = tmp_path / "zip"
    _write_all(archives)
    cache = BuildCache.empty().record(sample_manifest().documents())

    with pytest.raises(CacheCorruptionError, match="is missing"):
        _render(tmp_path / "site", archives, FakeRenderer(), cache)


def test_cache_hit_with_unexpected_file_is_corruption(tmp_path: Path) -> None:
    archives = tmp_path / "zip"
    output = tmp_path / "site"
    _write_all(archives)
    _render(output, archives, FakeRenderer())
    (output / "svg" / HOME_ID / "notes.txt").write_text("stray", encoding="utf-8")
    cache = BuildCache.empty().record(sample_manifest().documents())

    with pytest.raises(CacheCorruptionError, match="Unexpected entry"):
        _render(output, archives, FakeRenderer(), cache)


def test_reused_pages_keep_numeric_order_and_bytes(tmp_path: Path) -> None:
    archives = tmp_path / "zip"
    output = tmp_path / "site"
    _write_all(archives, pages={HOME_ID: 11})
    first = _render(output, archives, FakeRenderer())
    before = {path.name: path.read_bytes() for path in first.artifacts[HOME_ID].pages}
    cache = BuildCache.empty().record(sample_manifest().documents())

    result = _render(output, archives, FakeRenderer(), cache)

    pages = result.artifacts[HOME_ID].pages
    assert [page.name for page in pages] == [f"{number}.svg" for number in range(11)]
    assert {path.name: path.read_bytes() for path in pages} == before


@pytest.mark.parametrize("make_entry", ["digit-directory", "non-ascii-digit"])
def test_cache_hit_with_non_page_entry_is_corruption(tmp_path: Path, make_entry: str) -> None:
    archives = tmp_path / "zip"
    output = tmp_path / "site"
    _write_all(archives)
    _render(output, archives, FakeRenderer())
    home_dir = output / "svg" / HOME_ID
    if make_entry == "digit-directory":
        (home_dir / "5").mkdir()
    else:
        (home_dir / "².svg").write_text("<svg/>", encoding="utf-8")
    cache = BuildCache.empty().record(sample_manifest().documents())

    with pytest.raises(CacheCorruptionError, match="Unexpected entry"):
        _render(output, archives, FakeRenderer(), cache)


def test_unreadable_cached_pages_are_corruption(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    archives = tmp_path / "zip"
    output = tmp_path / "site"
    _write_all(archives)
    _render(output, archives, FakeRenderer())
    cache = BuildCache.empty().record(sample_manifest().documents())
    original_iterdir = Path.iterdir

    def _iterdir(self: Path):
        if self.name == HOME_ID:
            raise PermissionError(13, "Permission denied", str(self))
        return original_iterdir(self)

    monkeypatch.setattr(Path, "iterdir", _iterdir)

    with pytest.raises(CacheCorruptionError, match="unreadable") as excinfo:
        _render(output, archives, FakeRenderer(), cache)

    assert isinstance(excinfo.value.__cause__, PermissionError)


def test_failed_document_raises_render_error(tmp_path: Path) -> None:
    archives = tmp_path / "zip"
    _write_all(archives)
    renderer = FakeRenderer(fail_on=f"{SOUP_ID}:0".encode("utf-8"))

    with pytest.raises(RenderError) as excinfo:
        _render(tmp_path / "site", archives, renderer)

    assert excinfo.value.document_id == SOUP_ID
    assert excinfo.value.name == "Soup"
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_missing_archive_fails_the_render(tmp_path: Path) -> None:
    archives = tmp_path / "zip"
    _write_all(archives)
    (archives / f"{WELCOME_ID}.zip").unlink()

    with pytest.raises(RenderError) as excinfo:
        _render(tmp_path / "site", archives, FakeRenderer())

    assert excinfo.value.document_id == WELCOME_ID
    assert isinstance(excinfo.value.__cause__, SourceIntegrityError)


def test_orphan_page_directories_are_pruned(tmp_path: Path, fake_renderer: FakeRenderer) -> None:
    archives = tmp_path / "zip"
    output = tmp_path / "site"
    _write_all(archives)
    stale = output / "svg" / "removed-document"
    stale.mkdir(parents=True)
    (stale / "0.svg").write_text("<svg/>", encoding="utf-8")

    result = _render(output, archives, fake_renderer)

    assert result.pruned == 1
    assert not stale.exists()
    assert (output / "svg" / HOME_ID).is_dir()


def test_prune_orphans_without_svg_root(tmp_path: Path) -> None:
    assert prune_orphans(tmp_path / "svg", [HOME_ID]) == 0
