from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest

from inksite.config import Config
from inksite.errors import StageError, error_chain
from inksite.generator import generate_site
from inksite.state import CACHE_FILENAME

from conftest import (
    BASE_TIME,
    HOME_ID,
    LOGO_ID,
    SOUP_ID,
    WELCOME_ID,
    FakeRenderer,
    meta,
    sample_manifest,
)

EXPECTED_PAGES = {
    "index.html",
    "posts/welcome.html",
    "posts/recipes.html",
    "posts/recipes/soup.html",
}


def _relative(paths, root: Path) -> set[str]:
    return {path.relative_to(root).as_posix() for path in paths}


def test_generate_writes_complete_site(site_config: Config, material) -> None:
    material()
    renderer = FakeRenderer()

    report = generate_site(site_config, renderer=renderer, nonce="build-1")

    root = site_config.output_dir
    assert _relative(report.assembly.pages, root) == EXPECTED_PAGES
    for document_id in (HOME_ID, LOGO_ID, WELCOME_ID, SOUP_ID):
        assert (root / "svg" / document_id / "0.svg").is_file()
    assert (root / "style.css").is_file()
    assert report.document_count == 4
    assert len(renderer.calls) == 4

    cache = json.loads((root / CACHE_FILENAME).read_text(encoding="utf-8"))
    assert set(cache["cache"]) == {HOME_ID, LOGO_ID, WELCOME_ID, SOUP_ID}
    assert report.cache_path == root / CACHE_FILENAME

    index_html = (root / "index.html").read_text(encoding="utf-8")
    assert f"/svg/{LOGO_ID}/0.svg?v=build-1" in index_html
    assert 'href="/posts/welcome.html"' in index_html


def test_second_run_reuses_every_document(site_config: Config, material) -> None:
    material()
    generate_site(site_config, renderer=FakeRenderer())

    renderer = FakeRenderer()
    report = generate_site(site_config, renderer=renderer)

    assert renderer.calls == []
    assert report.render.rendered == []
    assert len(report.render.reused) == 4
    assert _relative(report.assembly.pages, site_config.output_dir) == EXPECTED_PAGES


def test_no_cache_renders_everything_again(site_config: Config, material) -> None:
    material()
    generate_site(site_config, renderer=FakeRenderer())

    renderer = FakeRenderer()
    report = generate_site(site_config, renderer=renderer, no_cache=True)

    assert len(renderer.calls) == 4
    assert report.render.reused == []


def test_removed_document_is_dropped_from_cache_and_output(site_config: Config, material) -> None:
    material()
    generate_site(site_config, renderer=FakeRenderer())

    manifest = sample_manifest()
    del manifest.posts.folders["Recipes"]
    manifest.posts.documents["Welcome"] = meta(WELCOME_ID, "Welcome", BASE_TIME + timedelta(days=1))
    material(manifest)
    report = generate_site(site_config, renderer=FakeRenderer())

    root = site_config.output_dir
    cache = json.loads((root / CACHE_FILENAME).read_text(encoding="utf-8"))
    assert set(cache["cache"]) == {HOME_ID, LOGO_ID, WELCOME_ID}
    assert cache["cache"][WELCOME_ID] == (BASE_TIME + timedelta(days=1)).isoformat()
    assert report.render.rendered == [WELCOME_ID]
    assert report.render.pruned == 1
    assert not (root / "svg" / SOUP_ID).exists()


def test_missing_manifest_names_the_stage(site_config: Config) -> None:
    with pytest.raises(StageError) as excinfo:
        generate_site(site_config, renderer=FakeRenderer())

    chain = error_chain(excinfo.value)
    assert chain[0] == "Loading manifest"
    assert chain[1].startswith("Manifest not found")


def test_render_failure_leaves_cache_untouched(site_config: Config, material) -> None:
    material()
    renderer = FakeRenderer(fail_on=f"{SOUP_ID}:0".encode("utf-8"))

    with pytest.raises(StageError) as excinfo:
        generate_site(site_config, renderer=renderer)

    assert error_chain(excinfo.value)[0] == "Rendering documents"
    assert not (site_config.output_dir / CACHE_FILENAME).exists()


def test_unknown_theme_fails_before_rendering(site_config: Config, material) -> None:
    material()
    site_config.theme = "missing"
    renderer = FakeRenderer()

    with pytest.raises(StageError) as excinfo:
        generate_site(site_config, renderer=renderer)

    assert error_chain(excinfo.value)[0] == "Loading theme"
    assert renderer.calls == []
