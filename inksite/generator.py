"""Generate a site from fetched material."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from .config import Config
from .errors import OutputError, stage
from .manifests import Manifest, load_manifest
from .rendering import PageRenderer, RenderResult, RenderSettings, RmSceneRenderer, render_all
from .site import AssemblyResult, SiteAssembler
from .state import BuildCache
from .themes import SiteTheme, load_theme

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GenerationReport:
    """Summary of one generate run."""

    manifest: Manifest
    render: RenderResult
    assembly: AssemblyResult
    cache_path: Path
    duration_seconds: float

    @property
    def document_count(self) -> int:
        return len(self.render.artifacts)


def build_nonce() -> str:
    return datetime.now(tz=timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")


def default_renderer(config: Config) -> RmSceneRenderer:
    settings = RenderSettings(
        scale=config.render.scale,
        canvas_width=config.render.canvas_width,
        canvas_height=config.render.canvas_height,
        crop_padding=config.render.crop_padding,
    )
    return RmSceneRenderer(settings, templates_dir=config.render.templates_dir)


def generate_site(
    config: Config,
    *,
    no_cache: bool = False,
    renderer: PageRenderer | None = None,
    theme: SiteTheme | None = None,
    nonce: str | None = None,
    on_progress: Callable[[str], None] | None = None,
) -> GenerationReport:
    """Render every document and write the HTML site into ``config.output_dir``.

    Documents whose cached timestamp matches the manifest are reused from the
    previous output. The render cache is rewritten only after the whole site
    has been written.
    """
    start = time.perf_counter()
    output_root = config.output_dir
    try:
        output_root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputError(f"Creating the generated site directory {output_root} failed: {exc}") from exc

    with stage("Loading manifest"):
        manifest = load_manifest(config.material_dir)
    logger.debug("Loaded manifest with %d document(s)", len(manifest.document_ids()))

    with stage("Loading render cache"):
        cache = BuildCache.empty() if no_cache else BuildCache.load(output_root)

    with stage("Loading theme"):
        site_theme = theme if theme is not None else load_theme(config.themes_root, config.theme)

    with stage("Rendering documents"):
        render_result = render_all(
            manifest,
            output_root=output_root,
            archives_dir=config.archives_dir,
            renderer=renderer if renderer is not None else default_renderer(config),
            cache=cache,
            workers=config.render.workers,
            on_progress=on_progress,
        )

    # Every render task has finished; only this thread touches the cache now.
    cache = cache.record(manifest.documents())

    with stage("Generating site pages"):
        assembly = SiteAssembler(
            manifest=manifest,
            artifacts=render_result.artifacts,
            theme=site_theme,
            output_root=output_root,
            title=config.title,
            build_nonce=nonce or build_nonce(),
            url_prefix=config.url_prefix,
        ).assemble()

    with stage("Saving render cache"):
        cache_path = cache.save(output_root)

    return GenerationReport(
        manifest=manifest,
        render=render_result,
        assembly=assembly,
        cache_path=cache_path,
        duration_seconds=time.perf_counter() - start,
    )
