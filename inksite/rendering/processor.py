"""Render every manifest document into page images, in parallel."""

from __future__ import annotations

import logging
import os
import shutil
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable

from ..errors import CacheCorruptionError, RenderError
from ..manifests import DocumentMeta, Manifest
from ..state import BuildCache
from .archive import DocumentArchive
from .svg import PageRenderer, RenderMode

logger = logging.getLogger(__name__)

SVG_DIRNAME = "svg"


@dataclass(frozen=True, slots=True)
class PageArtifact:
    """Rendered page images of one document, ordered by page number."""

    document_id: str
    pages: tuple[Path, ...] = ()

    @property
    def first_page(self) -> Path | None:
        return self.pages[0] if self.pages else None


@dataclass(frozen=True, slots=True)
class RenderJob:
    document: DocumentMeta
    mode: RenderMode = RenderMode.CANVAS


@dataclass
class RenderResult:
    artifacts: dict[str, PageArtifact] = field(default_factory=dict)
    rendered: list[str] = field(default_factory=list)
    reused: list[str] = field(default_factory=list)
    pruned: int = 0

    @property
    def page_count(self) -> int:
        return sum(len(artifact.pages) for artifact in self.artifacts.values())


def plan_jobs(manifest: Manifest) -> list[RenderJob]:
    """One job per document; the logo is cropped to its content."""
    jobs = [
        RenderJob(manifest.home, RenderMode.CANVAS),
        RenderJob(manifest.logo, RenderMode.CROP),
    ]
    jobs.extend(RenderJob(document, RenderMode.CANVAS) for document in manifest.posts.walk())
    return jobs


class DocumentRenderer:
    """Render or reuse the pages of a single document.

    Every document owns ``svg/<id>/`` exclusively, so instances can be shared
    between worker threads.
    """

    def __init__(
        self,
        *,
        output_root: Path,
        archives_dir: Path,
        renderer: PageRenderer,
        cache: BuildCache,
    ) -> None:
        self._svg_root = output_root / SVG_DIRNAME
        self._archives_dir = archives_dir
        self._renderer = renderer
        self._cache = cache

    def document_dir(self, document_id: str) -> Path:
        return self._svg_root / document_id

    def render(self, job: RenderJob) -> tuple[PageArtifact, bool]:
        """Return the document's pages and whether they came from the cache."""
        document = job.document
        if self._cache.is_current(document):
            logger.debug("Reusing cached pages for %s (%s)", document.name, document.id)
            return self.reuse(document), True
        return self.render_archive(job), False

    def reuse(self, document: DocumentMeta) -> PageArtifact:
        directory = self.document_dir(document.id)
        if not directory.is_dir():
            raise CacheCorruptionError(
                f"Render cache lists '{document.name}' ({document.id}) but {directory} is missing"
            )
        try:
            entries = list(directory.iterdir())
        except OSError as exc:
            raise CacheCorruptionError(
                f"Cached pages of '{document.name}' ({document.id}) in {directory} are unreadable: {exc}"
            ) from exc

        numbered: list[tuple[int, Path]] = []
        for path in entries:
            # Pages are regular files named by their ASCII page number.
            if not (path.is_file() and path.stem.isascii() and path.stem.isdigit()):
                raise CacheCorruptionError(
                    f"Unexpected entry {path} among cached pages of '{document.name}' ({document.id})"
                )
            numbered.append((int(path.stem), path))
        numbered.sort(key=lambda item: item[0])
        return PageArtifact(document.id, tuple(path for _, path in numbered))

    def render_archive(self, job: RenderJob) -> PageArtifact:
        document = job.document
        directory = self.document_dir(document.id)
        if directory.exists():
            shutil.rmtree(directory)
        directory.mkdir(parents=True)

        archive_path = self._archives_dir / f"{document.id}.zip"
        logger.info("Rendering '%s' (%s)", document.name, document.id)
        written: list[Path] = []
        with DocumentArchive(document.id, archive_path) as archive:
            templates = archive.page_templates() or []
            for page in archive.pages():
                template = templates[page.number] if page.number < len(templates) else None
                svg = self._renderer.render(page.data, mode=job.mode, template=template or None)
                destination = directory / f"{page.number}.svg"
                destination.write_text(svg, encoding="utf-8")
                written.append(destination)
        logger.debug("Rendered %d page(s) for %s", len(written), document.id)
        return PageArtifact(document.id, tuple(written))


def render_all(
    manifest: Manifest,
    *,
    output_root: Path,
    archives_dir: Path,
    renderer: PageRenderer,
    cache: BuildCache,
    workers: int | None = None,
    on_progress: Callable[[str], None] | None = None,
) -> RenderResult:
    """Render every manifest document on a worker pool and wait for all of them.

    The first failure cancels the tasks that have not started yet and is
    raised once the running ones finish. ``on_progress`` receives the id of
    each finished document.
    """
    document_renderer = DocumentRenderer(
        output_root=output_root,
        archives_dir=archives_dir,
        renderer=renderer,
        cache=cache,
    )
    jobs = plan_jobs(manifest)
    result = RenderResult()
    max_workers = workers or os.cpu_count() or 1

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures: dict[Future, RenderJob] = {
            executor.submit(document_renderer.render, job): job for job in jobs
        }
        for future in as_completed(futures):
            job = futures[future]
            try:
                artifact, reused = future.result()
            except CacheCorruptionError:
                _cancel(futures)
                raise
            except Exception as exc:
                _cancel(futures)
                raise RenderError(
                    f"Rendering '{job.document.name}' ({job.document.id}) failed",
                    document_id=job.document.id,
                    name=job.document.name,
                ) from exc
            result.artifacts[artifact.document_id] = artifact
            (result.reused if reused else result.rendered).append(artifact.document_id)
            if on_progress is not None:
                on_progress(artifact.document_id)

    result.rendered.sort()
    result.reused.sort()
    result.pruned = prune_orphans(output_root / SVG_DIRNAME, result.artifacts.keys())
    return result


def prune_orphans(svg_root: Path, keep: Iterable[str]) -> int:
    """Remove page directories of documents that are no longer in the manifest."""
    if not svg_root.exists():
        return 0
    keep_ids = set(keep)
    removed = 0
    for entry in sorted(svg_root.iterdir()):
        if entry.is_dir() and entry.name not in keep_ids:
            shutil.rmtree(entry)
            removed += 1
            logger.info("Removed stale pages for %s", entry.name)
    return removed


def _cancel(futures: Iterable[Future]) -> None:
    for pending in futures:
        pending.cancel()
