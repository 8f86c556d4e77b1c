"""Notebook page rendering."""

from .archive import ArchivePage, DocumentArchive
from .processor import (
    DocumentRenderer,
    PageArtifact,
    RenderJob,
    RenderResult,
    plan_jobs,
    prune_orphans,
    render_all,
)
from .svg import PageRenderer, RenderMode, RenderSettings, RmSceneRenderer, Stroke, strokes_to_svg

__all__ = [
    "ArchivePage",
    "DocumentArchive",
    "DocumentRenderer",
    "PageArtifact",
    "PageRenderer",
    "RenderJob",
    "RenderMode",
    "RenderResult",
    "RenderSettings",
    "RmSceneRenderer",
    "Stroke",
    "plan_jobs",
    "prune_orphans",
    "render_all",
    "strokes_to_svg",
]
