"""Assemble the HTML site from the manifest and rendered page images.

The assembler walks the posts tree depth-first. Context flows down (site
title, logo, breadcrumb trail) and listings flow up (each folder page lists
its direct documents and sub-folders). A folder named ``Foo`` produces both a
``foo/`` directory holding its children and a sibling ``foo.html`` page.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

from .errors import OutputError, SourceIntegrityError
from .manifests import DocumentMeta, Manifest, PostsNode
from .rendering import PageArtifact
from .themes import SiteTheme

logger = logging.getLogger(__name__)

HOME_LABEL = "Home"
POSTS_DIRNAME = "posts"
PLACEHOLDER = "-"


def sanitize(name: str) -> str:
    """Lowercase ``name``, then replace anything but ASCII letters and digits.

    Lowercasing comes first, so characters whose lowercase form is longer
    (``"İ"`` becomes ``"i"`` plus a combining dot) keep their ASCII part.
    """
    return "".join(char if char.isascii() and char.isalnum() else PLACEHOLDER for char in name.lower())


@dataclass(frozen=True, slots=True)
class Breadcrumb:
    name: str
    link: str

    def to_template_dict(self) -> dict[str, str]:
        return {"name": self.name, "link": self.link}


@dataclass(frozen=True, slots=True)
class SiteContext:
    """Values shared by every page of one build."""

    title: str
    logo: str
    prefix: str
    build_nonce: str

    def params(self, name: str, breadcrumbs: Sequence[Breadcrumb] = ()) -> dict[str, Any]:
        params: dict[str, Any] = {
            "build_nonce": self.build_nonce,
            "prefix": self.prefix,
            "title": self.title,
            "logo": self.logo,
            "name": name,
        }
        if breadcrumbs:
            params["breadcrumbs"] = [crumb.to_template_dict() for crumb in breadcrumbs]
            params["back_link"] = breadcrumbs[-1].link
        return params


@dataclass
class Listing:
    """Direct children of a folder as shown on its page."""

    documents: list[dict[str, Any]] = field(default_factory=list)
    folders: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class AssemblyResult:
    pages: list[Path] = field(default_factory=list)
    stylesheet: Path | None = None


class SiteAssembler:
    """Write one HTML page per document, per folder and for the home index."""

    def __init__(
        self,
        *,
        manifest: Manifest,
        artifacts: Mapping[str, PageArtifact],
        theme: SiteTheme,
        output_root: Path,
        title: str,
        build_nonce: str,
        url_prefix: str = "/",
    ) -> None:
        self._manifest = manifest
        self._artifacts = artifacts
        self._theme = theme
        self._root = output_root
        self._prefix = url_prefix if url_prefix.endswith("/") else f"{url_prefix}/"
        self._title = title
        self._build_nonce = build_nonce

    def link_for(self, path: Path) -> str:
        """Convert a path under the output root into a root-relative link."""
        try:
            relative = path.relative_to(self._root)
        except ValueError:
            raise OutputError(f"Path {path} is outside the site root {self._root}") from None
        return f"{self._prefix}{relative.as_posix()}"

    def page_links(self, document_id: str) -> list[str]:
        return [self.link_for(page) for page in self._artifact(document_id).pages]

    def first_page_link(self, document_id: str) -> str | None:
        first = self._artifact(document_id).first_page
        return self.link_for(first) if first is not None else None

    def home_crumb(self) -> Breadcrumb:
        return Breadcrumb(HOME_LABEL, self.link_for(self._root / "index.html"))

    def assemble(self) -> AssemblyResult:
        result = AssemblyResult()
        context = self._context()
        posts_dir = self._root / POSTS_DIRNAME
        _mkdir(posts_dir)

        breadcrumbs = [self.home_crumb()]
        listing = self._write_children(context, breadcrumbs, posts_dir, self._manifest.posts, result)

        home_pages = self.page_links(self._manifest.home.id)
        params = context.params(HOME_LABEL)
        params.update(
            pages=home_pages,
            render_nav_thumbnails=len(home_pages) > 1,
            documents=listing.documents,
            folders=listing.folders,
        )
        result.pages.append(self._theme.render_index(params, self._root))
        result.stylesheet = self._theme.copy_stylesheet(self._root)
        logger.info("Wrote %d page(s) under %s", len(result.pages), self._root)
        return result

    def _context(self) -> SiteContext:
        logo = self._manifest.logo
        logo_link = self.first_page_link(logo.id)
        if logo_link is None:
            raise SourceIntegrityError(f"Logo notebook '{logo.name}' ({logo.id}) has no pages")
        return SiteContext(
            title=self._title,
            logo=logo_link,
            prefix=self._prefix,
            build_nonce=self._build_nonce,
        )

    def _write_children(
        self,
        context: SiteContext,
        breadcrumbs: list[Breadcrumb],
        directory: Path,
        node: PostsNode,
        result: AssemblyResult,
    ) -> Listing:
        listing = Listing()
        for name, document in node.sorted_documents():
            link = self._write_document(context, breadcrumbs, directory, name, document, result)
            listing.documents.append(
                {"name": name, "svg": self.first_page_link(document.id), "link": link}
            )
        for name, folder in node.sorted_folders():
            link = self._write_folder(context, breadcrumbs, directory, name, folder, result)
            listing.folders.append({"name": name, "link": link})
        return listing

    def _write_document(
        self,
        context: SiteContext,
        breadcrumbs: list[Breadcrumb],
        directory: Path,
        name: str,
        document: DocumentMeta,
        result: AssemblyResult,
    ) -> str:
        path = directory / f"{sanitize(name)}.html"
        pages = self.page_links(document.id)
        params = context.params(name, breadcrumbs)
        params.update(pages=pages, render_nav_thumbnails=len(pages) > 1)
        result.pages.append(self._theme.render_document(params, path))
        return self.link_for(path)

    def _write_folder(
        self,
        context: SiteContext,
        breadcrumbs: list[Breadcrumb],
        directory: Path,
        name: str,
        node: PostsNode,
        result: AssemblyResult,
    ) -> str:
        segment = sanitize(name)
        children_dir = directory / segment
        page_path = directory / f"{segment}.html"
        _mkdir(children_dir)
        link = self.link_for(page_path)

        child_breadcrumbs = [*breadcrumbs, Breadcrumb(name, link)]
        listing = self._write_children(context, child_breadcrumbs, children_dir, node, result)

        params = context.params(name, breadcrumbs)
        params.update(documents=listing.documents, folders=listing.folders)
        result.pages.append(self._theme.render_folder(params, page_path))
        return link

    def _artifact(self, document_id: str) -> PageArtifact:
        artifact = self._artifacts.get(document_id)
        if artifact is None:
            raise SourceIntegrityError(f"No rendered pages for document {document_id}")
        return artifact


def _mkdir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise OutputError(f"Creating directory {path} failed: {exc}") from exc
