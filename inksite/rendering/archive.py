"""Random-access reader for downloaded notebook archives."""

from __future__ import annotations

import json
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from ..errors import SourceIntegrityError

logger = logging.getLogger(__name__)

PAGE_SUFFIX = ".rm"
PAGEDATA_SUFFIX = ".pagedata"
CONTENT_SUFFIX = ".content"


@dataclass(frozen=True, slots=True)
class ArchivePage:
    """A single page entry of a notebook archive."""

    number: int
    entry: str
    data: bytes


class DocumentArchive:
    """Named byte entries of one document's zip archive.

    Page entries are named ``<id>/<page>.rm`` where ``<page>`` is either the
    page number or a page id listed in the archive's ``<id>.content`` file.
    """

    def __init__(self, document_id: str, path: Path) -> None:
        self.document_id = document_id
        self.path = path
        if not path.exists():
            raise SourceIntegrityError(f"Missing archive for document {document_id}: {path}")
        try:
            self._zip = zipfile.ZipFile(path)
        except zipfile.BadZipFile as exc:
            raise SourceIntegrityError(f"Archive {path} is not a valid zip file") from exc

    def __enter__(self) -> "DocumentArchive":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    def names(self) -> list[str]:
        return self._zip.namelist()

    def read(self, name: str) -> bytes:
        try:
            return self._zip.read(name)
        except KeyError:
            raise SourceIntegrityError(f"Archive {self.path} has no entry '{name}'") from None

    def page_templates(self) -> list[str] | None:
        """Return the template name for each page position, if the archive lists them."""
        for name in self.names():
            if name.endswith(PAGEDATA_SUFFIX):
                text = self.read(name).decode("utf-8", errors="replace")
                return [line.strip() for line in text.splitlines()]

        content = self._content()
        pages = (content.get("cPages") or {}).get("pages") if content else None
        if isinstance(pages, list):
            templates: list[str] = []
            for page in _live_pages(pages):
                template = page.get("template") or {}
                templates.append(str(template.get("value") or "") if isinstance(template, dict) else "")
            return templates
        return None

    def pages(self) -> Iterator[ArchivePage]:
        """Yield every page entry in numeric page order."""
        prefix = f"{self.document_id}/"
        order = self._page_order()
        numbered: list[tuple[int, str]] = []
        for name in self.names():
            if not (name.startswith(prefix) and name.endswith(PAGE_SUFFIX)):
                continue
            stem = name[len(prefix) : -len(PAGE_SUFFIX)]
            numbered.append((self._page_number(stem, order, name), name))

        numbered.sort(key=lambda item: item[0])
        for number, name in numbered:
            yield ArchivePage(number=number, entry=name, data=self.read(name))

    def _page_number(self, stem: str, order: dict[str, int], entry: str) -> int:
        if stem.isdigit():
            return int(stem)
        if stem in order:
            return order[stem]
        raise SourceIntegrityError(f"Cannot determine the page number of '{entry}' in {self.path}")

    def _page_order(self) -> dict[str, int]:
        content = self._content()
        if not content:
            return {}
        page_ids: list[str] = []
        if isinstance(content.get("pages"), list):
            page_ids = [str(page) for page in content["pages"]]
        else:
            pages = (content.get("cPages") or {}).get("pages")
            if isinstance(pages, list):
                page_ids = [str(page.get("id")) for page in _live_pages(pages)]
        return {page_id: index for index, page_id in enumerate(page_ids)}

    def _content(self) -> dict | None:
        name = f"{self.document_id}{CONTENT_SUFFIX}"
        if name not in self.names():
            return None
        try:
            data = json.loads(self.read(name).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise SourceIntegrityError(f"Unreadable content entry '{name}' in {self.path}: {exc}") from exc
        return data if isinstance(data, dict) else None


def _live_pages(pages: list) -> list[dict]:
    return [page for page in pages if isinstance(page, dict) and not page.get("deleted")]
