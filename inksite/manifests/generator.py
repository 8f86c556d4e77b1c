"""Resolve a flat document listing into a site manifest."""

from __future__ import annotations

import logging
import uuid
from typing import Iterable

from ..errors import ConfigurationError
from ..stores import DocumentCollection, DocumentRecord
from .models import DocumentMeta, Manifest, PostsNode

logger = logging.getLogger(__name__)

HOME_NAME = "Home"
LOGO_NAME = "Logo"
POSTS_NAME = "Posts"


class ManifestBuilder:
    """Build a :class:`Manifest` from the records of a document store."""

    def __init__(self, records: Iterable[DocumentRecord]) -> None:
        self._docs = DocumentCollection(records)

    def build(self, root_specifier: str) -> Manifest:
        site_root = self._resolve_root(root_specifier)
        root_children = self._docs.children(site_root.id)

        home = _single(root_children, HOME_NAME, document=True)
        logo = _single(root_children, LOGO_NAME, document=True)
        posts_folder = _single(root_children, POSTS_NAME, document=False)

        posts = self._mirror(posts_folder)
        logger.debug("Resolved posts tree under %s (%s)", site_root.name, site_root.id)
        return Manifest(home=_to_meta(home), logo=_to_meta(logo), posts=posts)

    def _resolve_root(self, root_specifier: str) -> DocumentRecord:
        document_id = _parse_id(root_specifier)
        if document_id is not None:
            record = self._docs.get(document_id)
            if record is None:
                raise ConfigurationError(f"No document with ID {document_id}")
            if not record.is_folder:
                raise ConfigurationError(f"Site root must be a folder, found type '{record.type}'")
            return record

        matches = [
            record
            for record in self._docs.children(None)
            if record.is_folder and record.name == root_specifier
        ]
        if len(matches) != 1:
            raise ConfigurationError(
                f"Expected exactly one root-level folder named '{root_specifier}', found {len(matches)}"
            )
        return matches[0]

    def _mirror(self, folder: DocumentRecord) -> PostsNode:
        node = PostsNode()
        for child in self._docs.children(folder.id):
            if child.is_document:
                target: dict = node.documents
                value: object = _to_meta(child)
            elif child.is_folder:
                target = node.folders
                value = self._mirror(child)
            else:
                logger.debug("Ignoring '%s' with unknown type '%s'", child.name, child.type)
                continue
            if child.name in target:
                kind = "documents" if child.is_document else "folders"
                raise ConfigurationError(
                    f"Multiple {kind} named '{child.name}' in folder '{folder.name}'"
                )
            target[child.name] = value
        return node


def build_manifest(records: Iterable[DocumentRecord], root_specifier: str) -> Manifest:
    """Resolve ``records`` into a manifest rooted at ``root_specifier``.

    The specifier is either a folder id or the name of a unique root-level folder.
    """
    return ManifestBuilder(records).build(root_specifier)


def _parse_id(value: str) -> str | None:
    try:
        return str(uuid.UUID(value.strip()))
    except ValueError:
        return None


def _single(children: list[DocumentRecord], name: str, *, document: bool) -> DocumentRecord:
    kind = "notebook" if document else "folder"
    matches = [
        child
        for child in children
        if child.name == name and (child.is_document if document else child.is_folder)
    ]
    if not matches:
        raise ConfigurationError(f"Missing '{name}' {kind} in site root")
    if len(matches) > 1:
        raise ConfigurationError(f"Multiple '{name}' {kind}s in site root ({len(matches)})")
    return matches[0]


def _to_meta(record: DocumentRecord) -> DocumentMeta:
    return DocumentMeta(id=record.id, name=record.name, modified_at=record.modified_at)
