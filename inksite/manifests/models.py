"""Pydantic models describing the resolved site manifest."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterator

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocumentMeta(BaseModel):
    """Snapshot of a document taken when the manifest is built."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(...)
    name: str = Field(...)
    modified_at: datetime = Field(description="Last modification time reported by the store.")

    @field_validator("modified_at")
    def _ensure_timezone(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class PostsNode(BaseModel):
    """A folder of posts: documents and sub-folders keyed by their names."""

    documents: dict[str, DocumentMeta] = Field(default_factory=dict)
    folders: dict[str, PostsNode] = Field(default_factory=dict)

    def sorted_documents(self) -> list[tuple[str, DocumentMeta]]:
        return sorted(self.documents.items())

    def sorted_folders(self) -> list[tuple[str, PostsNode]]:
        return sorted(self.folders.items())

    def walk(self) -> Iterator[DocumentMeta]:
        """Yield every document in this folder and below, depth-first."""
        for _, document in self.sorted_documents():
            yield document
        for _, folder in self.sorted_folders():
            yield from folder.walk()


class Manifest(BaseModel):
    """Hierarchy-shaped snapshot of a site's documents and folders."""

    home: DocumentMeta
    logo: DocumentMeta
    posts: PostsNode = Field(default_factory=PostsNode)

    def documents(self) -> Iterator[DocumentMeta]:
        """Yield home, logo and every posts document."""
        yield self.home
        yield self.logo
        yield from self.posts.walk()

    def document_ids(self) -> list[str]:
        return [document.id for document in self.documents()]
