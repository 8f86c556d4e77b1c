"""Manifest data structures and helpers."""

from .generator import ManifestBuilder, build_manifest
from .models import DocumentMeta, Manifest, PostsNode
from .writer import MANIFEST_FILENAME, load_manifest, save_manifest

__all__ = [
    "DocumentMeta",
    "MANIFEST_FILENAME",
    "Manifest",
    "ManifestBuilder",
    "PostsNode",
    "build_manifest",
    "load_manifest",
    "save_manifest",
]
