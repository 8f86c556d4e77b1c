"""Error taxonomy shared by the fetch and generate phases.

Every failure is fatal. Lower layers raise one of the categories below and the
orchestrators wrap them with :func:`stage` so the CLI can print a chain that
reads from the outermost step down to the root cause.
"""

from __future__ import annotations

import contextlib
from typing import Iterator


class InksiteError(RuntimeError):
    """Base class for all errors raised by inksite."""


class ConfigurationError(InksiteError):
    """Raised when the site layout on the document store is ambiguous or incomplete."""


class SourceIntegrityError(InksiteError):
    """Raised when fetched material references something that does not exist."""


class CacheCorruptionError(InksiteError):
    """Raised when the render cache claims a hit that the output tree cannot back."""


class OutputError(InksiteError):
    """Raised when writing the generated site fails."""


class RenderError(InksiteError):
    """Raised when a single document fails to render."""

    def __init__(self, message: str, *, document_id: str, name: str | None = None) -> None:
        super().__init__(message)
        self.document_id = document_id
        self.name = name


class StageError(InksiteError):
    """Wraps a failure with a description of the step that was running."""


@contextlib.contextmanager
def stage(description: str) -> Iterator[None]:
    """Annotate failures raised inside the block with ``description``."""
    try:
        yield
    except (InksiteError, OSError) as exc:
        raise StageError(description) from exc


def error_chain(exc: BaseException) -> list[str]:
    """Return the messages of ``exc`` and every exception it was raised from."""
    messages: list[str] = []
    current: BaseException | None = exc
    while current is not None:
        text = str(current) or type(current).__name__
        messages.append(text)
        current = current.__cause__
    return messages
