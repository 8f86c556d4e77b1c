"""Check that a generated site only links to pages and images it contains."""

from __future__ import annotations

from dataclasses import dataclass, field
from html.parser import HTMLParser
from pathlib import Path
from typing import List, Tuple
from urllib.parse import unquote, urlsplit

EXTERNAL_SCHEMES = {"http", "https", "mailto", "tel", "data", "javascript", "ftp"}


@dataclass(slots=True)
class VerificationIssue:
    """Represents a problem discovered during site verification."""

    kind: str
    source: Path
    target: str
    message: str


@dataclass(slots=True)
class VerificationReport:
    """Aggregate verification results."""

    scanned_files: int
    issues: list[VerificationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues


class _ReferenceCollector(HTMLParser):
    """Collect href/src references from HTML content."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.references: list[tuple[str, str, str]] = []

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, str | None]]) -> None:
        for name, value in attrs:
            if name in {"href", "src"} and value:
                self.references.append((tag, name, value))


def verify_site(output_dir: Path, url_prefix: str = "/") -> VerificationReport:
    """Verify that every internal reference is prefixed and resolves to a file."""
    output_dir = output_dir.resolve()
    prefix = url_prefix if url_prefix.endswith("/") else f"{url_prefix}/"
    html_files = sorted(output_dir.rglob("*.html"))
    issues: list[VerificationIssue] = []

    for html_file in html_files:
        parser = _ReferenceCollector()
        parser.feed(html_file.read_text(encoding="utf-8"))

        for tag, attr, reference in parser.references:
            if _is_ignorable(reference, prefix):
                continue
            if not reference.startswith(prefix):
                issues.append(
                    VerificationIssue(
                        kind="not-root-relative",
                        source=html_file,
                        target=reference,
                        message=f"{tag} {attr} does not start with the site prefix '{prefix}'",
                    )
                )
                continue

            path = unquote(urlsplit(reference[len(prefix) :]).path)
            if not path or path.endswith("/"):
                path = f"{path}index.html"
            candidate = (output_dir / path).resolve()
            try:
                candidate.relative_to(output_dir)
            except ValueError:
                issues.append(
                    VerificationIssue(
                        kind="out-of-bounds",
                        source=html_file,
                        target=reference,
                        message=f"Reference points outside the site bundle: '{reference}'",
                    )
                )
                continue

            if not candidate.is_file():
                issues.append(
                    VerificationIssue(
                        kind="missing-page" if tag == "a" else "missing-asset",
                        source=html_file,
                        target=reference,
                        message=f"Missing target for {tag} {attr} '{reference}'",
                    )
                )

    return VerificationReport(scanned_files=len(html_files), issues=issues)


def _is_ignorable(reference: str, prefix: str) -> bool:
    stripped = reference.strip()
    if not stripped or stripped.startswith("#"):
        return True
    if "://" in prefix and stripped.startswith(prefix):
        return False
    parsed = urlsplit(stripped)
    if parsed.scheme in EXTERNAL_SCHEMES:
        return True
    # Protocol-relative URL (e.g., //cdn.example.com)
    return bool(parsed.netloc and not parsed.scheme)
