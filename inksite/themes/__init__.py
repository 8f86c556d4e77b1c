"""Theme loading and rendering utilities for inksite."""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any, Protocol

from jinja2 import Environment, FileSystemLoader, TemplateError, TemplateNotFound, select_autoescape
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ConfigurationError, OutputError

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "theme.json"
DEFAULT_THEME_NAME = "default"
BUNDLED_THEMES_DIR = Path(__file__).resolve().parent
REQUIRED_ENTRYPOINTS = ("index", "document", "folder")


class ThemeError(ConfigurationError):
    """Raised when a theme cannot be loaded or validated."""


class SiteTheme(Protocol):
    """Rendering operations the site assembler needs from a theme."""

    def render_index(self, params: dict[str, Any], output_root: Path) -> Path:
        ...

    def render_document(self, params: dict[str, Any], out: Path) -> Path:
        ...

    def render_folder(self, params: dict[str, Any], out: Path) -> Path:
        ...

    def copy_stylesheet(self, output_root: Path) -> Path:
        ...


def _default_entrypoints() -> dict[str, str]:
    return {name: f"{name}.html" for name in REQUIRED_ENTRYPOINTS}


class ThemeManifest(BaseModel):
    """Structured representation of the optional theme.json manifest."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(default="Unnamed Theme")
    version: str | None = Field(default=None)
    entrypoints: dict[str, str] = Field(default_factory=_default_entrypoints)
    stylesheet: str = Field(default="style.css")

    def resolved_entrypoints(self) -> dict[str, str]:
        return {**_default_entrypoints(), **self.entrypoints}


class ThemeLoader:
    """Load a theme directory into a Jinja environment."""

    def __init__(self, *, themes_root: Path, active_theme: str = DEFAULT_THEME_NAME) -> None:
        self._themes_root = themes_root
        self._active_theme = active_theme or DEFAULT_THEME_NAME
        self._environment: Environment | None = None
        self._manifest: ThemeManifest | None = None
        self._load()

    @property
    def manifest(self) -> ThemeManifest:
        assert self._manifest is not None  # pragma: no cover - construction guarantees
        return self._manifest

    @property
    def environment(self) -> Environment:
        assert self._environment is not None  # pragma: no cover - construction guarantees
        return self._environment

    @property
    def theme_dir(self) -> Path:
        return self._themes_root / self._active_theme

    @property
    def stylesheet(self) -> Path:
        return self.theme_dir / self.manifest.stylesheet

    def render_page(self, key: str, context: dict[str, Any]) -> str:
        template_path = self.manifest.resolved_entrypoints().get(key)
        if not template_path:
            raise ThemeError(f"Theme '{self._active_theme}' does not define an entrypoint named '{key}'.")
        template = self.environment.get_template(template_path)
        try:
            return template.render(**context)
        except TemplateError as exc:
            raise ThemeError(f"Template '{template_path}' of theme '{self._active_theme}' failed: {exc}") from exc

    def render_index(self, params: dict[str, Any], output_root: Path) -> Path:
        return self._write("index", params, output_root / "index.html")

    def render_document(self, params: dict[str, Any], out: Path) -> Path:
        return self._write("document", params, out)

    def render_folder(self, params: dict[str, Any], out: Path) -> Path:
        return self._write("folder", params, out)

    def copy_stylesheet(self, output_root: Path) -> Path:
        destination = output_root / "style.css"
        try:
            shutil.copyfile(self.stylesheet, destination)
        except OSError as exc:
            raise OutputError(f"Copying theme stylesheet to {destination} failed: {exc}") from exc
        return destination

    def _write(self, key: str, params: dict[str, Any], out: Path) -> Path:
        rendered = self.render_page(key, params)
        try:
            out.write_text(rendered, encoding="utf-8")
        except OSError as exc:
            raise OutputError(f"Writing {key} page {out} failed: {exc}") from exc
        return out

    def _load(self) -> None:
        theme_dir = self.theme_dir
        if not theme_dir.is_dir():
            raise ThemeError(f"Theme '{self._active_theme}' not found under '{self._themes_root}'.")

        manifest = self._load_manifest(theme_dir)
        environment = Environment(
            loader=FileSystemLoader(str(theme_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        environment.globals["theme"] = {"name": manifest.name, "version": manifest.version}

        self._environment = environment
        self._manifest = manifest

        for key, template_path in manifest.resolved_entrypoints().items():
            try:
                environment.get_template(template_path)
            except TemplateNotFound as exc:
                raise ThemeError(
                    f"Required template '{template_path}' ({key}) not found in theme '{self._active_theme}'."
                ) from exc
        if not self.stylesheet.is_file():
            raise ThemeError(f"Missing theme stylesheet: {self.stylesheet}")

    def _load_manifest(self, theme_dir: Path) -> ThemeManifest:
        manifest_path = theme_dir / MANIFEST_FILENAME
        if not manifest_path.exists():
            logger.debug("Theme manifest not found at %s; using default entrypoints.", manifest_path)
            return ThemeManifest(name=self._active_theme)
        try:
            data = json.loads(manifest_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ThemeError(f"Failed to load theme manifest at {manifest_path}: {exc}") from exc
        try:
            return ThemeManifest.model_validate(data)
        except ValidationError as exc:
            raise ThemeError(f"Theme manifest validation failed for {manifest_path}: {exc}") from exc


def load_theme(themes_root: Path, name: str = DEFAULT_THEME_NAME) -> ThemeLoader:
    """Construct a ThemeLoader for ``name`` under ``themes_root``."""
    return ThemeLoader(themes_root=themes_root, active_theme=name)
