from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

CONFIG_FILENAME = "inksite.yml"


class RenderConfig(BaseModel):
    """Options for turning notebook pages into SVG images."""

    workers: int | None = Field(
        default=None,
        ge=1,
        description="Size of the render worker pool. Defaults to the number of CPUs.",
    )
    scale: float = Field(default=1.0, gt=0, description="Scale applied to device coordinates.")
    canvas_width: int = Field(default=1404, ge=1, description="Device canvas width in pixels.")
    canvas_height: int = Field(default=1872, ge=1, description="Device canvas height in pixels.")
    crop_padding: float = Field(
        default=8.0,
        ge=0,
        description="Padding kept around the strokes when a page is cropped to its content.",
    )
    templates_dir: Path | None = Field(
        default=None,
        description="Directory holding page template images named '<template>.png'.",
    )

    @field_validator("templates_dir", mode="before")
    def _ensure_path(cls, value: Any) -> Path | None:
        if value is None or value == "":
            return None
        return Path(value)


class Config(BaseModel):
    title: str = Field(default="My Notebooks")
    site_root: str = Field(
        default="Site",
        description="Name of the root-level folder holding the site, or its document id.",
    )
    theme: str = Field(default="default")
    themes_dir: Path | None = Field(
        default=None,
        description="Directory containing theme folders. Defaults to the bundled themes.",
    )
    material_dir: Path = Field(default=Path("material"))
    output_dir: Path = Field(default=Path("site"))
    url_prefix: str = Field(default="/", description="Prefix prepended to every emitted link.")
    source_dir: Path | None = Field(
        default=None,
        description="Local device export used as the document store by 'fetch'.",
    )
    render: RenderConfig = Field(default_factory=RenderConfig)

    @field_validator("material_dir", "output_dir", mode="before")
    def _ensure_path(cls, value: Any) -> Path:
        return Path(value)

    @field_validator("themes_dir", "source_dir", mode="before")
    def _ensure_optional_path(cls, value: Any) -> Path | None:
        if value is None or value == "":
            return None
        return Path(value)

    @field_validator("url_prefix")
    def _normalize_prefix(cls, value: str) -> str:
        text = value.strip()
        if not text:
            return "/"
        if "://" not in text and not text.startswith("/"):
            text = f"/{text}"
        if not text.endswith("/"):
            text = f"{text}/"
        return text

    @property
    def themes_root(self) -> Path:
        """Directory searched for the configured theme."""
        if self.themes_dir is not None:
            return self.themes_dir
        return Path(__file__).resolve().parent / "themes"

    @property
    def archives_dir(self) -> Path:
        return self.material_dir / "zip"


def load_config(path: Path | str) -> Config:
    """Load configuration and resolve relative paths based on the config location.

    The ``path`` argument may point to a file (e.g., ``/site/inksite.yml``) or a
    directory containing that file. All relative paths inside the configuration
    are interpreted relative to the directory holding the config file.
    """
    candidate = Path(path)
    data: dict[str, Any] = {}
    base_dir: Path
    if candidate.is_dir():
        # A project directory without a config file runs on defaults.
        config_file = candidate / CONFIG_FILENAME
        if config_file.exists():
            with config_file.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        base_dir = candidate.resolve()
    else:
        if not candidate.exists():
            raise FileNotFoundError(candidate)
        with candidate.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        base_dir = candidate.parent.resolve()

    if not isinstance(data, dict):
        raise ValueError(f"Configuration {candidate} must define a mapping at its root.")

    cfg = Config(**data)

    def _abs_required(value: Path) -> Path:
        return value if value.is_absolute() else (base_dir / value).resolve()

    def _abs_optional(value: Path | None) -> Path | None:
        if value is None:
            return None
        return _abs_required(value)

    cfg.material_dir = _abs_required(cfg.material_dir)
    cfg.output_dir = _abs_required(cfg.output_dir)
    cfg.themes_dir = _abs_optional(cfg.themes_dir)
    cfg.source_dir = _abs_optional(cfg.source_dir)
    cfg.render.templates_dir = _abs_optional(cfg.render.templates_dir)

    return cfg
