"""Turn notebook page files into SVG images."""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Protocol, Sequence
from xml.sax.saxutils import quoteattr

import rmscene
from PIL import Image
from rmscene import scene_items as si

logger = logging.getLogger(__name__)

SVG_NAMESPACE = "http://www.w3.org/2000/svg"

PEN_COLORS = {
    "BLACK": "#000000",
    "GRAY": "#7f7f7f",
    "GREY": "#7f7f7f",
    "WHITE": "#ffffff",
    "BLUE": "#1f4ed8",
    "RED": "#d62828",
    "GREEN": "#2a9d3f",
    "YELLOW": "#f2d024",
    "PINK": "#e75480",
    "GREEN_2": "#6cc04a",
    "CYAN": "#1fb5d6",
    "MAGENTA": "#c23ec2",
    "GRAY_OVERLAP": "#7f7f7f",
    "HIGHLIGHT": "#f2d024",
}


class RenderMode(str, Enum):
    """How the image canvas is sized."""

    CANVAS = "canvas"
    CROP = "crop"


@dataclass(frozen=True, slots=True)
class RenderSettings:
    scale: float = 1.0
    canvas_width: int = 1404
    canvas_height: int = 1872
    crop_padding: float = 8.0


@dataclass(frozen=True, slots=True)
class Stroke:
    """A polyline in device canvas coordinates."""

    points: tuple[tuple[float, float], ...]
    width: float
    color: str = "#000000"
    opacity: float = 1.0


class PageRenderer(Protocol):
    """Render the bytes of one page file into SVG text."""

    def render(self, page: bytes, *, mode: RenderMode, template: str | None = None) -> str:
        ...


def strokes_to_svg(
    strokes: Sequence[Stroke],
    *,
    mode: RenderMode,
    settings: RenderSettings,
    background: str | None = None,
) -> str:
    """Serialize strokes into a deterministic SVG document.

    ``background`` is an image href drawn under the strokes across the full
    canvas, typically a page template.
    """
    scale = settings.scale
    min_x, min_y = 0.0, 0.0
    width = settings.canvas_width * scale
    height = settings.canvas_height * scale

    box = bounding_box(strokes) if mode is RenderMode.CROP else None
    if box is not None:
        left, top, right, bottom = box
        pad = settings.crop_padding
        min_x = (left - pad) * scale
        min_y = (top - pad) * scale
        width = (right - left + 2 * pad) * scale
        height = (bottom - top + 2 * pad) * scale

    lines = [
        f'<svg xmlns="{SVG_NAMESPACE}" width="{_fmt(width)}" height="{_fmt(height)}" '
        f'viewBox="{_fmt(min_x)} {_fmt(min_y)} {_fmt(width)} {_fmt(height)}">'
    ]
    if background:
        lines.append(
            f"<image href={quoteattr(background)} x=\"0\" y=\"0\" "
            f'width="{_fmt(settings.canvas_width * scale)}" '
            f'height="{_fmt(settings.canvas_height * scale)}"/>'
        )
    for stroke in strokes:
        points = " ".join(f"{_fmt(x * scale)},{_fmt(y * scale)}" for x, y in stroke.points)
        opacity = f' stroke-opacity="{_fmt(stroke.opacity)}"' if stroke.opacity < 1 else ""
        lines.append(
            f'<polyline points="{points}" fill="none" stroke="{stroke.color}" '
            f'stroke-width="{_fmt(stroke.width * scale)}"{opacity} '
            'stroke-linecap="round" stroke-linejoin="round"/>'
        )
    lines.append("</svg>")
    return "\n".join(lines) + "\n"


def read_strokes(page: bytes, settings: RenderSettings) -> list[Stroke]:
    """Parse a v6 page file into strokes positioned on the device canvas."""
    tree = rmscene.read_tree(io.BytesIO(page))
    # Scene x coordinates are centred on the page.
    offset_x = settings.canvas_width / 2
    strokes: list[Stroke] = []
    for item in tree.walk():
        if not isinstance(item, si.Line) or not item.points:
            continue
        tool = getattr(item.tool, "name", "")
        if "ERASE" in tool:
            continue
        color_name = getattr(item.color, "name", "BLACK")
        widths = [point.width for point in item.points]
        strokes.append(
            Stroke(
                points=tuple((point.x + offset_x, point.y) for point in item.points),
                width=max(sum(widths) / len(widths) / 4.0, 1.0),
                color=PEN_COLORS.get(color_name, "#000000"),
                opacity=0.35 if "HIGHLIGHT" in tool else 1.0,
            )
        )
    return strokes


class TemplateLibrary:
    """Resolve page template names to embeddable image data."""

    def __init__(self, templates_dir: Path | None, settings: RenderSettings) -> None:
        self._templates_dir = templates_dir
        self._size = (
            round(settings.canvas_width * settings.scale),
            round(settings.canvas_height * settings.scale),
        )

    def data_uri(self, template: str | None) -> str | None:
        if not template or template == "Blank" or self._templates_dir is None:
            return None
        path = self._templates_dir / f"{template}.png"
        if not path.exists():
            logger.debug("Template image %s not found; rendering without background.", path)
            return None
        return _encode_template(path, self._size)


@lru_cache(maxsize=64)
def _encode_template(path: Path, size: tuple[int, int]) -> str:
    with Image.open(path) as image:
        image = image.convert("RGBA")
        if image.size != size:
            image = image.resize(size, Image.Resampling.LANCZOS)
        buffer = io.BytesIO()
        image.save(buffer, format="PNG", optimize=False)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/png;base64,{encoded}"


class RmSceneRenderer:
    """Default :class:`PageRenderer` backed by the ``rmscene`` parser."""

    def __init__(self, settings: RenderSettings | None = None, templates_dir: Path | None = None) -> None:
        self.settings = settings or RenderSettings()
        self._templates = TemplateLibrary(templates_dir, self.settings)

    def render(self, page: bytes, *, mode: RenderMode, template: str | None = None) -> str:
        strokes = read_strokes(page, self.settings)
        return strokes_to_svg(
            strokes,
            mode=mode,
            settings=self.settings,
            background=self._templates.data_uri(template),
        )


def _fmt(value: float) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text in {"", "-0"} else text


def bounding_box(strokes: Iterable[Stroke]) -> tuple[float, float, float, float] | None:
    """Return ``(min_x, min_y, max_x, max_y)`` over all stroke points."""
    points = [point for stroke in strokes for point in stroke.points]
    if not points:
        return None
    xs = [x for x, _ in points]
    ys = [y for _, y in points]
    return min(xs), min(ys), max(xs), max(ys)
