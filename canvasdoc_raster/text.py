from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import logging
import math
from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw, ImageFilter, ImageFont

from canvasdoc_core.records import TextRecord

from .paint import RGBA


LOGGER = logging.getLogger(__name__)

FontLike = ImageFont.FreeTypeFont | ImageFont.ImageFont

SANS_FALLBACK_PATTERNS = (
    "arial",
    "helvetica",
    "liberationsans",
    "dejavusans",
    "notosans",
    "freesans",
)
SYSTEM_FONT_DIRS = (
    Path.home() / "Library" / "Fonts",
    Path("/Library/Fonts"),
    Path("/System/Library/Fonts"),
    Path("/System/Library/Fonts/Supplemental"),
    Path("/usr/share/fonts"),
    Path("/usr/local/share/fonts"),
    Path("C:/Windows/Fonts"),
)
_MAX_LAYER_SIDE = 8192


@dataclass(frozen=True)
class TextRun:
    """One drawn piece of text, positioned in layer pixels (top-left of the line box)."""

    text: str
    x: float
    y: float


@dataclass(frozen=True)
class TextLayer:
    """Rasterized text ready to composite.

    ``origin`` is the layer's top-left in the record's local units and
    ``pixel_scale`` is layer pixels per local unit.
    """

    fill: np.ndarray | None
    stroke: np.ndarray | None
    origin: tuple[float, float]
    pixel_scale: float


def is_bold(weight: str) -> bool:
    raw = weight.strip().lower()
    if raw in ("bold", "bolder", "semibold", "extrabold", "black", "heavy"):
        return True
    try:
        return float(raw) >= 600
    except ValueError:
        return False


def line_start(align: str, box_width: float, line_width: float) -> float:
    if align == "center":
        return (box_width - line_width) / 2.0
    if align == "right":
        return box_width - line_width
    return 0.0


def layout_runs(record: TextRecord, font: FontLike, pixel_scale: float) -> tuple[list[TextRun], float, float]:
    """Position each line (or each glyph, when char spacing is set).

    Returns the runs plus the laid-out extent ``(min_x, max_x)`` in layer pixels.
    """
    line_height = record.font_size_px * record.line_height_multiplier * pixel_scale
    spacing = record.char_spacing * pixel_scale
    box_width = record.width * pixel_scale
    runs: list[TextRun] = []
    min_x, max_x = 0.0, box_width
    for index, line in enumerate(record.content.split("\n")):
        y = index * line_height
        if record.char_spacing > 0:
            advances = [float(font.getlength(ch)) for ch in line]
            line_width = sum(advances) + spacing * max(0, len(line) - 1)
            x = line_start(record.text_align, box_width, line_width)
            cursor = x
            for ch, advance in zip(line, advances):
                if not ch.isspace():
                    runs.append(TextRun(ch, cursor, y))
                cursor += advance + spacing
        else:
            line_width = float(font.getlength(line)) if line else 0.0
            x = line_start(record.text_align, box_width, line_width)
            if line:
                runs.append(TextRun(line, x, y))
        min_x = min(min_x, x)
        max_x = max(max_x, x + line_width)
    return runs, min_x, max_x


def render_text_layer(
    record: TextRecord,
    fill: RGBA | None,
    stroke: RGBA | None,
    stroke_width: float,
    pixel_scale: float,
    font_dirs: tuple[str, ...] = (),
) -> TextLayer | None:
    if not record.content or (fill is None and stroke is None):
        return None
    pixel_scale = _bounded_scale(record, pixel_scale)
    font = load_font(record.font_family, is_bold(record.font_weight), record.font_size_px * pixel_scale, font_dirs)
    runs, min_x, max_x = layout_runs(record, font, pixel_scale)
    if not runs:
        return None
    stroke_px = max(1, int(round(stroke_width * pixel_scale / 2.0))) if stroke is not None else 0
    pad = stroke_px + 2
    ascent, descent = _font_metrics(font, record.font_size_px * pixel_scale)
    line_count = record.content.count("\n") + 1
    line_height = record.font_size_px * record.line_height_multiplier * pixel_scale
    text_bottom = (line_count - 1) * line_height + ascent + descent
    content_bottom = max(record.height * pixel_scale, text_bottom)
    width = int(math.ceil(max_x - min_x)) + 2 * pad
    height = int(math.ceil(content_bottom)) + 2 * pad
    if width <= 0 or height <= 0:
        return None
    ox, oy = min_x - pad, -float(pad)

    fill_mask = Image.new("L", (width, height), 0)
    draw = ImageDraw.Draw(fill_mask)
    for run in runs:
        draw.text((run.x - ox, run.y - oy), run.text, fill=255, font=font)
    fill_layer = _solid_layer(np.asarray(fill_mask, dtype=np.uint8), fill) if fill is not None else None

    stroke_layer = None
    if stroke is not None:
        outer = Image.new("L", (width, height), 0)
        outer_draw = ImageDraw.Draw(outer)
        for run in runs:
            outer_draw.text(
                (run.x - ox, run.y - oy),
                run.text,
                fill=255,
                font=font,
                stroke_width=stroke_px,
                stroke_fill=255,
            )
        inner = fill_mask.filter(ImageFilter.MinFilter(2 * stroke_px + 1))
        ring = np.clip(
            np.asarray(outer, dtype=np.int16) - np.asarray(inner, dtype=np.int16),
            0,
            255,
        ).astype(np.uint8)
        stroke_layer = _solid_layer(ring, stroke)

    return TextLayer(
        fill=fill_layer,
        stroke=stroke_layer,
        origin=(ox / pixel_scale, oy / pixel_scale),
        pixel_scale=pixel_scale,
    )


@lru_cache(maxsize=128)
def load_font(family: str, bold: bool, size_px: float, font_dirs: tuple[str, ...] = ()) -> FontLike:
    size = max(1, int(round(size_px)))
    font_path = resolve_font_path(family, bold, font_dirs)
    if font_path is not None:
        try:
            return ImageFont.truetype(str(font_path), size=size)
        except OSError:
            LOGGER.debug("font file %s unreadable, using default font", font_path)
    return ImageFont.load_default(size=size)


@lru_cache(maxsize=64)
def resolve_font_path(family: str, bold: bool, font_dirs: tuple[str, ...] = ()) -> Path | None:
    wanted = family.strip().lower().replace(" ", "")
    patterns = ((wanted,) if wanted else ()) + SANS_FALLBACK_PATTERNS
    candidates = _font_candidates(font_dirs)
    for pattern in patterns:
        matches = [
            path
            for path in candidates
            if pattern in path.stem.lower().replace(" ", "").replace("-", "")
        ]
        if not matches:
            continue
        styled = [path for path in matches if _is_bold_file(path) == bold and not _is_italic_file(path)]
        return sorted(styled or matches, key=lambda path: (len(path.stem), str(path)))[0]
    return None


@lru_cache(maxsize=8)
def _font_candidates(font_dirs: tuple[str, ...]) -> tuple[Path, ...]:
    candidates: list[Path] = []
    for base in tuple(Path(item) for item in font_dirs) + SYSTEM_FONT_DIRS:
        if not base.exists():
            continue
        for ext in ("*.ttf", "*.otf", "*.ttc"):
            candidates.extend(base.rglob(ext))
    return tuple(candidates)


def _is_bold_file(path: Path) -> bool:
    stem = path.stem.lower()
    return "bold" in stem or "black" in stem or "heavy" in stem


def _is_italic_file(path: Path) -> bool:
    stem = path.stem.lower()
    return "italic" in stem or "oblique" in stem


def _font_metrics(font: FontLike, size_px: float) -> tuple[int, int]:
    try:
        ascent, descent = font.getmetrics()
        return int(max(1, ascent)), int(max(0, descent))
    except AttributeError:
        return int(max(1, size_px * 0.8)), int(max(0, size_px * 0.2))


def _solid_layer(coverage: np.ndarray, color: RGBA) -> np.ndarray:
    layer = np.zeros(coverage.shape + (4,), dtype=np.uint8)
    layer[:, :, 0] = color[0]
    layer[:, :, 1] = color[1]
    layer[:, :, 2] = color[2]
    layer[:, :, 3] = (coverage.astype(np.uint16) * color[3] // 255).astype(np.uint8)
    return layer


def _bounded_scale(record: TextRecord, pixel_scale: float) -> float:
    extent = max(record.width, record.height, record.font_size_px * (record.content.count("\n") + 2), 1.0)
    return max(0.05, min(pixel_scale, _MAX_LAYER_SIDE / extent))
