from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass, field
import logging
import math
import threading
from typing import Sequence

import numpy as np

from canvasdoc_core.config import RENDER_FORMATS, RenderSettings
from canvasdoc_core.diagnostics import Diagnostic, DiagnosticsCollector
from canvasdoc_core.document import Document
from canvasdoc_core.errors import ImageLoadError, RenderCancelledError
from canvasdoc_core.records import (
    BaseRecord,
    CircleRecord,
    DrawableFields,
    EllipseRecord,
    GroupRecord,
    ImageRecord,
    LineRecord,
    PathRecord,
    PolygonRecord,
    RectRecord,
    TextRecord,
    TriangleRecord,
)

from .coverage import fill_coverage, stroke_coverage
from .geometry import (
    Subpath,
    dash_polyline,
    ellipse_subpaths,
    line_subpaths,
    path_subpaths,
    polygon_subpaths,
    rect_subpaths,
    triangle_subpaths,
)
from .images import DefaultImageLoader, ImageLoader, cover_fit
from .paint import RGBA, Affine, PaintStack, PaintState, parse_color
from .surface import RasterSurface
from .text import render_text_layer


LOGGER = logging.getLogger(__name__)

_MIME_TYPES = {"png": "image/png", "jpeg": "image/jpeg", "webp": "image/webp"}
_MAX_IMAGE_LAYER_SIDE = 8192


@dataclass(frozen=True)
class RenderOptions:
    format: str = "png"
    quality: float = 1.0
    scale_multiplier: float = 1.0
    background_color: str = "#ffffff"

    def __post_init__(self) -> None:
        if self.format not in RENDER_FORMATS:
            raise ValueError(f"unsupported render format: {self.format}")
        if not 0.0 <= self.quality <= 1.0:
            raise ValueError("quality must be within [0, 1]")
        if not math.isfinite(self.scale_multiplier) or self.scale_multiplier <= 0:
            raise ValueError("scale_multiplier must be > 0")

    @classmethod
    def from_settings(cls, settings: RenderSettings) -> "RenderOptions":
        return cls(format=settings.format, quality=settings.quality, scale_multiplier=settings.scale_multiplier)


@dataclass(frozen=True)
class RenderResult:
    data: bytes
    width: int
    height: int
    format: str
    diagnostics: tuple[Diagnostic, ...] = ()

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self.format]

    def as_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def as_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.as_base64()}"


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RenderCancelledError("render cancelled")


@dataclass
class _RenderJob:
    """State owned by exactly one render call."""

    surface: RasterSurface
    canvas_width: int
    canvas_height: int
    diagnostics: DiagnosticsCollector = field(default_factory=DiagnosticsCollector)
    stack: PaintStack = field(default_factory=PaintStack)
    cancel_token: CancellationToken | None = None

    def check_cancelled(self) -> None:
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled()


class DocumentRasterizer:
    """Reconstructs pixels from a document without the interactive editor.

    Objects paint strictly in array order. Each render owns its surface and
    paint stack, so independent renders may run concurrently.
    """

    def __init__(
        self,
        *,
        image_loader: ImageLoader | None = None,
        settings: RenderSettings | None = None,
    ) -> None:
        self.settings = settings or RenderSettings()
        self.image_loader = image_loader or DefaultImageLoader(timeout_s=self.settings.image_timeout_s)
        self.font_dirs = tuple(self.settings.font_dirs)

    async def render(
        self,
        source: Document | Sequence[DrawableFields],
        canvas_width: int | None = None,
        canvas_height: int | None = None,
        options: RenderOptions | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> RenderResult:
        options = options or RenderOptions.from_settings(self.settings)
        if isinstance(source, Document):
            records = source.objects
            width = canvas_width or source.canvas_size.width
            height = canvas_height or source.canvas_size.height
            background_color = source.background_color
            background_image_uri = source.background_image_uri
        else:
            if canvas_width is None or canvas_height is None:
                raise ValueError("canvas_width and canvas_height are required when rendering bare records")
            records = tuple(source)
            width, height = canvas_width, canvas_height
            background_color = options.background_color
            background_image_uri = None
        if width <= 0 or height <= 0:
            raise ValueError("canvas width/height must be > 0")

        multiplier = options.scale_multiplier
        job = _RenderJob(
            surface=RasterSurface(
                width=max(1, int(round(width * multiplier))),
                height=max(1, int(round(height * multiplier))),
                background=None,
            ),
            canvas_width=width,
            canvas_height=height,
            cancel_token=cancel_token,
        )
        job.check_cancelled()
        self._paint_background(job, background_color)
        if background_image_uri:
            await self._paint_background_image(job, background_image_uri)

        root = PaintState(transform=Affine().scale(multiplier, multiplier))
        await self._paint_records(job, records, root)
        job.check_cancelled()

        data = job.surface.encode(options.format, options.quality)
        LOGGER.debug(
            "rendered %d objects to %dx%d %s (%d bytes, %d diagnostics)",
            len(records),
            job.surface.width,
            job.surface.height,
            options.format,
            len(data),
            len(job.diagnostics),
        )
        return RenderResult(
            data=data,
            width=job.surface.width,
            height=job.surface.height,
            format=options.format,
            diagnostics=job.diagnostics.items,
        )

    def render_sync(self, *args: object, **kwargs: object) -> RenderResult:
        return asyncio.run(self.render(*args, **kwargs))

    async def render_many(
        self,
        sources: Sequence[Document],
        options: RenderOptions | None = None,
    ) -> list[RenderResult]:
        """Render several documents concurrently; results keep input order."""
        return list(await asyncio.gather(*(self.render(source, options=options) for source in sources)))

    async def _paint_records(self, job: _RenderJob, records: Sequence[DrawableFields], parent: PaintState) -> None:
        for record in records:
            job.check_cancelled()
            state = job.stack.push(self._object_state(job, record, parent))
            try:
                await self._paint_record(job, record, state)
            finally:
                job.stack.pop()

    async def _paint_record(self, job: _RenderJob, record: DrawableFields, state: PaintState) -> None:
        LOGGER.debug("painting %s `%s`", record.kind, record.id)
        if abs(state.transform.determinant()) < 1e-12:
            return
        scale = state.transform.max_scale()
        if isinstance(record, RectRecord):
            self._paint_shape(job, state, rect_subpaths(record.width, record.height, record.rx, record.ry, pixel_scale=scale))
        elif isinstance(record, CircleRecord):
            r = record.radius
            self._paint_shape(job, state, ellipse_subpaths(r, r, r, r, pixel_scale=scale))
        elif isinstance(record, EllipseRecord):
            self._paint_shape(job, state, ellipse_subpaths(record.rx, record.ry, record.rx, record.ry, pixel_scale=scale))
        elif isinstance(record, TriangleRecord):
            self._paint_shape(job, state, triangle_subpaths(record.width, record.height))
        elif isinstance(record, PolygonRecord):
            self._paint_shape(job, state, polygon_subpaths(record.points))
        elif isinstance(record, PathRecord):
            self._paint_shape(job, state, path_subpaths(record.commands, pixel_scale=scale))
        elif isinstance(record, LineRecord):
            self._paint_shape(job, state, line_subpaths(record.x1, record.y1, record.x2, record.y2), fill=False)
        elif isinstance(record, TextRecord):
            self._paint_text(job, record, state)
        elif isinstance(record, ImageRecord):
            await self._paint_image(job, record, state)
        elif isinstance(record, GroupRecord):
            await self._paint_records(job, record.children, state)
        elif isinstance(record, BaseRecord):
            job.diagnostics.unknown_kind(record.id, record.kind)
        else:
            raise TypeError(f"not a drawable record: {type(record).__name__}")

    def _object_state(self, job: _RenderJob, record: DrawableFields, parent: PaintState) -> PaintState:
        ox = _anchor_offset(record.anchor_x, record.width)
        oy = _anchor_offset(record.anchor_y, record.height)
        transform = (
            parent.transform.translate(record.x, record.y)
            .translate(ox, oy)
            .rotate(math.radians(record.rotation_degrees))
            .scale(record.scale_x, record.scale_y)
            .translate(-ox, -oy)
        )
        stroke = self._color(job, record.id, "strokeColor", record.stroke_color)
        return PaintState(
            transform=transform,
            fill=self._color(job, record.id, "fillColor", record.fill_color),
            stroke=stroke,
            # A visible stroke color with no width paints the 1px default line.
            stroke_width=record.stroke_width if record.stroke_width > 0 else 1.0,
            line_cap=record.stroke_cap,
            line_join=record.stroke_join,
            dash=tuple(record.dash_pattern or ()) if isinstance(record, LineRecord) else (),
            opacity=parent.opacity * record.opacity,
        )

    def _paint_background(self, job: _RenderJob, background_color: str) -> None:
        color = self._color(job, None, "backgroundColor", background_color)
        if color is not None:
            job.surface.pixels[:, :] = job.surface.pixels.new_tensor(color)

    async def _paint_background_image(self, job: _RenderJob, uri: str) -> None:
        surface = job.surface
        try:
            image = await self.image_loader.load(uri)
        except ImageLoadError as exc:
            job.diagnostics.resource_unavailable(None, f"background image: {exc}")
            return
        fitted = cover_fit(image, (surface.width, surface.height))
        surface.composite_layer(np.asarray(fitted.convert("RGBA"), dtype=np.uint8), Affine())

    def _paint_shape(self, job: _RenderJob, state: PaintState, subpaths: list[Subpath], *, fill: bool = True) -> None:
        if not subpaths:
            return
        surface = job.surface
        device = [(state.transform.apply_many(points), closed) for points, closed in subpaths]
        fill_color = state.fill_color() if fill else None
        if fill_color is not None:
            coverage = fill_coverage([points for points, _ in device], surface.width, surface.height)
            if coverage is not None:
                surface.blend_coverage(coverage, fill_color)
        stroke_color = state.stroke_color()
        if stroke_color is None:
            return
        line_width = state.stroke_width * state.transform.mean_scale()
        polylines: list[tuple[list[tuple[float, float]], bool]] = []
        if state.dash:
            dash = tuple(value * state.transform.mean_scale() for value in state.dash)
            for points, closed in device:
                polylines.extend((run, False) for run in dash_polyline(points, closed, dash))
        else:
            polylines = device
        coverage = stroke_coverage(polylines, line_width, state.line_cap, state.line_join, surface.width, surface.height)
        if coverage is not None:
            surface.blend_coverage(coverage, stroke_color)

    def _paint_text(self, job: _RenderJob, record: TextRecord, state: PaintState) -> None:
        layer = render_text_layer(
            record,
            state.fill_color(),
            state.stroke_color(),
            state.stroke_width,
            state.transform.max_scale(),
            self.font_dirs,
        )
        if layer is None:
            return
        to_device = state.transform.translate(*layer.origin).scale(1.0 / layer.pixel_scale, 1.0 / layer.pixel_scale)
        if layer.fill is not None:
            job.surface.composite_layer(layer.fill, to_device)
        if layer.stroke is not None:
            job.surface.composite_layer(layer.stroke, to_device)

    async def _paint_image(self, job: _RenderJob, record: ImageRecord, state: PaintState) -> None:
        try:
            image = await self.image_loader.load(record.source_uri)
        except ImageLoadError as exc:
            job.diagnostics.resource_unavailable(record.id, str(exc))
            return
        width = record.width if record.width > 0 else float(image.width)
        height = record.height if record.height > 0 else float(image.height)
        pixel_scale = max(0.05, min(state.transform.max_scale(), _MAX_IMAGE_LAYER_SIDE / max(width, height, 1.0)))
        target = (max(1, int(round(width * pixel_scale))), max(1, int(round(height * pixel_scale))))
        fitted = np.array(cover_fit(image, target).convert("RGBA"), dtype=np.uint8)
        if state.opacity < 1.0:
            fitted[:, :, 3] = (fitted[:, :, 3].astype(np.float64) * state.opacity).round().astype(np.uint8)
        to_device = state.transform.scale(width / target[0], height / target[1])
        job.surface.composite_layer(fitted, to_device)

    def _color(self, job: _RenderJob, object_id: str | None, field_name: str, value: str) -> RGBA | None:
        try:
            return parse_color(value)
        except ValueError:
            job.diagnostics.malformed(object_id, field_name, value)
            return None


def _anchor_offset(anchor: str, extent: float) -> float:
    if anchor == "center":
        return extent / 2.0
    if anchor in ("right", "bottom"):
        return extent
    return 0.0
