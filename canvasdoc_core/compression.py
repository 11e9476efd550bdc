from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
import logging

from .config import CompressionSettings
from .diagnostics import Diagnostic, DiagnosticsCollector
from .document import Document, canonical_json_bytes
from .records import (
    CircleRecord,
    DrawableRecord,
    EllipseRecord,
    GroupRecord,
    LineRecord,
    PathCommand,
    PathRecord,
    PolygonRecord,
    RectRecord,
    TextRecord,
)


LOGGER = logging.getLogger(__name__)

GEOMETRY_DECIMALS = 2
SCALE_DECIMALS = 3
ANGLE_DECIMALS = 2


class CompressionTier(str, Enum):
    FULL = "full"
    MINIMAL = "minimal"
    ULTRA_MINIMAL = "ultra_minimal"


@dataclass(frozen=True)
class OptimizationResult:
    result: Document
    tier_used: CompressionTier
    original_size: int
    result_size: int
    budget_bytes: int
    budget_exceeded: bool = False
    diagnostics: tuple[Diagnostic, ...] = ()

    def payload(self) -> dict[str, object]:
        return serialize(self.result, self.tier_used)

    def to_dict(self) -> dict[str, object]:
        return {
            "result": self.payload(),
            "tierUsed": self.tier_used.value,
            "originalSize": self.original_size,
            "resultSize": self.result_size,
            "budgetExceeded": self.budget_exceeded,
        }


def compress_full(document: Document) -> Document:
    return document


def compress_minimal(document: Document, *, storage_only: bool = True) -> Document:
    """Round every numeric attribute; with ``storage_only`` drop timestamps too.

    The tier's serialization (``serialize``) also omits canonical defaults.
    """
    metadata = document.metadata
    if storage_only and metadata is not None:
        metadata = replace(metadata, created_at=None, updated_at=None)
    return replace(
        document,
        objects=tuple(_round_record(record) for record in document.objects),
        metadata=metadata,
    )


def compress_ultra_minimal(
    document: Document,
    *,
    object_limit: int,
    text_limit: int | None,
    drop_background_image: bool = True,
) -> Document:
    """Minimal tier, then keep only the first ``object_limit`` objects.

    ``text_limit`` truncates text content to that many code points; ``None``
    keeps text whole.
    """
    if object_limit < 0:
        raise ValueError("object_limit must be >= 0")
    if text_limit is not None and text_limit < 0:
        raise ValueError("text_limit must be >= 0")
    minimal = compress_minimal(document, storage_only=True)
    objects = minimal.objects[:object_limit]
    if text_limit is not None:
        objects = tuple(_truncate_text(record, text_limit) for record in objects)
    return replace(
        minimal,
        objects=objects,
        background_image_uri=None if drop_background_image else minimal.background_image_uri,
    )


def serialize(document: Document, tier: CompressionTier) -> dict[str, object]:
    return document.to_dict(omit_defaults=tier is not CompressionTier.FULL)


def serialized_size(document: Document, tier: CompressionTier) -> int:
    """Exact UTF-8 byte length of the tier's canonical serialization."""
    return len(canonical_json_bytes(serialize(document, tier)))


def optimize(
    document: Document,
    max_bytes: int | None = None,
    *,
    settings: CompressionSettings | None = None,
    storage_only: bool = True,
) -> OptimizationResult:
    """Walk Full -> Minimal -> Ultra-minimal and return the first tier that fits.

    The last rung is returned even when it is still over budget; the result
    is then flagged and carries a ``budget_exceeded`` diagnostic.
    """
    settings = settings or CompressionSettings()
    budget = settings.default_budget_bytes if max_bytes is None else int(max_bytes)
    if budget <= 0:
        raise ValueError("max_bytes must be > 0")

    original_size = serialized_size(document, CompressionTier.FULL)
    if original_size <= budget:
        return OptimizationResult(compress_full(document), CompressionTier.FULL, original_size, original_size, budget)

    minimal = compress_minimal(document, storage_only=storage_only)
    minimal_size = serialized_size(minimal, CompressionTier.MINIMAL)
    if minimal_size <= budget:
        LOGGER.info("document %s: minimal tier %d -> %d bytes", document.id, original_size, minimal_size)
        return OptimizationResult(minimal, CompressionTier.MINIMAL, original_size, minimal_size, budget)

    ultra = _last_rung(document, budget, settings)
    ultra_size = serialized_size(ultra, CompressionTier.ULTRA_MINIMAL)
    diagnostics = DiagnosticsCollector()
    exceeded = ultra_size > budget
    if exceeded:
        diagnostics.budget_exceeded(ultra_size, budget)
    LOGGER.info("document %s: ultra-minimal tier %d -> %d bytes", document.id, original_size, ultra_size)
    return OptimizationResult(
        ultra,
        CompressionTier.ULTRA_MINIMAL,
        original_size,
        ultra_size,
        budget,
        budget_exceeded=exceeded,
        diagnostics=diagnostics.items,
    )


def ultra_floor(document: Document, max_bytes: int, settings: CompressionSettings | None = None) -> int:
    """Size of the smallest rung ``optimize`` can reach for this budget."""
    settings = settings or CompressionSettings()
    return serialized_size(_last_rung(document, max_bytes, settings), CompressionTier.ULTRA_MINIMAL)


def _last_rung(document: Document, budget: int, settings: CompressionSettings) -> Document:
    if budget <= settings.ultra_threshold_bytes:
        return compress_ultra_minimal(
            document,
            object_limit=settings.ultra_object_limit,
            text_limit=settings.ultra_text_limit,
        )
    return compress_ultra_minimal(
        document,
        object_limit=settings.large_budget_object_limit,
        text_limit=None,
        drop_background_image=False,
    )


def _round_record(record: DrawableRecord) -> DrawableRecord:
    changes: dict[str, object] = {
        "x": _r(record.x),
        "y": _r(record.y),
        "width": _r(record.width),
        "height": _r(record.height),
        "scale_x": round(record.scale_x, SCALE_DECIMALS),
        "scale_y": round(record.scale_y, SCALE_DECIMALS),
        "rotation_degrees": round(record.rotation_degrees, ANGLE_DECIMALS),
        "opacity": round(record.opacity, SCALE_DECIMALS),
        "stroke_width": _r(record.stroke_width),
    }
    if isinstance(record, TextRecord):
        font_size = _r(record.font_size_px)
        changes.update(
            font_size_px=font_size if font_size > 0 else record.font_size_px,
            char_spacing=_r(record.char_spacing),
        )
    elif isinstance(record, (RectRecord, EllipseRecord)):
        changes.update(rx=_r(record.rx), ry=_r(record.ry))
    elif isinstance(record, CircleRecord):
        changes["radius"] = _r(record.radius)
    elif isinstance(record, PolygonRecord):
        changes["points"] = tuple((_r(x), _r(y)) for x, y in record.points)
    elif isinstance(record, PathRecord):
        changes["commands"] = tuple(
            PathCommand(op=command.op, args=tuple(_r(value) for value in command.args))
            for command in record.commands
        )
    elif isinstance(record, LineRecord):
        changes.update(x1=_r(record.x1), y1=_r(record.y1), x2=_r(record.x2), y2=_r(record.y2))
    elif isinstance(record, GroupRecord):
        changes["children"] = tuple(_round_record(child) for child in record.children)
    return replace(record, **changes)


def _truncate_text(record: DrawableRecord, limit: int) -> DrawableRecord:
    if isinstance(record, TextRecord) and len(record.content) > limit:
        return replace(record, content=record.content[:limit])
    if isinstance(record, GroupRecord):
        return replace(record, children=tuple(_truncate_text(child, limit) for child in record.children))
    return record


def _r(value: float) -> float:
    return round(value, GEOMETRY_DECIMALS)
