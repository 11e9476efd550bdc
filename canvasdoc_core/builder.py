from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Callable, Mapping, Sequence

from .coercion import finite_float
from .diagnostics import DiagnosticsCollector
from .document import DEFAULT_BACKGROUND_COLOR, FORMAT_VERSION, CanvasSize, Document, DocumentMetadata
from .extractor import extract_record
from .records import DrawableRecord
from .scene import LiveScene


LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_objects(
    scene: LiveScene,
    *,
    diagnostics: DiagnosticsCollector | None = None,
) -> tuple[DrawableRecord, ...]:
    return tuple(extract_record(item, diagnostics=diagnostics) for item in _paint_ordered(scene.get_objects()))


def build_canvas_settings(
    *,
    editor_kind: str,
    canvas_size: CanvasSize | str,
    background_color: str = DEFAULT_BACKGROUND_COLOR,
    background_image_uri: str | None = None,
) -> dict[str, object]:
    size = CanvasSize.parse(canvas_size)
    return {
        "editorKind": editor_kind,
        "canvasSize": size.to_dict(),
        "backgroundColor": background_color,
        "backgroundImageUri": background_image_uri,
    }


def build_document(
    scene: LiveScene,
    *,
    document_id: str,
    editor_kind: str,
    canvas_size: CanvasSize | str,
    background_color: str = DEFAULT_BACKGROUND_COLOR,
    background_image_uri: str | None = None,
    template_key: str | None = None,
    previous: Document | None = None,
    include_metadata: bool = True,
    clock: Clock | None = None,
    diagnostics: DiagnosticsCollector | None = None,
) -> Document:
    """Snapshot a live scene as a ``Document``.

    ``created_at`` carries over from ``previous`` when that snapshot had one;
    ``updated_at`` is always the current time.
    """
    objects = build_objects(scene, diagnostics=diagnostics)
    metadata = None
    if include_metadata:
        now = (clock or _utc_now)().isoformat()
        created_at = now
        if previous is not None and previous.metadata is not None and previous.metadata.created_at:
            created_at = previous.metadata.created_at
        metadata = DocumentMetadata(created_at=created_at, updated_at=now, format_version=FORMAT_VERSION)
    document = Document(
        id=document_id,
        editor_kind=editor_kind,
        canvas_size=CanvasSize.parse(canvas_size),
        background_color=background_color,
        background_image_uri=background_image_uri,
        template_key=template_key,
        objects=objects,
        metadata=metadata,
    )
    LOGGER.debug("built document %s with %d objects", document_id, len(objects))
    return document


def build_document_without_metadata(scene: LiveScene, **kwargs: object) -> Document:
    kwargs.pop("include_metadata", None)
    return build_document(scene, include_metadata=False, **kwargs)


def _paint_ordered(objects: Sequence[object]) -> list[object]:
    """Stable sort on an upstream ``zIndex`` when any object declares one."""
    items = list(objects)
    if not any(_z_index(item) is not None for item in items):
        return items
    return sorted(items, key=lambda item: _z_index(item) or 0.0)


def _z_index(live_object: object) -> float | None:
    if isinstance(live_object, Mapping):
        raw = live_object.get("zIndex")
    else:
        raw = getattr(live_object, "zIndex", None)
    return finite_float(raw)
