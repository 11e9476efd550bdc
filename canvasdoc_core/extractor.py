from __future__ import annotations

import logging
import re
import secrets
from typing import Callable, Mapping

from .coercion import FieldReader, finite_float
from .diagnostics import DiagnosticsCollector
from .records import (
    ANCHOR_X_VALUES,
    ANCHOR_Y_VALUES,
    STROKE_CAPS,
    STROKE_JOINS,
    TEXT_ALIGNS,
    BaseRecord,
    CircleRecord,
    DrawableFields,
    DrawableRecord,
    EllipseRecord,
    GroupRecord,
    ImageRecord,
    LineRecord,
    PathCommand,
    PathRecord,
    PolygonRecord,
    RectRecord,
    TextRecord,
    TriangleRecord,
    parse_points,
    parse_shadow,
)


LOGGER = logging.getLogger(__name__)

TEXT_TYPES = frozenset({"text", "i-text", "textbox"})

# Editor path letters and the model op each one maps to.
_PATH_LETTERS: dict[str, str] = {
    "M": "moveTo",
    "L": "lineTo",
    "C": "cubicBezierTo",
    "Q": "quadraticBezierTo",
    "Z": "close",
}
_OP_LETTERS = {op: letter for letter, op in _PATH_LETTERS.items()}
_PATH_TOKEN = re.compile(r"[A-Za-z]|[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_PATH_ARITY = {"M": 2, "L": 2, "C": 6, "Q": 4, "Z": 0, "H": 1, "V": 1}


def new_object_id() -> str:
    return f"obj_{secrets.token_hex(6)}"


def extract_record(
    live_object: object,
    *,
    diagnostics: DiagnosticsCollector | None = None,
) -> DrawableRecord:
    """Turn one live editor object into a record. Never raises on bad input."""
    get = _live_getter(live_object)
    raw_id = get("id")
    object_id = str(raw_id) if isinstance(raw_id, (str, int)) and str(raw_id).strip() else new_object_id()
    reader = FieldReader(get, object_id=object_id, diagnostics=diagnostics)
    raw_type = get("type")
    editor_type = raw_type.strip() if isinstance(raw_type, str) and raw_type.strip() else "unknown"
    common = _common_fields(reader, object_id)

    if editor_type in TEXT_TYPES:
        return TextRecord(
            **common,
            font_size_px=_positive(reader, "fontSize", 48.0),
            font_family=reader.text("fontFamily", "Arial"),
            font_weight=reader.text("fontWeight", "normal"),
            text_align=reader.choice("textAlign", "left", TEXT_ALIGNS),
            content=reader.text("text", ""),
            char_spacing=reader.number("charSpacing", 0.0),
            line_height_multiplier=_positive(reader, "lineHeight", 1.16),
        )
    if editor_type == "image":
        return ImageRecord(
            **common,
            source_uri=_image_source(live_object, reader),
            cross_origin_policy=reader.optional_text("crossOrigin"),
        )
    if editor_type == "rect":
        return RectRecord(**common, rx=_non_negative(reader, "rx"), ry=_non_negative(reader, "ry"))
    if editor_type == "circle":
        return CircleRecord(**common, radius=_non_negative(reader, "radius"))
    if editor_type == "ellipse":
        return EllipseRecord(**common, rx=_non_negative(reader, "rx"), ry=_non_negative(reader, "ry"))
    if editor_type == "triangle":
        return TriangleRecord(**common)
    if editor_type == "polygon":
        return PolygonRecord(**common, points=parse_points(get("points"), reader, "points"))
    if editor_type == "path":
        return PathRecord(**common, commands=parse_editor_path(get("path"), reader))
    if editor_type == "line":
        return LineRecord(
            **common,
            x1=reader.number("x1", 0.0),
            y1=reader.number("y1", 0.0),
            x2=reader.number("x2", 0.0),
            y2=reader.number("y2", 0.0),
            dash_pattern=reader.number_list("strokeDashArray"),
        )
    if editor_type == "group":
        return GroupRecord(**common, children=_extract_children(get("objects"), reader, diagnostics))
    LOGGER.debug("object %s: unrecognized editor type `%s` kept as base record", object_id, editor_type)
    return BaseRecord(**common, kind=editor_type)


def live_object_from_record(record: DrawableFields) -> dict[str, object]:
    """Inverse of ``extract_record``: the editor-shaped object for a record."""
    if isinstance(record, TextRecord):
        editor_type = "text"
    else:
        editor_type = record.kind
    live: dict[str, object] = {
        "type": editor_type,
        "id": record.id,
        "left": record.x,
        "top": record.y,
        "width": record.width,
        "height": record.height,
        "fill": record.fill_color,
        "stroke": record.stroke_color,
        "scaleX": record.scale_x,
        "scaleY": record.scale_y,
        "angle": record.rotation_degrees,
        "opacity": record.opacity,
        "strokeWidth": record.stroke_width,
        "strokeLineCap": record.stroke_cap,
        "strokeLineJoin": record.stroke_join,
        "shadow": None if record.shadow is None else record.shadow.to_dict(),
        "isBackground": record.is_background_layer,
        "originX": record.anchor_x,
        "originY": record.anchor_y,
    }
    if isinstance(record, TextRecord):
        live.update(
            fontSize=record.font_size_px,
            fontFamily=record.font_family,
            fontWeight=record.font_weight,
            textAlign=record.text_align,
            text=record.content,
            charSpacing=record.char_spacing,
            lineHeight=record.line_height_multiplier,
        )
    elif isinstance(record, ImageRecord):
        live.update(src=record.source_uri, crossOrigin=record.cross_origin_policy)
    elif isinstance(record, (RectRecord, EllipseRecord)):
        live.update(rx=record.rx, ry=record.ry)
    elif isinstance(record, CircleRecord):
        live["radius"] = record.radius
    elif isinstance(record, PolygonRecord):
        live["points"] = [{"x": x, "y": y} for x, y in record.points]
    elif isinstance(record, PathRecord):
        live["path"] = [[_OP_LETTERS[command.op], *command.args] for command in record.commands]
    elif isinstance(record, LineRecord):
        live.update(
            x1=record.x1,
            y1=record.y1,
            x2=record.x2,
            y2=record.y2,
            strokeDashArray=None if record.dash_pattern is None else list(record.dash_pattern),
        )
    elif isinstance(record, GroupRecord):
        live["objects"] = [live_object_from_record(child) for child in record.children]
    return live


def parse_editor_path(raw: object, reader: FieldReader | None = None) -> tuple[PathCommand, ...]:
    """Parse editor path data: ``[["M", x, y], ...]`` arrays or an SVG path string.

    Absolute ``M L C Q Z H V`` are understood; ``H``/``V`` become ``lineTo``.
    Relative or arc commands are dropped and reported.
    """
    if raw is None:
        return ()
    if isinstance(raw, str):
        segments = _tokenize_path(raw, reader)
    elif isinstance(raw, (list, tuple)):
        segments = []
        for item in raw:
            if isinstance(item, (list, tuple)) and item and isinstance(item[0], str):
                segments.append((item[0], list(item[1:])))
            elif reader is not None:
                reader.report("path", item)
    else:
        if reader is not None:
            reader.report("path", raw)
        return ()

    commands: list[PathCommand] = []
    cursor = (0.0, 0.0)
    for letter, raw_args in segments:
        args = [finite_float(value) for value in raw_args]
        arity = _PATH_ARITY.get(letter)
        if arity is None or len(args) != arity or any(value is None for value in args):
            if reader is not None:
                reader.report("path", [letter, *raw_args])
            continue
        if letter == "H":
            letter, args = "L", [args[0], cursor[1]]
        elif letter == "V":
            letter, args = "L", [cursor[0], args[0]]
        commands.append(PathCommand(op=_PATH_LETTERS[letter], args=tuple(args)))
        if len(args) >= 2:
            cursor = (args[-2], args[-1])
    return tuple(commands)


def _tokenize_path(raw: str, reader: FieldReader | None) -> list[tuple[str, list[object]]]:
    segments: list[tuple[str, list[object]]] = []
    letter: str | None = None
    args: list[object] = []
    for token in _PATH_TOKEN.findall(raw):
        if token.isalpha():
            if letter is not None:
                segments.extend(_split_repeats(letter, args))
            letter, args = token, []
        elif letter is None:
            if reader is not None:
                reader.report("path", raw)
            return []
        else:
            args.append(float(token))
    if letter is not None:
        segments.extend(_split_repeats(letter, args))
    return segments


def _split_repeats(letter: str, args: list[object]) -> list[tuple[str, list[object]]]:
    arity = _PATH_ARITY.get(letter)
    if not arity or len(args) <= arity or len(args) % arity:
        return [(letter, args)]
    chunks = [args[i : i + arity] for i in range(0, len(args), arity)]
    # Extra coordinate pairs after a moveto are implicit linetos.
    follow = "L" if letter == "M" else letter
    return [(letter, chunks[0])] + [(follow, chunk) for chunk in chunks[1:]]


def _common_fields(reader: FieldReader, object_id: str) -> dict[str, object]:
    opacity = reader.number("opacity", 1.0)
    if not 0.0 <= opacity <= 1.0:
        reader.report("opacity", opacity)
        opacity = min(max(opacity, 0.0), 1.0)
    return {
        "id": object_id,
        "x": reader.number("left", 0.0),
        "y": reader.number("top", 0.0),
        "width": reader.number("width", 0.0),
        "height": reader.number("height", 0.0),
        "fill_color": reader.color("fill", "#000000"),
        "stroke_color": reader.color("stroke", "transparent"),
        "scale_x": reader.number("scaleX", 1.0),
        "scale_y": reader.number("scaleY", 1.0),
        "rotation_degrees": reader.number("angle", 0.0),
        "opacity": opacity,
        "stroke_width": _non_negative(reader, "strokeWidth"),
        "stroke_cap": reader.choice("strokeLineCap", "butt", STROKE_CAPS),
        "stroke_join": reader.choice("strokeLineJoin", "miter", STROKE_JOINS),
        "shadow": parse_shadow(reader.raw("shadow"), reader),
        "is_background_layer": reader.flag("isBackground", False),
        "anchor_x": reader.choice("originX", "left", ANCHOR_X_VALUES),
        "anchor_y": reader.choice("originY", "top", ANCHOR_Y_VALUES),
    }


def _extract_children(
    raw: object,
    reader: FieldReader,
    diagnostics: DiagnosticsCollector | None,
) -> tuple[DrawableRecord, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        reader.report("objects", raw)
        return ()
    return tuple(extract_record(child, diagnostics=diagnostics) for child in raw)


def _image_source(live_object: object, reader: FieldReader) -> str:
    source = reader.raw("src")
    if source is None:
        getter = getattr(live_object, "getSrc", None)
        if callable(getter):
            source = getter()
    if source is None:
        return ""
    if isinstance(source, str):
        return source
    reader.report("src", source)
    return ""


def _positive(reader: FieldReader, name: str, default: float) -> float:
    value = reader.number(name, default)
    if value <= 0:
        reader.report(name, value)
        return default
    return value


def _non_negative(reader: FieldReader, name: str) -> float:
    value = reader.number(name, 0.0)
    if value < 0:
        reader.report(name, value)
        return 0.0
    return value


def _live_getter(live_object: object) -> Callable[[str], object]:
    if isinstance(live_object, Mapping):
        return live_object.get

    def get(name: str) -> object:
        value = getattr(live_object, name, None)
        if callable(value):
            return None
        return value

    return get
