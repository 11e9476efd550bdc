from __future__ import annotations

from dataclasses import dataclass, fields
import logging
from typing import ClassVar, Literal, Mapping, Union

from .coercion import FieldReader, finite_float
from .diagnostics import DiagnosticsCollector


LOGGER = logging.getLogger(__name__)

AnchorX = Literal["left", "center", "right"]
AnchorY = Literal["top", "center", "bottom"]
StrokeCap = Literal["butt", "round", "square"]
StrokeJoin = Literal["miter", "round", "bevel"]
TextAlign = Literal["left", "center", "right"]
PathOp = Literal["moveTo", "lineTo", "cubicBezierTo", "quadraticBezierTo", "close"]

ANCHOR_X_VALUES: tuple[str, ...] = ("left", "center", "right")
ANCHOR_Y_VALUES: tuple[str, ...] = ("top", "center", "bottom")
STROKE_CAPS: tuple[str, ...] = ("butt", "round", "square")
STROKE_JOINS: tuple[str, ...] = ("miter", "round", "bevel")
TEXT_ALIGNS: tuple[str, ...] = ("left", "center", "right")

PATH_OP_ARITY: dict[str, int] = {
    "moveTo": 2,
    "lineTo": 2,
    "cubicBezierTo": 6,
    "quadraticBezierTo": 4,
    "close": 0,
}

DEFAULT_SHADOW_COLOR = "rgba(0,0,0,0.5)"


@dataclass(frozen=True)
class Shadow:
    color: str = DEFAULT_SHADOW_COLOR
    blur: float = 0.0
    offset_x: float = 0.0
    offset_y: float = 0.0

    def __post_init__(self) -> None:
        if self.blur < 0:
            raise ValueError("shadow blur must be >= 0")

    def to_dict(self) -> dict[str, object]:
        return {
            "color": self.color,
            "blur": self.blur,
            "offsetX": self.offset_x,
            "offsetY": self.offset_y,
        }


@dataclass(frozen=True)
class PathCommand:
    op: PathOp
    args: tuple[float, ...] = ()

    def __post_init__(self) -> None:
        arity = PATH_OP_ARITY.get(self.op)
        if arity is None:
            raise ValueError(f"unsupported path op: {self.op}")
        if len(self.args) != arity:
            raise ValueError(f"path op `{self.op}` takes {arity} arguments, got {len(self.args)}")

    def to_list(self) -> list[object]:
        return [self.op, *self.args]


@dataclass(frozen=True)
class DrawableFields:
    """Fields shared by every drawable kind.

    Not instantiated directly; ``BaseRecord`` is the concrete catch-all.
    """

    id: str
    kind: str = ""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0
    fill_color: str = "#000000"
    stroke_color: str = "transparent"
    scale_x: float = 1.0
    scale_y: float = 1.0
    rotation_degrees: float = 0.0
    opacity: float = 1.0
    stroke_width: float = 0.0
    stroke_cap: StrokeCap = "butt"
    stroke_join: StrokeJoin = "miter"
    shadow: Shadow | None = None
    is_background_layer: bool = False
    anchor_x: AnchorX = "left"
    anchor_y: AnchorY = "top"

    KIND: ClassVar[str] = ""

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ValueError("record id must be non-empty")
        if self.KIND and self.kind != self.KIND:
            raise ValueError(f"{type(self).__name__} kind must be `{self.KIND}`, got `{self.kind}`")
        if not 0.0 <= self.opacity <= 1.0:
            raise ValueError("opacity must be within [0, 1]")
        if self.stroke_width < 0:
            raise ValueError("stroke_width must be >= 0")
        if self.stroke_cap not in STROKE_CAPS:
            raise ValueError(f"unsupported stroke cap: {self.stroke_cap}")
        if self.stroke_join not in STROKE_JOINS:
            raise ValueError(f"unsupported stroke join: {self.stroke_join}")
        if self.anchor_x not in ANCHOR_X_VALUES:
            raise ValueError(f"unsupported anchor_x: {self.anchor_x}")
        if self.anchor_y not in ANCHOR_Y_VALUES:
            raise ValueError(f"unsupported anchor_y: {self.anchor_y}")


@dataclass(frozen=True)
class BaseRecord(DrawableFields):
    """Record of a kind this model does not know; kept for round-trips, never painted."""

    def __post_init__(self) -> None:
        super().__post_init__()
        if not self.kind.strip():
            raise ValueError("record kind must be non-empty")


@dataclass(frozen=True)
class TextRecord(DrawableFields):
    kind: str = "text"
    font_size_px: float = 48.0
    font_family: str = "Arial"
    font_weight: str = "normal"
    text_align: TextAlign = "left"
    content: str = ""
    char_spacing: float = 0.0
    line_height_multiplier: float = 1.16

    KIND: ClassVar[str] = "text"

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.font_size_px <= 0:
            raise ValueError("font_size_px must be > 0")
        if self.text_align not in TEXT_ALIGNS:
            raise ValueError(f"unsupported text_align: {self.text_align}")
        if self.line_height_multiplier <= 0:
            raise ValueError("line_height_multiplier must be > 0")


@dataclass(frozen=True)
class ImageRecord(DrawableFields):
    kind: str = "image"
    source_uri: str = ""
    cross_origin_policy: str | None = None

    KIND: ClassVar[str] = "image"


@dataclass(frozen=True)
class RectRecord(DrawableFields):
    kind: str = "rect"
    rx: float = 0.0
    ry: float = 0.0

    KIND: ClassVar[str] = "rect"


@dataclass(frozen=True)
class CircleRecord(DrawableFields):
    kind: str = "circle"
    radius: float = 0.0

    KIND: ClassVar[str] = "circle"

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.radius < 0:
            raise ValueError("radius must be >= 0")


@dataclass(frozen=True)
class EllipseRecord(DrawableFields):
    kind: str = "ellipse"
    rx: float = 0.0
    ry: float = 0.0

    KIND: ClassVar[str] = "ellipse"

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.rx < 0 or self.ry < 0:
            raise ValueError("ellipse rx/ry must be >= 0")


@dataclass(frozen=True)
class TriangleRecord(DrawableFields):
    kind: str = "triangle"

    KIND: ClassVar[str] = "triangle"


@dataclass(frozen=True)
class PolygonRecord(DrawableFields):
    kind: str = "polygon"
    points: tuple[tuple[float, float], ...] = ()

    KIND: ClassVar[str] = "polygon"


@dataclass(frozen=True)
class PathRecord(DrawableFields):
    kind: str = "path"
    commands: tuple[PathCommand, ...] = ()

    KIND: ClassVar[str] = "path"


@dataclass(frozen=True)
class LineRecord(DrawableFields):
    kind: str = "line"
    x1: float = 0.0
    y1: float = 0.0
    x2: float = 0.0
    y2: float = 0.0
    dash_pattern: tuple[float, ...] | None = None

    KIND: ClassVar[str] = "line"


@dataclass(frozen=True)
class GroupRecord(DrawableFields):
    kind: str = "group"
    children: tuple["DrawableRecord", ...] = ()

    KIND: ClassVar[str] = "group"


DrawableRecord = Union[
    TextRecord,
    ImageRecord,
    RectRecord,
    CircleRecord,
    EllipseRecord,
    TriangleRecord,
    PolygonRecord,
    PathRecord,
    LineRecord,
    GroupRecord,
    BaseRecord,
]

SHAPE_RECORD_TYPES: tuple[type, ...] = (
    RectRecord,
    CircleRecord,
    EllipseRecord,
    TriangleRecord,
    PolygonRecord,
    PathRecord,
)

RECORD_TYPES: dict[str, type] = {
    cls.KIND: cls
    for cls in (
        TextRecord,
        ImageRecord,
        RectRecord,
        CircleRecord,
        EllipseRecord,
        TriangleRecord,
        PolygonRecord,
        PathRecord,
        LineRecord,
        GroupRecord,
    )
}

_ATTRIBUTE_CHOICES: dict[str, tuple[str, ...]] = {
    "stroke_cap": STROKE_CAPS,
    "stroke_join": STROKE_JOINS,
    "anchor_x": ANCHOR_X_VALUES,
    "anchor_y": ANCHOR_Y_VALUES,
    "text_align": TEXT_ALIGNS,
}

_COLOR_ATTRIBUTES = frozenset({"fill_color", "stroke_color"})
_POSITIVE_ATTRIBUTES = frozenset({"font_size_px", "line_height_multiplier"})
_NON_NEGATIVE_ATTRIBUTES = frozenset({"stroke_width", "radius", "rx", "ry"})


def wire_name(attribute: str) -> str:
    head, *rest = attribute.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def record_type_for(kind: str) -> type:
    return RECORD_TYPES.get(kind, BaseRecord)


def canonical_defaults(kind: str) -> dict[str, object]:
    """Wire-named default table for a kind; ``id`` has no default and is absent."""
    cls = record_type_for(kind)
    defaults: dict[str, object] = {}
    for spec in fields(cls):
        if spec.name in ("id", "kind"):
            continue
        defaults[wire_name(spec.name)] = _value_to_wire(spec.default, omit_defaults=False)
    return defaults


def record_to_dict(record: DrawableFields, *, omit_defaults: bool = False) -> dict[str, object]:
    payload: dict[str, object] = {"id": record.id, "kind": record.kind}
    for spec in fields(record):
        if spec.name in ("id", "kind"):
            continue
        value = getattr(record, spec.name)
        if omit_defaults and value == spec.default:
            continue
        payload[wire_name(spec.name)] = _value_to_wire(value, omit_defaults=omit_defaults)
    return payload


def record_from_dict(
    payload: Mapping[str, object],
    *,
    diagnostics: DiagnosticsCollector | None = None,
) -> DrawableRecord:
    """Rebuild a record, restoring the canonical default of every omitted field.

    Individual bad fields never raise; they fall back to their default. Only a
    payload that is not a mapping at all is rejected.
    """
    if not isinstance(payload, Mapping):
        raise TypeError("record must be an object")
    raw_id = payload.get("id")
    record_id = str(raw_id) if raw_id is not None and str(raw_id).strip() else "unknown"
    raw_kind = payload.get("kind")
    kind = raw_kind if isinstance(raw_kind, str) and raw_kind.strip() else "unknown"
    cls = record_type_for(kind)
    reader = FieldReader.over_mapping(payload, object_id=record_id, diagnostics=diagnostics)
    values: dict[str, object] = {"id": record_id, "kind": kind}
    for spec in fields(cls):
        if spec.name in ("id", "kind"):
            continue
        values[spec.name] = _read_attribute(reader, spec.name, spec.default, diagnostics=diagnostics)
    return cls(**values)


def records_from_list(
    items: list[object],
    *,
    diagnostics: DiagnosticsCollector | None = None,
    field_name: str = "objects",
) -> tuple[DrawableRecord, ...]:
    """Rebuild a list of records, dropping entries that are not objects."""
    records: list[DrawableRecord] = []
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            LOGGER.warning("`%s[%d]` is not an object; entry dropped", field_name, index)
            if diagnostics is not None:
                diagnostics.malformed(None, f"{field_name}[{index}]", item)
            continue
        records.append(record_from_dict(item, diagnostics=diagnostics))
    return tuple(records)


def iter_records(records: tuple[DrawableRecord, ...]):
    """Depth-first walk over records and group children, in paint order."""
    for record in records:
        yield record
        if isinstance(record, GroupRecord):
            yield from iter_records(record.children)


def parse_shadow(raw: object, reader: FieldReader | None = None, field_name: str = "shadow") -> Shadow | None:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        if reader is not None:
            reader.report(field_name, raw)
        return None
    inner = FieldReader.over_mapping(raw)
    blur = inner.number("blur", 0.0)
    color = raw.get("color")
    return Shadow(
        color=color.strip() if isinstance(color, str) and color.strip() else DEFAULT_SHADOW_COLOR,
        blur=blur if blur >= 0 else 0.0,
        offset_x=inner.number("offsetX", 0.0),
        offset_y=inner.number("offsetY", 0.0),
    )


def parse_points(raw: object, reader: FieldReader | None = None, field_name: str = "points") -> tuple[tuple[float, float], ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        if reader is not None:
            reader.report(field_name, raw)
        return ()
    points: list[tuple[float, float]] = []
    for item in raw:
        if isinstance(item, Mapping):
            x, y = finite_float(item.get("x")), finite_float(item.get("y"))
        elif isinstance(item, (list, tuple)) and len(item) == 2:
            x, y = finite_float(item[0]), finite_float(item[1])
        else:
            x = y = None
        if x is None or y is None:
            if reader is not None:
                reader.report(field_name, item)
            continue
        points.append((x, y))
    return tuple(points)


def parse_path_commands(raw: object, reader: FieldReader | None = None, field_name: str = "commands") -> tuple[PathCommand, ...]:
    """Accept ``[op, *args]`` lists or ``{"op", "args"}`` mappings in the model's op names."""
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        if reader is not None:
            reader.report(field_name, raw)
        return ()
    commands: list[PathCommand] = []
    for item in raw:
        command = _parse_path_command(item)
        if command is None:
            if reader is not None:
                reader.report(field_name, item)
            continue
        commands.append(command)
    return tuple(commands)


def _parse_path_command(item: object) -> PathCommand | None:
    if isinstance(item, Mapping):
        op = item.get("op")
        raw_args = item.get("args", ())
    elif isinstance(item, (list, tuple)) and item:
        op = item[0]
        raw_args = item[1:]
    else:
        return None
    if not isinstance(op, str) or op not in PATH_OP_ARITY or not isinstance(raw_args, (list, tuple)):
        return None
    args = tuple(finite_float(value) for value in raw_args)
    if len(args) != PATH_OP_ARITY[op] or any(value is None for value in args):
        return None
    return PathCommand(op=op, args=args)


def _read_attribute(
    reader: FieldReader,
    attribute: str,
    default: object,
    *,
    diagnostics: DiagnosticsCollector | None,
) -> object:
    name = wire_name(attribute)
    if attribute in _ATTRIBUTE_CHOICES:
        return reader.choice(name, default, _ATTRIBUTE_CHOICES[attribute])
    if attribute in _COLOR_ATTRIBUTES:
        return reader.color(name, default)
    if attribute == "shadow":
        return parse_shadow(reader.raw(name), reader, name)
    if attribute == "points":
        return parse_points(reader.raw(name), reader, name)
    if attribute == "commands":
        return parse_path_commands(reader.raw(name), reader, name)
    if attribute == "dash_pattern":
        return reader.number_list(name)
    if attribute == "children":
        return _read_children(reader, name, diagnostics=diagnostics)
    if attribute == "cross_origin_policy":
        return reader.optional_text(name)
    if isinstance(default, bool):
        return reader.flag(name, default)
    if isinstance(default, float):
        value = reader.number(name, default)
        if attribute == "opacity" and not 0.0 <= value <= 1.0:
            reader.report(name, value)
            return min(max(value, 0.0), 1.0)
        if attribute in _POSITIVE_ATTRIBUTES and value <= 0:
            reader.report(name, value)
            return default
        if attribute in _NON_NEGATIVE_ATTRIBUTES and value < 0:
            reader.report(name, value)
            return default
        return value
    if isinstance(default, str):
        return reader.text(name, default)
    raise TypeError(f"no reader for record attribute `{attribute}`")


def _read_children(
    reader: FieldReader,
    name: str,
    *,
    diagnostics: DiagnosticsCollector | None,
) -> tuple[DrawableRecord, ...]:
    raw = reader.raw(name)
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        reader.report(name, raw)
        return ()
    children: list[DrawableRecord] = []
    for item in raw:
        if not isinstance(item, Mapping):
            reader.report(name, item)
            continue
        children.append(record_from_dict(item, diagnostics=diagnostics))
    return tuple(children)


def _value_to_wire(value: object, *, omit_defaults: bool) -> object:
    if isinstance(value, Shadow):
        return value.to_dict()
    if isinstance(value, PathCommand):
        return value.to_list()
    if isinstance(value, DrawableFields):
        return record_to_dict(value, omit_defaults=omit_defaults)
    if isinstance(value, tuple):
        return [_value_to_wire(item, omit_defaults=omit_defaults) for item in value]
    return value
