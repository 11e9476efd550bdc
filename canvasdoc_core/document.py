from __future__ import annotations

from dataclasses import dataclass
import json
import re
from typing import Iterator, Mapping

from .diagnostics import DiagnosticsCollector
from .records import DrawableRecord, iter_records, record_to_dict, records_from_list


FORMAT_VERSION = "1.0.0"
DEFAULT_BACKGROUND_COLOR = "#ffffff"

_SIZE_PATTERN = re.compile(r"^\s*(\d+)\s*[xX×]\s*(\d+)\s*$")


@dataclass(frozen=True)
class CanvasSize:
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError("canvas width/height must be > 0")

    @classmethod
    def parse(cls, raw: object) -> "CanvasSize":
        """Accept ``"1080x1350"``, ``{"width", "height"}`` or a ``(w, h)`` pair."""
        if isinstance(raw, CanvasSize):
            return raw
        if isinstance(raw, str):
            match = _SIZE_PATTERN.match(raw)
            if match is None:
                raise ValueError(f"canvas size must look like WIDTHxHEIGHT, got `{raw}`")
            return cls(width=int(match.group(1)), height=int(match.group(2)))
        if isinstance(raw, Mapping):
            return cls(width=_as_int(raw.get("width"), "canvasSize.width"), height=_as_int(raw.get("height"), "canvasSize.height"))
        if isinstance(raw, (list, tuple)) and len(raw) == 2:
            return cls(width=_as_int(raw[0], "canvasSize[0]"), height=_as_int(raw[1], "canvasSize[1]"))
        raise TypeError("canvasSize must be a WxH string, an object or a pair")

    def to_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


@dataclass(frozen=True)
class DocumentMetadata:
    created_at: str | None = None
    updated_at: str | None = None
    format_version: str = FORMAT_VERSION

    def to_dict(self, *, omit_defaults: bool = False) -> dict[str, object]:
        payload: dict[str, object] = {
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "formatVersion": self.format_version,
        }
        if omit_defaults:
            defaults = DocumentMetadata()
            payload = {
                key: value
                for key, value, default in (
                    ("createdAt", self.created_at, defaults.created_at),
                    ("updatedAt", self.updated_at, defaults.updated_at),
                    ("formatVersion", self.format_version, defaults.format_version),
                )
                if value != default
            }
        return payload

    @staticmethod
    def from_dict(payload: Mapping[str, object]) -> "DocumentMetadata":
        return DocumentMetadata(
            created_at=_optional_str(payload.get("createdAt")),
            updated_at=_optional_str(payload.get("updatedAt")),
            format_version=str(payload.get("formatVersion") or FORMAT_VERSION),
        )


@dataclass(frozen=True)
class Document:
    """Immutable snapshot of a canvas design.

    ``objects`` order is the paint order: index 0 is painted first.
    """

    id: str
    editor_kind: str
    canvas_size: CanvasSize
    background_color: str = DEFAULT_BACKGROUND_COLOR
    background_image_uri: str | None = None
    template_key: str | None = None
    objects: tuple[DrawableRecord, ...] = ()
    metadata: DocumentMetadata | None = None

    def __post_init__(self) -> None:
        if not self.id.strip():
            raise ValueError("document id must be non-empty")
        if not self.editor_kind.strip():
            raise ValueError("editor_kind must be non-empty")
        if not isinstance(self.objects, tuple):
            raise TypeError("objects must be a tuple of records")

    def iter_records(self) -> Iterator[DrawableRecord]:
        return iter_records(self.objects)

    def envelope_to_dict(self, *, omit_defaults: bool = False) -> dict[str, object]:
        """Everything except ``objects``."""
        payload: dict[str, object] = {
            "id": self.id,
            "editorKind": self.editor_kind,
            "canvasSize": self.canvas_size.to_dict(),
        }
        if not omit_defaults or self.background_color != DEFAULT_BACKGROUND_COLOR:
            payload["backgroundColor"] = self.background_color
        if not omit_defaults or self.background_image_uri is not None:
            payload["backgroundImageUri"] = self.background_image_uri
        if not omit_defaults or self.template_key is not None:
            payload["templateKey"] = self.template_key
        if self.metadata is not None:
            payload["metadata"] = self.metadata.to_dict(omit_defaults=omit_defaults)
        elif not omit_defaults:
            payload["metadata"] = None
        return payload

    def to_dict(self, *, omit_defaults: bool = False) -> dict[str, object]:
        payload = self.envelope_to_dict(omit_defaults=omit_defaults)
        payload["objects"] = [record_to_dict(record, omit_defaults=omit_defaults) for record in self.objects]
        return payload

    def canonical_json(self, *, omit_defaults: bool = False) -> bytes:
        return canonical_json_bytes(self.to_dict(omit_defaults=omit_defaults))

    @staticmethod
    def from_dict(
        payload: Mapping[str, object],
        *,
        diagnostics: DiagnosticsCollector | None = None,
    ) -> "Document":
        """Rebuild a document; records degrade per field, the envelope must be valid."""
        if not isinstance(payload, Mapping):
            raise TypeError("document must be an object")
        objects_raw = payload.get("objects", [])
        if not isinstance(objects_raw, list):
            raise TypeError("objects must be a list")
        metadata_raw = payload.get("metadata")
        if metadata_raw is not None and not isinstance(metadata_raw, Mapping):
            raise TypeError("metadata must be an object")
        background_color = payload.get("backgroundColor")
        return Document(
            id=str(payload["id"]),
            editor_kind=str(payload["editorKind"]),
            canvas_size=CanvasSize.parse(payload.get("canvasSize")),
            background_color=(
                background_color if isinstance(background_color, str) and background_color.strip() else DEFAULT_BACKGROUND_COLOR
            ),
            background_image_uri=_optional_str(payload.get("backgroundImageUri")),
            template_key=_optional_str(payload.get("templateKey")),
            objects=records_from_list(objects_raw, diagnostics=diagnostics),
            metadata=None if metadata_raw is None else DocumentMetadata.from_dict(metadata_raw),
        )


def canonical_json_bytes(payload: object) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _optional_str(raw: object) -> str | None:
    if raw is None:
        return None
    return str(raw)


def _as_int(raw: object, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        raise TypeError(f"{field_name} must be a number")
    value = float(raw)
    if not value.is_integer():
        raise ValueError(f"{field_name} must be a whole number of pixels")
    return int(value)
