from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Protocol, Sequence

from .document import Document
from .extractor import live_object_from_record


class LiveScene(Protocol):
    def get_objects(self) -> Sequence[object]:
        ...


@dataclass
class DictScene:
    """Headless stand-in for the editor's scene, holding plain editor-shaped dicts."""

    objects: list[object] = field(default_factory=list)
    background: str | None = None

    def get_objects(self) -> Sequence[object]:
        return tuple(self.objects)

    def add(self, live_object: object) -> None:
        self.objects.append(live_object)

    @classmethod
    def from_editor_json(cls, payload: Mapping[str, object]) -> "DictScene":
        """Wrap an editor JSON export: ``{"objects": [...], "background": ...}``."""
        if not isinstance(payload, Mapping):
            raise TypeError("editor export must be an object")
        objects = payload.get("objects", [])
        if not isinstance(objects, list):
            raise TypeError("editor export objects must be a list")
        background = payload.get("background")
        return cls(objects=list(objects), background=background if isinstance(background, str) else None)

    @classmethod
    def from_document(cls, document: Document) -> "DictScene":
        return cls(
            objects=[live_object_from_record(record) for record in document.objects],
            background=document.background_color,
        )
