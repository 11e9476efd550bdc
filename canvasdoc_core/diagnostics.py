from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterator, Literal


LOGGER = logging.getLogger(__name__)

DiagnosticKind = Literal[
    "malformed_input",
    "resource_unavailable",
    "budget_exceeded",
    "unknown_drawable_kind",
]

DIAGNOSTIC_KINDS: tuple[str, ...] = (
    "malformed_input",
    "resource_unavailable",
    "budget_exceeded",
    "unknown_drawable_kind",
)


@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    message: str
    object_id: str | None = None

    def __post_init__(self) -> None:
        if self.kind not in DIAGNOSTIC_KINDS:
            raise ValueError(f"unsupported diagnostic kind: {self.kind}")

    def to_dict(self) -> dict[str, object]:
        return {"kind": self.kind, "message": self.message, "objectId": self.object_id}


class DiagnosticsCollector:
    """Accumulates non-fatal degradations for one document operation.

    Library code never raises for these; it records them here and keeps
    going. ``unknown_drawable_kind`` is kept to a single entry per collector.
    """

    def __init__(self) -> None:
        self._items: list[Diagnostic] = []
        self._unknown_kind_reported = False

    def malformed(self, object_id: str | None, field_name: str, raw: object) -> None:
        message = f"field `{field_name}` had malformed value {_preview(raw)}; canonical default applied"
        LOGGER.debug("object %s: %s", object_id, message)
        self._items.append(Diagnostic("malformed_input", message, object_id))

    def resource_unavailable(self, object_id: str | None, reason: str) -> None:
        LOGGER.warning("object %s: resource unavailable: %s", object_id, reason)
        self._items.append(Diagnostic("resource_unavailable", reason, object_id))

    def budget_exceeded(self, result_size: int, budget_bytes: int) -> None:
        message = f"smallest tier is {result_size} bytes, over the {budget_bytes} byte budget"
        LOGGER.warning(message)
        self._items.append(Diagnostic("budget_exceeded", message))

    def unknown_kind(self, object_id: str | None, kind: str) -> None:
        if self._unknown_kind_reported:
            LOGGER.debug("object %s: unknown kind `%s` not painted", object_id, kind)
            return
        self._unknown_kind_reported = True
        message = f"unknown drawable kind `{kind}` is not painted"
        LOGGER.warning("object %s: %s", object_id, message)
        self._items.append(Diagnostic("unknown_drawable_kind", message, object_id))

    def extend(self, diagnostics: "DiagnosticsCollector | tuple[Diagnostic, ...]") -> None:
        for item in diagnostics:
            if item.kind == "unknown_drawable_kind":
                if self._unknown_kind_reported:
                    continue
                self._unknown_kind_reported = True
            self._items.append(item)

    @property
    def items(self) -> tuple[Diagnostic, ...]:
        return tuple(self._items)

    def of_kind(self, kind: str) -> tuple[Diagnostic, ...]:
        return tuple(item for item in self._items if item.kind == kind)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(tuple(self._items))

    def __len__(self) -> int:
        return len(self._items)


def _preview(raw: object, limit: int = 48) -> str:
    text = repr(raw)
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
