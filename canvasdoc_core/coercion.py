from __future__ import annotations

import math
from typing import Callable, Iterable, Mapping

from .diagnostics import DiagnosticsCollector


class FieldReader:
    """Tolerant typed reads over a loosely typed source.

    ``get`` returns the raw value for a field name, or ``None`` when it is
    absent. Absent values quietly become the supplied default; present but
    unusable values also become the default and are reported as
    ``malformed_input`` when a collector is attached.
    """

    def __init__(
        self,
        get: Callable[[str], object],
        *,
        object_id: str | None = None,
        diagnostics: DiagnosticsCollector | None = None,
    ) -> None:
        self._get = get
        self.object_id = object_id
        self._diagnostics = diagnostics

    @classmethod
    def over_mapping(
        cls,
        payload: Mapping[str, object],
        *,
        object_id: str | None = None,
        diagnostics: DiagnosticsCollector | None = None,
    ) -> "FieldReader":
        return cls(payload.get, object_id=object_id, diagnostics=diagnostics)

    def raw(self, name: str) -> object:
        return self._get(name)

    def report(self, name: str, raw: object) -> None:
        if self._diagnostics is not None:
            self._diagnostics.malformed(self.object_id, name, raw)

    def number(self, name: str, default: float) -> float:
        raw = self._get(name)
        if raw is None:
            return default
        value = finite_float(raw)
        if value is None:
            self.report(name, raw)
            return default
        return value

    def text(self, name: str, default: str) -> str:
        raw = self._get(name)
        if raw is None:
            return default
        if isinstance(raw, str):
            return raw
        if isinstance(raw, (int, float)) and not isinstance(raw, bool):
            return _number_text(raw)
        self.report(name, raw)
        return default

    def optional_text(self, name: str) -> str | None:
        raw = self._get(name)
        if raw is None:
            return None
        if isinstance(raw, str):
            return raw
        self.report(name, raw)
        return None

    def color(self, name: str, default: str) -> str:
        """Colors stay strings; gradients and patterns fall back to the default."""
        raw = self._get(name)
        if raw is None:
            return default
        if isinstance(raw, str) and raw.strip():
            return raw.strip()
        if isinstance(raw, str):
            return default
        self.report(name, raw)
        return default

    def flag(self, name: str, default: bool) -> bool:
        raw = self._get(name)
        if raw is None:
            return default
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, (int, float)) and raw in (0, 1):
            return bool(raw)
        self.report(name, raw)
        return default

    def choice(self, name: str, default: str, allowed: Iterable[str]) -> str:
        raw = self._get(name)
        if raw is None:
            return default
        if isinstance(raw, str) and raw in tuple(allowed):
            return raw
        self.report(name, raw)
        return default

    def number_list(self, name: str) -> tuple[float, ...] | None:
        raw = self._get(name)
        if raw is None:
            return None
        if not isinstance(raw, (list, tuple)):
            self.report(name, raw)
            return None
        values: list[float] = []
        for item in raw:
            value = finite_float(item)
            if value is None or value < 0:
                self.report(name, raw)
                return None
            values.append(value)
        return tuple(values)


def finite_float(raw: object) -> float | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        try:
            value = float(raw.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(value):
        return None
    return value


def _number_text(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
