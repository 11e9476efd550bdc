from __future__ import annotations

from dataclasses import dataclass, field, replace
import math
import re
from typing import Iterable

from PIL import ImageColor


RGBA = tuple[int, int, int, int]

MITER_LIMIT = 10.0

_TRANSPARENT_NAMES = frozenset({"", "none", "transparent"})
_CSS_RGBA = re.compile(
    r"^rgba?\(\s*([\d.]+)\s*,\s*([\d.]+)\s*,\s*([\d.]+)\s*(?:,\s*([\d.]+%?)\s*)?\)$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Affine:
    """Map ``p -> origin + p.x * basis_x + p.y * basis_y``.

    Transform helpers compose on the local side, matching how a 2D canvas
    context accumulates ``translate``/``rotate``/``scale`` calls.
    """

    origin: tuple[float, float] = (0.0, 0.0)
    basis_x: tuple[float, float] = (1.0, 0.0)
    basis_y: tuple[float, float] = (0.0, 1.0)

    def determinant(self) -> float:
        exx, exy = self.basis_x
        eyx, eyy = self.basis_y
        return (exx * eyy) - (exy * eyx)

    def apply(self, point: tuple[float, float]) -> tuple[float, float]:
        x, y = point
        return (
            self.origin[0] + x * self.basis_x[0] + y * self.basis_y[0],
            self.origin[1] + x * self.basis_x[1] + y * self.basis_y[1],
        )

    def apply_vector(self, vector: tuple[float, float]) -> tuple[float, float]:
        x, y = vector
        return (x * self.basis_x[0] + y * self.basis_y[0], x * self.basis_x[1] + y * self.basis_y[1])

    def apply_many(self, points: Iterable[tuple[float, float]]) -> list[tuple[float, float]]:
        return [self.apply(point) for point in points]

    def compose(self, inner: "Affine") -> "Affine":
        """``self`` after ``inner``: local points go through ``inner`` first."""
        return Affine(
            origin=self.apply(inner.origin),
            basis_x=self.apply_vector(inner.basis_x),
            basis_y=self.apply_vector(inner.basis_y),
        )

    def translate(self, dx: float, dy: float) -> "Affine":
        return self.compose(Affine(origin=(dx, dy)))

    def rotate(self, radians: float) -> "Affine":
        c, s = math.cos(radians), math.sin(radians)
        return self.compose(Affine(basis_x=(c, s), basis_y=(-s, c)))

    def scale(self, sx: float, sy: float) -> "Affine":
        return self.compose(Affine(basis_x=(sx, 0.0), basis_y=(0.0, sy)))

    def inverse(self) -> "Affine":
        det = self.determinant()
        if abs(det) < 1e-12:
            raise ValueError("affine transform is singular")
        (a, b), (c, d) = self.basis_x, self.basis_y
        inv_x = (d / det, -b / det)
        inv_y = (-c / det, a / det)
        ox, oy = self.origin
        return Affine(
            origin=(-(ox * inv_x[0] + oy * inv_y[0]), -(ox * inv_x[1] + oy * inv_y[1])),
            basis_x=inv_x,
            basis_y=inv_y,
        )

    def mean_scale(self) -> float:
        return math.sqrt(abs(self.determinant()))

    def max_scale(self) -> float:
        return max(math.hypot(*self.basis_x), math.hypot(*self.basis_y))


def parse_color(value: str | None) -> RGBA | None:
    """Parse a CSS-ish color; ``None`` means nothing should be painted.

    Raises ``ValueError`` for strings that are not colors at all.
    """
    if value is None:
        return None
    raw = value.strip()
    if raw.lower() in _TRANSPARENT_NAMES:
        return None
    match = _CSS_RGBA.match(raw)
    if match is not None:
        r, g, b = (_clamp_channel(float(part)) for part in match.group(1, 2, 3))
        alpha = match.group(4)
        if alpha is None:
            a = 255
        elif alpha.endswith("%"):
            a = _clamp_channel(float(alpha[:-1]) * 2.55)
        else:
            a = _clamp_channel(float(alpha) * 255.0)
        return (r, g, b, a)
    rgba = ImageColor.getcolor(raw, "RGBA")
    return (int(rgba[0]), int(rgba[1]), int(rgba[2]), int(rgba[3]))


def with_opacity(color: RGBA | None, opacity: float) -> RGBA | None:
    if color is None:
        return None
    alpha = int(round(color[3] * min(max(opacity, 0.0), 1.0)))
    if alpha <= 0:
        return None
    return (color[0], color[1], color[2], alpha)


@dataclass(frozen=True)
class PaintState:
    """Everything one object's paint calls read; derived per object, never mutated."""

    transform: Affine = field(default_factory=Affine)
    fill: RGBA | None = None
    stroke: RGBA | None = None
    stroke_width: float = 1.0
    line_cap: str = "butt"
    line_join: str = "miter"
    dash: tuple[float, ...] = ()
    opacity: float = 1.0

    def derive(self, **changes: object) -> "PaintState":
        return replace(self, **changes)

    def fill_color(self) -> RGBA | None:
        return with_opacity(self.fill, self.opacity)

    def stroke_color(self) -> RGBA | None:
        return with_opacity(self.stroke, self.opacity)


class PaintStack:
    """Save/restore discipline for paint state, local to one render."""

    def __init__(self, base: PaintState | None = None) -> None:
        self._states: list[PaintState] = [base or PaintState()]

    @property
    def current(self) -> PaintState:
        return self._states[-1]

    @property
    def depth(self) -> int:
        return len(self._states) - 1

    def push(self, state: PaintState) -> PaintState:
        self._states.append(state)
        return state

    def pop(self) -> PaintState:
        if len(self._states) == 1:
            raise RuntimeError("paint stack underflow")
        return self._states.pop()


def _clamp_channel(value: float) -> int:
    return int(round(min(max(value, 0.0), 255.0)))
