from __future__ import annotations

import math
from typing import Sequence

import torch

from .geometry import Point
from .paint import MITER_LIMIT


Box = tuple[int, int, int, int]


class CoverageGrid:
    """Boolean coverage over a clipped device-space box, sampled at pixel centres."""

    def __init__(self, box: Box) -> None:
        x0, y0, x1, y1 = box
        self.box = box
        self._xs = torch.arange(x0, x1, dtype=torch.float64) + 0.5
        self._ys = torch.arange(y0, y1, dtype=torch.float64) + 0.5
        self.mask = torch.zeros((y1 - y0, x1 - x0), dtype=torch.bool)

    def window(self, x_lo: float, y_lo: float, x_hi: float, y_hi: float):
        """Sub-grid covering a device-space rectangle, or ``None`` when disjoint."""
        x0, y0, x1, y1 = self.box
        c0 = max(0, int(math.floor(x_lo)) - x0)
        c1 = min(x1 - x0, int(math.ceil(x_hi)) - x0 + 1)
        r0 = max(0, int(math.floor(y_lo)) - y0)
        r1 = min(y1 - y0, int(math.ceil(y_hi)) - y0 + 1)
        if c1 <= c0 or r1 <= r0:
            return None
        gx = self._xs[c0:c1].unsqueeze(0).expand(r1 - r0, c1 - c0)
        gy = self._ys[r0:r1].unsqueeze(1).expand(r1 - r0, c1 - c0)
        return slice(r0, r1), slice(c0, c1), gx, gy

    def add(self, rows: slice, cols: slice, piece: torch.Tensor) -> None:
        view = self.mask[rows, cols]
        view |= piece


def clip_box(points: Sequence[Point], width: int, height: int, pad: float = 0.0) -> Box | None:
    if not points:
        return None
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    x0 = max(0, int(math.floor(min(xs) - pad)))
    y0 = max(0, int(math.floor(min(ys) - pad)))
    x1 = min(width, int(math.ceil(max(xs) + pad)) + 1)
    y1 = min(height, int(math.ceil(max(ys) + pad)) + 1)
    if x1 <= x0 or y1 <= y0:
        return None
    return (x0, y0, x1, y1)


def fill_coverage(polygons: Sequence[Sequence[Point]], width: int, height: int) -> CoverageGrid | None:
    """Non-zero winding fill of device-space polygons; open ones are closed implicitly."""
    polygons = [list(poly) for poly in polygons if len(poly) >= 3]
    box = clip_box([p for poly in polygons for p in poly], width, height)
    if box is None:
        return None
    grid = CoverageGrid(box)
    x0, y0, x1, y1 = box
    winding = torch.zeros(grid.mask.shape, dtype=torch.int32)
    for poly in polygons:
        for (ax, ay), (bx, by) in zip(poly, poly[1:] + poly[:1]):
            if ay == by:
                continue
            rows_cols = grid.window(x0, min(ay, by), x1 - 1, max(ay, by))
            if rows_cols is None:
                continue
            rows, cols, gx, gy = rows_cols
            cross = (bx - ax) * (gy - ay) - (gx - ax) * (by - ay)
            if ay < by:
                hit = (gy >= ay) & (gy < by) & (cross > 0)
                winding[rows, cols] += hit.to(torch.int32)
            else:
                hit = (gy >= by) & (gy < ay) & (cross < 0)
                winding[rows, cols] -= hit.to(torch.int32)
    grid.mask = winding != 0
    return grid


def stroke_coverage(
    polylines: Sequence[tuple[Sequence[Point], bool]],
    line_width: float,
    cap: str,
    join: str,
    width: int,
    height: int,
) -> CoverageGrid | None:
    """Stroke outline of device-space polylines: segment bodies, caps and joins."""
    hw = line_width / 2.0
    if hw <= 0:
        return None
    pad = hw * (MITER_LIMIT if join == "miter" else 1.0) + 1.0
    box = clip_box([p for pts, _ in polylines for p in pts], width, height, pad=pad)
    if box is None:
        return None
    grid = CoverageGrid(box)
    for points, closed in polylines:
        pts = _dedupe(points)
        if closed and len(pts) > 2 and pts[0] == pts[-1]:
            pts = pts[:-1]
        if len(pts) == 1:
            if not closed and cap != "butt":
                _add_cap_dot(grid, pts[0], hw, cap)
            continue
        if len(pts) < 2:
            continue
        segments = list(zip(pts, pts[1:]))
        if closed:
            segments.append((pts[-1], pts[0]))
        last = len(segments) - 1
        for index, (a, b) in enumerate(segments):
            start_cap = cap if not closed and index == 0 else "butt"
            end_cap = cap if not closed and index == last else "butt"
            _add_segment(grid, a, b, hw, start_cap, end_cap)
        vertices = range(len(pts)) if closed else range(1, len(pts) - 1)
        for i in vertices:
            prev_pt = pts[i - 1]
            next_pt = pts[(i + 1) % len(pts)]
            _add_join(grid, prev_pt, pts[i], next_pt, hw, join)
    return grid


def _add_segment(grid: CoverageGrid, a: Point, b: Point, hw: float, start_cap: str, end_cap: str) -> None:
    ax, ay = a
    bx, by = b
    dx, dy = bx - ax, by - ay
    length = math.hypot(dx, dy)
    if length <= 1e-12:
        return
    ext = hw * math.sqrt(2.0)
    window = grid.window(min(ax, bx) - ext, min(ay, by) - ext, max(ax, bx) + ext, max(ay, by) + ext)
    if window is not None:
        rows, cols, gx, gy = window
        t = ((gx - ax) * dx + (gy - ay) * dy) / (length * length)
        lo = -hw / length if start_cap == "square" else 0.0
        hi = 1.0 + (hw / length if end_cap == "square" else 0.0)
        perp = torch.abs((gx - ax) * dy - (gy - ay) * dx) / length
        grid.add(rows, cols, (t >= lo) & (t <= hi) & (perp <= hw))
    if start_cap == "round":
        _add_disc(grid, a, hw)
    if end_cap == "round":
        _add_disc(grid, b, hw)


def _add_cap_dot(grid: CoverageGrid, point: Point, hw: float, cap: str) -> None:
    if cap == "round":
        _add_disc(grid, point, hw)
        return
    square = [(point[0] - hw, point[1] - hw), (point[0] + hw, point[1] - hw), (point[0] + hw, point[1] + hw), (point[0] - hw, point[1] + hw)]
    _add_convex(grid, square)


def _add_join(grid: CoverageGrid, prev_pt: Point, vertex: Point, next_pt: Point, hw: float, join: str) -> None:
    if join == "round":
        _add_disc(grid, vertex, hw)
        return
    d1 = _unit(vertex[0] - prev_pt[0], vertex[1] - prev_pt[1])
    d2 = _unit(next_pt[0] - vertex[0], next_pt[1] - vertex[1])
    if d1 is None or d2 is None:
        return
    cross = d1[0] * d2[1] - d1[1] * d2[0]
    if abs(cross) < 1e-12:
        return
    side = -1.0 if cross > 0 else 1.0
    n1 = (-d1[1] * side, d1[0] * side)
    n2 = (-d2[1] * side, d2[0] * side)
    p1 = (vertex[0] + n1[0] * hw, vertex[1] + n1[1] * hw)
    p2 = (vertex[0] + n2[0] * hw, vertex[1] + n2[1] * hw)
    if join == "miter":
        bisector = _unit(n1[0] + n2[0], n1[1] + n2[1])
        if bisector is not None:
            cos_half = bisector[0] * n1[0] + bisector[1] * n1[1]
            if cos_half > 1e-12 and 1.0 / cos_half <= MITER_LIMIT:
                reach = hw / cos_half
                tip = (vertex[0] + bisector[0] * reach, vertex[1] + bisector[1] * reach)
                _add_convex(grid, [vertex, p1, tip, p2])
                return
    _add_convex(grid, [vertex, p1, p2])


def _add_disc(grid: CoverageGrid, center: Point, radius: float) -> None:
    cx, cy = center
    window = grid.window(cx - radius, cy - radius, cx + radius, cy + radius)
    if window is None:
        return
    rows, cols, gx, gy = window
    grid.add(rows, cols, (gx - cx) ** 2 + (gy - cy) ** 2 <= radius * radius)


def _add_convex(grid: CoverageGrid, polygon: list[Point]) -> None:
    xs = [p[0] for p in polygon]
    ys = [p[1] for p in polygon]
    window = grid.window(min(xs), min(ys), max(xs), max(ys))
    if window is None:
        return
    rows, cols, gx, gy = window
    area = 0.0
    for (ax, ay), (bx, by) in zip(polygon, polygon[1:] + polygon[:1]):
        area += ax * by - bx * ay
    if abs(area) < 1e-12:
        return
    sign = 1.0 if area > 0 else -1.0
    inside = torch.ones(gx.shape, dtype=torch.bool)
    for (ax, ay), (bx, by) in zip(polygon, polygon[1:] + polygon[:1]):
        inside &= sign * ((bx - ax) * (gy - ay) - (by - ay) * (gx - ax)) >= 0
    grid.add(rows, cols, inside)


def _unit(dx: float, dy: float) -> tuple[float, float] | None:
    length = math.hypot(dx, dy)
    if length <= 1e-12:
        return None
    return (dx / length, dy / length)


def _dedupe(points: Sequence[Point]) -> list[Point]:
    out: list[Point] = []
    for point in points:
        if not out or math.hypot(point[0] - out[-1][0], point[1] - out[-1][1]) > 1e-9:
            out.append((float(point[0]), float(point[1])))
    return out
