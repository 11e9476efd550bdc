from __future__ import annotations

import math

from canvasdoc_core.records import PathCommand


Point = tuple[float, float]
Subpath = tuple[list[Point], bool]

_MIN_ARC_SEGMENTS = 16
_MAX_ARC_SEGMENTS = 256
_MAX_CURVE_SEGMENTS = 128


def rect_subpaths(width: float, height: float, rx: float = 0.0, ry: float = 0.0, *, pixel_scale: float = 1.0) -> list[Subpath]:
    if width <= 0 or height <= 0:
        return []
    rx = min(max(rx, 0.0), width / 2.0)
    ry = min(max(ry, 0.0), height / 2.0)
    if rx <= 0 or ry <= 0:
        return [([(0.0, 0.0), (width, 0.0), (width, height), (0.0, height)], True)]
    steps = max(4, min(32, math.ceil(max(rx, ry) * pixel_scale / 2.0)))
    corners = (
        (width - rx, ry, -math.pi / 2.0),
        (width - rx, height - ry, 0.0),
        (rx, height - ry, math.pi / 2.0),
        (rx, ry, math.pi),
    )
    points: list[Point] = []
    for cx, cy, start in corners:
        for i in range(steps + 1):
            theta = start + (math.pi / 2.0) * i / steps
            points.append((cx + rx * math.cos(theta), cy + ry * math.sin(theta)))
    return [(points, True)]


def ellipse_subpaths(cx: float, cy: float, rx: float, ry: float, *, pixel_scale: float = 1.0) -> list[Subpath]:
    if rx <= 0 or ry <= 0:
        return []
    perimeter = math.pi * (3.0 * (rx + ry) - math.sqrt((3.0 * rx + ry) * (rx + 3.0 * ry)))
    steps = max(_MIN_ARC_SEGMENTS, min(_MAX_ARC_SEGMENTS, math.ceil(perimeter * pixel_scale / 4.0)))
    points = [
        (cx + rx * math.cos(2.0 * math.pi * i / steps), cy + ry * math.sin(2.0 * math.pi * i / steps))
        for i in range(steps)
    ]
    return [(points, True)]


def triangle_subpaths(width: float, height: float) -> list[Subpath]:
    if width <= 0 or height <= 0:
        return []
    return [([(0.0, height), (width / 2.0, 0.0), (width, height)], True)]


def polygon_subpaths(points: tuple[Point, ...]) -> list[Subpath]:
    if len(points) < 2:
        return []
    return [([tuple(point) for point in points], True)]


def line_subpaths(x1: float, y1: float, x2: float, y2: float) -> list[Subpath]:
    return [([(x1, y1), (x2, y2)], False)]


def path_subpaths(commands: tuple[PathCommand, ...], *, pixel_scale: float = 1.0) -> list[Subpath]:
    """Replay path commands into flattened polylines."""
    subpaths: list[Subpath] = []
    current: list[Point] = []
    start: Point = (0.0, 0.0)
    pen: Point = (0.0, 0.0)

    def flush(closed: bool) -> None:
        nonlocal current
        if len(current) >= 2:
            subpaths.append((current, closed))
        current = []

    for command in commands:
        args = command.args
        if command.op == "moveTo":
            flush(False)
            pen = start = (args[0], args[1])
            current = [pen]
        elif command.op == "lineTo":
            if not current:
                current = [pen]
            pen = (args[0], args[1])
            current.append(pen)
        elif command.op == "quadraticBezierTo":
            if not current:
                current = [pen]
            control, end = (args[0], args[1]), (args[2], args[3])
            current.extend(_quadratic(pen, control, end, pixel_scale))
            pen = end
        elif command.op == "cubicBezierTo":
            if not current:
                current = [pen]
            c1, c2, end = (args[0], args[1]), (args[2], args[3]), (args[4], args[5])
            current.extend(_cubic(pen, c1, c2, end, pixel_scale))
            pen = end
        elif command.op == "close":
            flush(True)
            pen = start
    flush(False)
    return subpaths


def dash_polyline(points: list[Point], closed: bool, pattern: tuple[float, ...]) -> list[list[Point]]:
    """Split a polyline into the 'on' runs of a dash pattern.

    Odd-length patterns repeat twice; an all-zero pattern means solid.
    """
    if not pattern or sum(pattern) <= 0:
        return [list(points) + ([points[0]] if closed and points else [])]
    if len(pattern) % 2:
        pattern = pattern + pattern
    path = list(points) + ([points[0]] if closed and points else [])
    dashes: list[list[Point]] = []
    index = 0
    remaining = pattern[0]
    on = True
    run: list[Point] = [path[0]] if path else []
    for a, b in zip(path, path[1:]):
        seg_len = math.hypot(b[0] - a[0], b[1] - a[1])
        travelled = 0.0
        while seg_len - travelled > remaining:
            travelled += remaining
            t = travelled / seg_len
            cut = (a[0] + (b[0] - a[0]) * t, a[1] + (b[1] - a[1]) * t)
            if on:
                run.append(cut)
                if len(run) >= 2:
                    dashes.append(run)
                run = []
            else:
                run = [cut]
            on = not on
            index = (index + 1) % len(pattern)
            remaining = pattern[index]
        remaining -= seg_len - travelled
        if on:
            run.append(b)
    if on and len(run) >= 2:
        dashes.append(run)
    return dashes


def _quadratic(p0: Point, p1: Point, p2: Point, pixel_scale: float) -> list[Point]:
    length = _polyline_length([p0, p1, p2]) * pixel_scale
    steps = max(4, min(_MAX_CURVE_SEGMENTS, math.ceil(length / 4.0)))
    out: list[Point] = []
    for i in range(1, steps + 1):
        t = i / steps
        mt = 1.0 - t
        out.append(
            (
                mt * mt * p0[0] + 2.0 * mt * t * p1[0] + t * t * p2[0],
                mt * mt * p0[1] + 2.0 * mt * t * p1[1] + t * t * p2[1],
            )
        )
    return out


def _cubic(p0: Point, p1: Point, p2: Point, p3: Point, pixel_scale: float) -> list[Point]:
    length = _polyline_length([p0, p1, p2, p3]) * pixel_scale
    steps = max(4, min(_MAX_CURVE_SEGMENTS, math.ceil(length / 4.0)))
    out: list[Point] = []
    for i in range(1, steps + 1):
        t = i / steps
        mt = 1.0 - t
        a, b, c, d = mt * mt * mt, 3.0 * mt * mt * t, 3.0 * mt * t * t, t * t * t
        out.append(
            (
                a * p0[0] + b * p1[0] + c * p2[0] + d * p3[0],
                a * p0[1] + b * p1[1] + c * p2[1] + d * p3[1],
            )
        )
    return out


def _polyline_length(points: list[Point]) -> float:
    return sum(math.hypot(b[0] - a[0], b[1] - a[1]) for a, b in zip(points, points[1:]))
