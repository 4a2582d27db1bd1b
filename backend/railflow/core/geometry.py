"""
Planar geometry helpers shared by the path graph and the motion simulator.

`point_on_curve` and `curve_path_commands` derive the same Bezier control
points from a point sequence, so a train placed at progress p sits on the
curve the map draws for that segment.
"""
import math
from typing import List, Sequence

from railflow.core.models import Point

DEFAULT_TENSION = 0.5


def distance(p1: Point, p2: Point) -> float:
    """Euclidean distance between two points."""
    return math.sqrt((p2.x - p1.x) ** 2 + (p2.y - p1.y) ** 2)


def polyline_length(points: Sequence[Point]) -> float:
    """Cumulative arc length of a polyline."""
    return sum(distance(points[i], points[i + 1]) for i in range(len(points) - 1))


def cubic_bezier_point(p0: Point, p1: Point, p2: Point, p3: Point, t: float) -> Point:
    """Standard cubic Bezier interpolation at t in [0, 1]."""
    u = 1 - t
    tt = t * t
    uu = u * u
    uuu = uu * u
    ttt = tt * t

    x = uuu * p0.x + 3 * uu * t * p1.x + 3 * u * tt * p2.x + ttt * p3.x
    y = uuu * p0.y + 3 * uu * t * p1.y + 3 * u * tt * p2.y + ttt * p3.y
    return Point(x, y)


def _control_points(pts: Sequence[Point], index: int, tension: float):
    # Neighbours outside the sequence clamp to the span's own endpoints.
    p0 = pts[index - 1] if index > 0 else pts[index]
    p1 = pts[index]
    p2 = pts[index + 1]
    p3 = pts[index + 2] if index < len(pts) - 2 else p2

    cp1 = Point(p1.x + (p2.x - p0.x) / 6 * tension, p1.y + (p2.y - p0.y) / 6 * tension)
    cp2 = Point(p2.x - (p3.x - p1.x) / 6 * tension, p2.y - (p3.y - p1.y) / 6 * tension)
    return p1, cp1, cp2, p2


def point_on_curve(
    points: Sequence[Point],
    progress: float,
    reversed_: bool = False,
    tension: float = DEFAULT_TENSION,
) -> Point:
    """
    Locate a point on the Catmull-Rom-like spline through `points`.

    Args:
        points: Point sequence of the whole segment.
        progress: Fraction (0 to 1) along the segment. Each span between two
            consecutive points receives an equal share of the progress range.
        reversed_: Travel from the last point towards the first.
        tension: Curve tension, must match the renderer's.

    Returns:
        The interpolated point.
    """
    pts = list(reversed(points)) if reversed_ else list(points)
    num_spans = len(pts) - 1
    if num_spans <= 0:
        return pts[0] if pts else Point(0.0, 0.0)

    target = min(math.floor(progress * num_spans), num_spans - 1)
    target = max(target, 0)
    t = progress * num_spans - target

    p1, cp1, cp2, p2 = _control_points(pts, target, tension)
    return cubic_bezier_point(p1, cp1, cp2, p2, t)


def curve_path_commands(points: Sequence[Point], tension: float = DEFAULT_TENSION) -> str:
    """SVG path data for the curve that `point_on_curve` follows."""
    if len(points) < 2:
        return ""
    commands: List[str] = [f"M {points[0].x:g},{points[0].y:g}"]
    if len(points) == 2:
        # Both control points sit on the chord, so a straight line is the same curve.
        commands.append(f"L {points[1].x:g},{points[1].y:g}")
        return " ".join(commands)
    for i in range(len(points) - 1):
        _, cp1, cp2, p2 = _control_points(points, i, tension)
        commands.append(f"C {cp1.x:g},{cp1.y:g} {cp2.x:g},{cp2.y:g} {p2.x:g},{p2.y:g}")
    return " ".join(commands)
