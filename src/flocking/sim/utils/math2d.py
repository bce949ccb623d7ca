from __future__ import annotations

import math


def _clamp_speed_xy(
    x: float, y: float, min_speed: float, max_speed: float, heading: float | None
) -> tuple[float, float]:
    magnitude_sq = x * x + y * y
    if magnitude_sq == 0.0:
        if heading is None or min_speed <= 0.0:
            return 0.0, 0.0
        return math.cos(heading) * min_speed, math.sin(heading) * min_speed
    speed = math.sqrt(magnitude_sq)
    if speed < min_speed:
        scale = min_speed / speed
        return x * scale, y * scale
    if speed > max_speed:
        scale = max_speed / speed
        return x * scale, y * scale
    return x, y


def _heading_from_xy(x: float, y: float) -> float | None:
    if x * x + y * y < 1e-12:
        return None
    return math.atan2(y, x)


def _angle_between_xy(ax: float, ay: float, bx: float, by: float) -> float | None:
    """Unsigned angle in radians between two vectors, or None if either is degenerate."""
    len_sq = (ax * ax + ay * ay) * (bx * bx + by * by)
    if len_sq < 1e-18:
        return None
    cos_theta = (ax * bx + ay * by) / math.sqrt(len_sq)
    return math.acos(max(-1.0, min(1.0, cos_theta)))
