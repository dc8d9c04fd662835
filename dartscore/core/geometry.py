"""
Dartboard Geometry Constants

Standard dartboard dimensions in millimeters.
All measurements are radii from the center (bullseye).
Board coordinates have +x to the right and +y down, like image pixels.
"""
import math
from typing import List, Optional, Tuple

# Segment order clockwise from top (20 at 12 o'clock)
DARTBOARD_SEGMENTS: List[int] = [
    20, 1, 18, 4, 13, 6, 10, 15, 2, 17,
    3, 19, 7, 16, 8, 11, 14, 9, 12, 5
]

# Radii in millimeters (standard dartboard)
BULL_RADIUS_MM = 6.35           # Inner bull (50 points)
OUTER_BULL_RADIUS_MM = 15.9     # Outer bull (25 points)
TRIPLE_INNER_RADIUS_MM = 99.0   # Inner edge of triple ring
TRIPLE_OUTER_RADIUS_MM = 107.0  # Outer edge of triple ring
DOUBLE_INNER_RADIUS_MM = 162.0  # Inner edge of double ring
DOUBLE_OUTER_RADIUS_MM = 170.0  # Outer edge of double ring (board edge)

# Wire tolerance, roughly half a wire width
WIRE_TOLERANCE_MM = 0.75
# Allowance past the board edge before a dart counts as a miss
OUTER_TOLERANCE_MM = 0.5
BULL_TOLERANCE_MM = 0.5

# Degrees per segment
DEGREES_PER_SEGMENT = 18.0  # 360 / 20


def get_segment_from_angle(angle_radians: float, rotation_offset: float = 0.0) -> int:
    """
    Get the segment number from an angle (in radians).

    Args:
        angle_radians: atan2(y, x) in board coordinates (0 = 3 o'clock,
            increasing clockwise because +y points down)
        rotation_offset: Additional board rotation in radians

    Returns:
        Segment number (1-20)
    """
    deg = math.degrees(angle_radians + rotation_offset)
    # 0 deg at 12 o'clock
    deg = (deg + 90.0) % 360.0
    # Segment 20 spans -9..+9 degrees around the top
    index = int(((deg + DEGREES_PER_SEGMENT / 2) % 360.0) // DEGREES_PER_SEGMENT)
    return DARTBOARD_SEGMENTS[index % 20]


def get_zone_from_distance(distance_mm: float) -> Tuple[str, int]:
    """
    Get the ring name and multiplier from distance to center.

    Args:
        distance_mm: Distance from center in millimeters

    Returns:
        Tuple of (ring, multiplier); ring is one of the Ring enum values
    """
    if distance_mm > DOUBLE_OUTER_RADIUS_MM + OUTER_TOLERANCE_MM:
        return ("MISS", 0)
    elif distance_mm >= DOUBLE_INNER_RADIUS_MM - WIRE_TOLERANCE_MM:
        return ("DOUBLE", 2)
    elif distance_mm > TRIPLE_OUTER_RADIUS_MM + WIRE_TOLERANCE_MM:
        return ("SINGLE", 1)
    elif distance_mm >= TRIPLE_INNER_RADIUS_MM - WIRE_TOLERANCE_MM:
        return ("TRIPLE", 3)
    elif distance_mm > OUTER_BULL_RADIUS_MM + WIRE_TOLERANCE_MM:
        return ("SINGLE", 1)
    elif distance_mm > BULL_RADIUS_MM + BULL_TOLERANCE_MM:
        return ("BULL", 1)
    else:
        return ("INNER_BULL", 2)


def calculate_score(x_mm: float, y_mm: float, rotation_offset: float = 0.0) -> dict:
    """
    Calculate the complete score for a point on the board.

    Args:
        x_mm: X coordinate in mm (0 = center)
        y_mm: Y coordinate in mm (0 = center)
        rotation_offset: Board rotation offset in radians

    Returns:
        Dictionary with value, ring, sector, multiplier
    """
    distance = math.hypot(x_mm, y_mm)
    ring, multiplier = get_zone_from_distance(distance)

    sector: Optional[int]
    if ring == "MISS":
        sector, value = None, 0
    elif ring == "INNER_BULL":
        sector, value = 25, 50
    elif ring == "BULL":
        sector, value = 25, 25
    else:
        sector = get_segment_from_angle(math.atan2(y_mm, x_mm), rotation_offset)
        value = sector * multiplier

    return {
        "value": value,
        "ring": ring,
        "sector": sector,
        "multiplier": multiplier,
    }
