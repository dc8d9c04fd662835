"""
Shaft orientation and tip location for a detected blob.

A dart seen from the front is a thin streak pointing roughly at the board
centre. PCA on the blob's pixel coordinates gives the streak's axis; the
tip is the blob pixel furthest out along that axis.
"""
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from dartscore.core.blobs import Blob
from dartscore.core.foreground import ROI

# Reject blobs whose axis is further than this from the radial direction
MAX_RADIAL_DEVIATION_DEG = 55.0

# Half-length of the reported axis segment, pixels
AXIS_HALF_LENGTH = 20.0


@dataclass
class ShaftEstimate:
    """Principal axis of a blob, oriented away from the board centre."""
    mean_x: float
    mean_y: float
    vx: float
    vy: float
    lambda1: float  # major eigenvalue
    lambda2: float  # minor eigenvalue
    radial_deviation_deg: float

    @property
    def is_radial(self) -> bool:
        return self.radial_deviation_deg <= MAX_RADIAL_DEVIATION_DEG

    @property
    def elongation(self) -> float:
        """1 - minor/major; 0 for a disc, towards 1 for a line."""
        if self.lambda1 <= 0:
            return 0.0
        return 1.0 - (self.lambda2 / self.lambda1)

    def axis_segment(self) -> Tuple[float, float, float, float]:
        d = AXIS_HALF_LENGTH
        return (
            self.mean_x - self.vx * d,
            self.mean_y - self.vy * d,
            self.mean_x + self.vx * d,
            self.mean_y + self.vy * d,
        )


def principal_axis(cxx: float, cyy: float, cxy: float) -> Tuple[float, float, float, float]:
    """
    Closed-form eigen-decomposition of [[cxx, cxy], [cxy, cyy]].

    Returns:
        (vx, vy, lambda1, lambda2) with (vx, vy) the unit eigenvector of the
        largest eigenvalue lambda1
    """
    trace = cxx + cyy
    det = cxx * cyy - cxy * cxy
    tmp = math.sqrt(max(0.0, trace * trace / 4.0 - det))
    l1 = trace / 2.0 + tmp
    l2 = trace - l1

    # (cxx - l1) x + cxy y = 0  ->  v = (cxy, l1 - cxx), or the other row
    vx, vy = cxy, l1 - cxx
    if math.hypot(vx, vy) < 1e-6:
        vx, vy = l1 - cyy, cxy
    vlen = math.hypot(vx, vy) or 1.0
    return vx / vlen, vy / vlen, l1, l2


def estimate_shaft(blob: Blob, center: Tuple[float, float]) -> ShaftEstimate:
    """
    PCA over the blob pixels, axis flipped to point away from ``center``.

    Args:
        blob: the candidate component
        center: board centre in pixels (ROI centre)
    """
    xs = blob.xs.astype(np.float64)
    ys = blob.ys.astype(np.float64)
    mean_x = float(xs.mean())
    mean_y = float(ys.mean())
    dx = xs - mean_x
    dy = ys - mean_y
    cxx = float(np.mean(dx * dx))
    cyy = float(np.mean(dy * dy))
    cxy = float(np.mean(dx * dy))

    vx, vy, l1, l2 = principal_axis(cxx, cyy, cxy)

    dxc = mean_x - center[0]
    dyc = mean_y - center[1]
    if dxc * vx + dyc * vy <= 0:
        vx, vy = -vx, -vy

    rlen = math.hypot(dxc, dyc) or 1.0
    rx, ry = dxc / rlen, dyc / rlen
    cos_ang = max(-1.0, min(1.0, vx * rx + vy * ry))
    deviation = math.degrees(math.acos(cos_ang))

    return ShaftEstimate(
        mean_x=mean_x,
        mean_y=mean_y,
        vx=vx,
        vy=vy,
        lambda1=l1,
        lambda2=l2,
        radial_deviation_deg=deviation,
    )


def locate_tip(blob: Blob, shaft: ShaftEstimate) -> Tuple[int, int]:
    """Blob pixel with the largest projection onto the outward axis."""
    t = (blob.xs - shaft.mean_x) * shaft.vx + (blob.ys - shaft.mean_y) * shaft.vy
    i = int(np.argmax(t))
    return int(blob.xs[i]), int(blob.ys[i])


def score_confidence(blob: Blob, tip: Tuple[int, int], shaft: ShaftEstimate, roi: ROI) -> float:
    """
    Heuristic confidence in [0, 1].

    Thin (low fill ratio), elongated blobs whose tip lies inside the ROI
    score highest.
    """
    _, _, bw, bh = blob.bbox
    fill = blob.area / float(max(1, bw) * max(1, bh))
    radial = math.hypot(tip[0] - roi.cx, tip[1] - roi.cy) / max(1, roi.radius)

    confidence = 0.5
    if fill < 0.45:
        confidence += 0.2
    if fill < 0.25:
        confidence += 0.15
    if radial < 1.1:
        confidence += 0.1
    if shaft.elongation > 0.3:
        confidence += 0.1
    return max(0.0, min(1.0, confidence))
