"""
Connected-component extraction over the foreground mask.
"""
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np


@dataclass
class Blob:
    """A 4-connected foreground component."""
    xs: np.ndarray  # pixel x coordinates (int)
    ys: np.ndarray  # pixel y coordinates (int)
    area: int
    bbox: Tuple[int, int, int, int]  # x, y, w, h
    centroid: Tuple[float, float]


class BlobFinder:
    """
    Keeps the largest 4-connected component of a mask.

    Area bounds are checked by the caller so a too-small or too-large blob
    can still feed background adaptation.
    """

    def __init__(self, min_area: int = 90, max_area: int = 6000):
        self.min_area = min_area
        self.max_area = max_area

    def largest(self, mask: np.ndarray) -> Optional[Blob]:
        """Return the largest component, or None if the mask is empty."""
        count, labels, stats, centroids = cv2.connectedComponentsWithStats(
            mask, connectivity=4, ltype=cv2.CV_32S
        )
        if count <= 1:
            return None

        # label 0 is background; argmax keeps the first of equal areas
        areas = stats[1:, cv2.CC_STAT_AREA]
        label = int(np.argmax(areas)) + 1

        ys, xs = np.nonzero(labels == label)
        x, y, w, h = (int(v) for v in stats[label, :4])
        cx, cy = centroids[label]
        return Blob(
            xs=xs,
            ys=ys,
            area=int(stats[label, cv2.CC_STAT_AREA]),
            bbox=(x, y, w, h),
            centroid=(float(cx), float(cy)),
        )

    def in_bounds(self, blob: Optional[Blob]) -> bool:
        return blob is not None and self.min_area <= blob.area <= self.max_area
