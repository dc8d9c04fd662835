"""
Frame helpers.

A frame is a numpy array of shape (h, w, 3) or (h, w, 4), uint8, in RGB(A)
channel order - the same layout a browser canvas or PIL hands out. OpenCV
captures are BGR and go through ``from_bgr`` first.
"""
import cv2
import numpy as np

# ITU-R BT.601 luma weights
GRAY_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)

# Specular highlight heuristic: near-white with almost no chroma
HIGHLIGHT_MIN_BRIGHTNESS = 250
HIGHLIGHT_MAX_SATURATION = 0.12


def validate_frame(frame: np.ndarray) -> np.ndarray:
    """Check shape/dtype and return the frame as a 3-channel RGB view."""
    if not isinstance(frame, np.ndarray):
        raise TypeError(f"frame must be a numpy array, got {type(frame).__name__}")
    if frame.ndim != 3 or frame.shape[2] not in (3, 4):
        raise ValueError(f"frame must be (h, w, 3|4), got shape {frame.shape}")
    if frame.shape[0] == 0 or frame.shape[1] == 0:
        raise ValueError("frame is empty")
    if frame.dtype != np.uint8:
        raise TypeError(f"frame must be uint8, got {frame.dtype}")
    return frame[:, :, :3]


def from_bgr(image: np.ndarray) -> np.ndarray:
    """Convert an OpenCV BGR/BGRA/grayscale image to an RGB frame."""
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGB)
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def to_gray(rgb: np.ndarray, out: np.ndarray = None) -> np.ndarray:
    """Weighted grayscale as float32. Writes into ``out`` when given."""
    gray = rgb.astype(np.float32) @ GRAY_WEIGHTS
    if out is None:
        return gray
    np.copyto(out, gray)
    return out


def highlight_mask(rgb: np.ndarray, out: np.ndarray = None) -> np.ndarray:
    """
    Flag specular highlights: max channel >= 250 and (max - min) / max <= 0.12.

    These are glare on the wire or the board surface, never a dart.
    """
    maxc = rgb.max(axis=2).astype(np.int16)
    minc = rgb.min(axis=2).astype(np.int16)
    # maxc >= 250 here so the division is safe wherever it matters
    sat = (maxc - minc) / np.maximum(maxc, 1)
    result = (maxc >= HIGHLIGHT_MIN_BRIGHTNESS) & (sat <= HIGHLIGHT_MAX_SATURATION)
    if out is None:
        return result
    out[...] = result
    return out
