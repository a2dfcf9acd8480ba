"""
Grayscale conversion for the visual odometry front end.
"""

import numpy as np

# Luminance weights in thousandths (0.299, 0.587, 0.114)
R_WEIGHT = 299
G_WEIGHT = 587
B_WEIGHT = 114


def to_grayscale(frame: np.ndarray, color_order: str = "bgr") -> np.ndarray:
    """
    Convert a color frame to an integer intensity buffer.

    Weighted sum 0.299R + 0.587G + 0.114B truncated toward zero, computed in
    exact integer arithmetic so neutral greys map to themselves
    (cv2.cvtColor rounds instead of truncating).

    Args:
        frame: (H, W, 3|4) color image or (H, W) intensity image
        color_order: 'bgr' (OpenCV capture) or 'rgb'

    Returns:
        (H, W) int32 array
    """
    if frame.ndim == 2:
        return frame.astype(np.int32, copy=True)

    channels = frame[:, :, :3].astype(np.int64)
    if color_order.lower() == "rgb":
        r, g, b = channels[:, :, 0], channels[:, :, 1], channels[:, :, 2]
    else:
        b, g, r = channels[:, :, 0], channels[:, :, 1], channels[:, :, 2]

    gray = (R_WEIGHT * r + G_WEIGHT * g + B_WEIGHT * b) // 1000
    return gray.astype(np.int32)
