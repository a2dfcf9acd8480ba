"""
Robust frame-to-frame motion from feature matches.
"""

import math
from typing import List, Sequence

import numpy as np

from navigation.motion_types import FeatureMatch, MotionEstimate, wrap_to_pi


class MotionEstimator:
    """
    Median translation + averaged angular flow.

    The per-axis median ignores a minority of wrong matches, and per-match
    rotations with magnitude >= max_rotation_delta are dropped before
    averaging.
    """

    def __init__(self, config=None):
        get = config.get if config is not None else (lambda key, default=None: default)

        self.min_matches = get('visual_odometry.min_matches', 5)
        self.pixel_to_meter = get('visual_odometry.pixel_to_meter', 0.001)
        self.max_tracked = get('visual_odometry.max_features_to_track', 300)
        self.max_rotation_delta = get('visual_odometry.max_rotation_delta', 0.5)
        self.ssd_scale = get('visual_odometry.ssd_confidence_scale', 1e-4)

    def estimate(self, matches: Sequence[FeatureMatch], width: int, height: int) -> MotionEstimate:
        """
        Estimate camera motion between two frames.

        Args:
            matches: Accepted feature matches
            width: Frame width in pixels
            height: Frame height in pixels

        Returns:
            MotionEstimate; zero motion with confidence 0 when there are too
            few matches
        """
        if len(matches) < self.min_matches:
            return MotionEstimate.zero(len(matches))

        dx = [m.curr.x - m.prev.x for m in matches]
        dy = [m.curr.y - m.prev.y for m in matches]
        median_dx = upper_median(dx)
        median_dy = upper_median(dy)

        rotation = self._rotation(matches, width / 2.0, height / 2.0)

        # Camera moves opposite to the perceived horizontal scene flow
        delta_x = -median_dx * self.pixel_to_meter
        delta_y = median_dy * self.pixel_to_meter

        return MotionEstimate(delta_x, delta_y, rotation,
                              self.confidence(matches), len(matches))

    def confidence(self, matches: Sequence[FeatureMatch]) -> float:
        """Confidence from match quantity and mean SSD, clamped to [0, 1]."""
        if not matches:
            return 0.0
        mean_ssd = float(np.mean([m.ssd for m in matches]))
        match_ratio = min(1.0, max(0.0, len(matches) / self.max_tracked))
        ssd_confidence = 1.0 / (1.0 + mean_ssd * self.ssd_scale)
        return min(1.0, max(0.0, match_ratio * ssd_confidence))

    def _rotation(self, matches: Sequence[FeatureMatch], center_x: float, center_y: float) -> float:
        deltas = []
        for m in matches:
            angle_prev = math.atan2(m.prev.y - center_y, m.prev.x - center_x)
            angle_curr = math.atan2(m.curr.y - center_y, m.curr.x - center_x)
            d_angle = wrap_to_pi(angle_curr - angle_prev)
            if abs(d_angle) < self.max_rotation_delta:
                deltas.append(d_angle)
        return sum(deltas) / len(deltas) if deltas else 0.0


def upper_median(values: List[float]) -> float:
    """Element at index n // 2 of the sorted values (no averaging)."""
    ordered = sorted(values)
    return ordered[len(ordered) // 2]
