"""
SSD Patch Tracking
Matches features of the previous frame into the current frame by exhaustive
search over a coarse window around each feature's previous location.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from navigation.motion_types import FeatureMatch, FeaturePoint


class FeatureTracker:
    """Patch-based feature tracker (7x7 patches, +-20px window, step 3)."""

    def __init__(self, config=None):
        get = config.get if config is not None else (lambda key, default=None: default)

        self.max_tracked = get('visual_odometry.max_features_to_track', 300)
        self.patch_half = get('visual_odometry.patch_half_size', 3)
        self.search_radius = get('visual_odometry.search_radius', 20)
        self.search_step = get('visual_odometry.search_step', 3)
        self.ssd_threshold = float(get('visual_odometry.ssd_threshold', 3000.0))

        offsets = np.arange(-self.search_radius, self.search_radius + 1, self.search_step)
        # dy outer, dx inner: argmin keeps the first minimum in this order
        dy, dx = np.meshgrid(offsets, offsets, indexing='ij')
        self._offset_dx = dx.ravel()
        self._offset_dy = dy.ravel()

        self.logger = logging.getLogger(self.__class__.__name__)

    def sample(self, features: Sequence[FeaturePoint]) -> List[FeaturePoint]:
        """Uniform-stride subsample used to bound tracking cost."""
        stride = max(1, len(features) // self.max_tracked)
        return list(features[::stride])

    def track(self, prev_gray: np.ndarray, curr_gray: np.ndarray,
              prev_features: Sequence[FeaturePoint]) -> List[FeatureMatch]:
        """
        Track previous features into the current frame.

        Args:
            prev_gray: Previous (H, W) intensity buffer
            curr_gray: Current (H', W') intensity buffer
            prev_features: Features detected in the previous frame

        Returns:
            Accepted matches (best SSD below threshold)
        """
        size = 2 * self.patch_half + 1
        curr = curr_gray.astype(np.int64, copy=False)
        if curr.shape[0] < size or curr.shape[1] < size:
            return []
        windows = sliding_window_view(curr, (size, size))

        matches = []
        for prev_feat in self.sample(prev_features):
            px, py = int(prev_feat.x), int(prev_feat.y)
            prev_patch = self._patch(prev_gray, px, py)
            if prev_patch is None:
                continue

            best = self._best_candidate(windows, curr.shape, prev_patch, px, py)
            if best is None:
                continue

            cx, cy, ssd = best
            if ssd < self.ssd_threshold:
                curr_feat = FeaturePoint(float(cx), float(cy), prev_feat.score, prev_feat.type)
                matches.append(FeatureMatch(prev_feat, curr_feat, ssd))

        self.logger.debug(f"Tracked {len(matches)}/{len(prev_features)} features")
        return matches

    def _patch(self, gray: np.ndarray, x: int, y: int) -> Optional[np.ndarray]:
        """Patch centered on (x, y), or None when it would leave the frame."""
        if not self._in_bounds(x, y, gray.shape):
            return None
        h = self.patch_half
        return gray[y - h:y + h + 1, x - h:x + h + 1].astype(np.int64)

    def _in_bounds(self, x, y, shape) -> bool:
        h = self.patch_half
        return h <= x < shape[1] - h and h <= y < shape[0] - h

    def _best_candidate(self, windows: np.ndarray, shape, prev_patch: np.ndarray,
                        px: int, py: int):
        cand_x = px + self._offset_dx
        cand_y = py + self._offset_dy
        h = self.patch_half
        valid = ((cand_x >= h) & (cand_x < shape[1] - h) &
                 (cand_y >= h) & (cand_y < shape[0] - h))
        if not np.any(valid):
            return None

        cand_x = cand_x[valid]
        cand_y = cand_y[valid]
        patches = windows[cand_y - h, cand_x - h]
        diff = patches - prev_patch
        ssd = np.einsum('nij,nij->n', diff, diff)

        best = int(np.argmin(ssd))
        return int(cand_x[best]), int(cand_y[best]), float(ssd[best])
