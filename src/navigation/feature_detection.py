"""
FAST-like Corner Detection
Finds corners on a coarse grid, suppresses duplicates per cell and labels
each survivor as obstacle or environment from local corner density.
"""

import logging
from collections import namedtuple
from typing import Dict, List, Optional, Tuple

import numpy as np

from navigation.motion_types import FeaturePoint, FeatureType


# 16-point Bresenham circle of radius 3, as (dx, dy)
FAST_CIRCLE = (
    (-3, 0), (-3, 1), (-2, 2), (-1, 3),
    (0, 3), (1, 3), (2, 2), (3, 1),
    (3, 0), (3, -1), (2, -2), (1, -3),
    (0, -3), (-1, -3), (-2, -2), (-3, -1),
)

_Candidate = namedtuple('_Candidate', ['x', 'y', 'score', 'brighter', 'darker'])


class FeatureDetector:
    """
    Corner detector used by the visual odometry front end.

    Flow per frame:
    1. Circle test on every `scan_step`-th pixel, `border` pixels from the edges
    2. Keep the strongest candidate per `grid_nms_size` cell
    3. Cluster survivors into `cluster_size` cells and classify by density
    4. Truncate to `max_features`
    """

    def __init__(self, config=None):
        """
        Initialize detector.

        Args:
            config: ConfigManager-like object with get(key, default)
        """
        get = config.get if config is not None else (lambda key, default=None: default)

        self.threshold = get('visual_odometry.fast_threshold', 20)
        self.min_arc = get('visual_odometry.corner_min_count', 12)
        self.scan_step = get('visual_odometry.scan_step', 3)
        self.border = get('visual_odometry.border', 10)
        self.grid_nms_size = get('visual_odometry.grid_nms_size', 6)
        self.cluster_size = get('visual_odometry.cluster_size', 35)
        self.max_features = get('visual_odometry.max_features', 1500)

        self.logger = logging.getLogger(self.__class__.__name__)

    def detect(self, gray: np.ndarray) -> List[FeaturePoint]:
        """
        Detect and classify corners.

        Args:
            gray: (H, W) integer intensity buffer

        Returns:
            Feature points in row-major scan order of their NMS cells
        """
        height, width = gray.shape[:2]
        candidates = self._suppress(self._corner_candidates(gray))
        if not candidates:
            return []

        features = self._classify(candidates, width, height)
        if len(features) > self.max_features:
            self.logger.debug(f"Feature cap reached: {len(features)} -> {self.max_features}")
        return features[:self.max_features]

    def _corner_candidates(self, gray: np.ndarray) -> List[_Candidate]:
        """Vectorized circle test over the scan grid."""
        height, width = gray.shape[:2]
        ys = np.arange(self.border, height - self.border, self.scan_step)
        xs = np.arange(self.border, width - self.border, self.scan_step)
        if ys.size == 0 or xs.size == 0:
            return []

        yy, xx = np.meshgrid(ys, xs, indexing='ij')
        image = gray.astype(np.int32, copy=False)
        center = image[yy, xx]

        brighter = np.zeros(center.shape, dtype=np.int32)
        darker = np.zeros(center.shape, dtype=np.int32)
        for dx, dy in FAST_CIRCLE:
            ring = image[yy + dy, xx + dx]
            brighter += ring > center + self.threshold
            darker += ring < center - self.threshold

        is_corner = (brighter >= self.min_arc) | (darker >= self.min_arc)
        rows, cols = np.nonzero(is_corner)

        return [
            _Candidate(int(xx[r, c]), int(yy[r, c]),
                       float(max(brighter[r, c], darker[r, c])),
                       int(brighter[r, c]), int(darker[r, c]))
            for r, c in zip(rows, cols)
        ]

    def _suppress(self, candidates: List[_Candidate]) -> List[_Candidate]:
        """Grid non-maximum suppression; the first of equal scores wins."""
        grid: Dict[Tuple[int, int], _Candidate] = {}
        for cand in candidates:
            key = (cand.x // self.grid_nms_size, cand.y // self.grid_nms_size)
            existing = grid.get(key)
            if existing is None or existing.score < cand.score:
                grid[key] = cand
        return list(grid.values())

    def _classify(self, candidates: List[_Candidate], width: int, height: int) -> List[FeaturePoint]:
        """Label candidates as obstacle or environment from cluster statistics."""
        clusters: Dict[Tuple[int, int], int] = {}
        for cand in candidates:
            key = self._cluster_key(cand)
            clusters[key] = clusters.get(key, 0) + 1

        sorted_sizes = sorted(clusters.values())
        avg_cluster_size = len(candidates) / len(clusters)
        median_cluster_size = sorted_sizes[len(sorted_sizes) // 2]
        density_threshold = max(2.5, avg_cluster_size * 1.4)

        features = []
        for cand in candidates:
            density = clusters[self._cluster_key(cand)]
            is_obstacle = self._is_obstacle(cand, density, density_threshold,
                                            median_cluster_size, width, height)
            feature_type = FeatureType.OBSTACLE if is_obstacle else FeatureType.ENVIRONMENT
            features.append(FeaturePoint(float(cand.x), float(cand.y), cand.score, feature_type))
        return features

    @staticmethod
    def _is_obstacle(cand: _Candidate, density: int, density_threshold: float,
                     median_size: int, width: int, height: int) -> bool:
        # Dense cluster
        if density >= density_threshold * 1.1:
            return True
        # Balanced high-contrast edge
        if cand.score >= 15 and abs(cand.brighter - cand.darker) <= 2:
            return True
        # Central region with above-median density
        in_center = (width * 0.3 < cand.x < width * 0.7 and
                     height * 0.2 < cand.y < height * 0.8)
        if in_center and density >= median_size * 1.4:
            return True
        # Strong corner
        if cand.score >= 16:
            return True
        return density > median_size * 2.2

    def _cluster_key(self, cand: _Candidate) -> Tuple[int, int]:
        return cand.x // self.cluster_size, cand.y // self.cluster_size


def count_by_type(features: List[FeaturePoint], feature_type: Optional[FeatureType] = None) -> int:
    """Number of features, optionally restricted to one type."""
    if feature_type is None:
        return len(features)
    return sum(1 for f in features if f.type == feature_type)
