"""
Sparse Landmark Map
Merges projected feature positions into a bounded set of landmarks with a
running position average and a saturating quality counter.
"""

import logging
import math
from typing import List, Sequence, Tuple

import numpy as np

from navigation.motion_types import FeaturePoint, Landmark, Pose


class LandmarkMap:
    """
    Bounded landmark store.

    Positions and qualities live in preallocated arrays so the nearest
    landmark search is a single vectorized distance computation.
    New landmarks are rejected once `max_landmarks` is reached.
    """

    def __init__(self, config=None):
        get = config.get if config is not None else (lambda key, default=None: default)

        self.max_landmarks = get('landmarks.max_landmarks', 500)
        self.match_threshold = get('landmarks.match_threshold', 0.01)
        self.max_quality = get('landmarks.max_quality', 10)
        self.pixel_to_meter = get('visual_odometry.pixel_to_meter', 0.001)

        self.logger = logging.getLogger(self.__class__.__name__)
        self._cap_logged = False
        self.reset()

    @property
    def count(self) -> int:
        return self._count

    def project(self, feature: FeaturePoint, pose: Pose) -> Tuple[float, float]:
        """
        Approximate world position of a feature.

        Only the x pixel coordinate is used, along both rotated axes. This is
        not a camera projection; it is kept so maps stay comparable with
        existing recordings.
        """
        offset = feature.x * self.pixel_to_meter
        return (pose.x + offset * math.cos(pose.heading),
                pose.y + offset * math.sin(pose.heading))

    def update(self, features: Sequence[FeaturePoint], pose: Pose) -> int:
        """
        Merge observed features into the map.

        Args:
            features: All features detected in the current frame
            pose: Current world pose

        Returns:
            Number of landmarks created by this call
        """
        created = 0
        for feat in features:
            world_x, world_y = self.project(feat, pose)
            if self._merge(world_x, world_y):
                continue
            if self._count >= self.max_landmarks:
                if not self._cap_logged:
                    self.logger.info(f"Landmark cap reached ({self.max_landmarks}); new landmarks rejected")
                    self._cap_logged = True
                continue
            self._insert(world_x, world_y)
            created += 1
        return created

    def _merge(self, world_x: float, world_y: float) -> bool:
        """Average the observation into the nearest landmark within threshold."""
        if self._count == 0:
            return False
        xy = self._xy[:self._count]
        dist = np.hypot(xy[:, 0] - world_x, xy[:, 1] - world_y)
        nearest = int(np.argmin(dist))
        if dist[nearest] >= self.match_threshold:
            return False

        weight = float(self._quality[nearest])
        xy[nearest, 0] = (xy[nearest, 0] * weight + world_x) / (weight + 1.0)
        xy[nearest, 1] = (xy[nearest, 1] * weight + world_y) / (weight + 1.0)
        self._quality[nearest] = min(self._quality[nearest] + 1, self.max_quality)
        return True

    def _insert(self, world_x: float, world_y: float):
        index = self._count
        self._xy[index] = (world_x, world_y)
        self._quality[index] = 1
        self._ids[index] = self._next_id
        self._next_id += 1
        self._count += 1

    def get_landmarks(self) -> List[Landmark]:
        """Copies of the current landmarks in insertion order."""
        return [
            Landmark(int(self._ids[i]), float(self._xy[i, 0]), float(self._xy[i, 1]),
                     int(self._quality[i]))
            for i in range(self._count)
        ]

    def reset(self):
        self._xy = np.zeros((self.max_landmarks, 2), dtype=np.float64)
        self._quality = np.zeros(self.max_landmarks, dtype=np.int32)
        self._ids = np.zeros(self.max_landmarks, dtype=np.int64)
        self._count = 0
        self._next_id = 0
        self._cap_logged = False
