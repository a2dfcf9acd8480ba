"""
Pose integration: accumulates camera-local motion into a world-frame pose.
"""

import math

from navigation.motion_types import MotionEstimate, Pose, normalize_angle


class PoseIntegrator:
    """Owns the engine's single Pose and applies trusted motion estimates."""

    def __init__(self, config=None):
        get = config.get if config is not None else (lambda key, default=None: default)
        self.min_confidence = get('visual_odometry.min_pose_confidence', 0.1)
        self.pose = Pose()

    def integrate(self, motion: MotionEstimate) -> bool:
        """
        Rotate the motion into the world frame and add it to the pose.

        Returns:
            False when the estimate is too unreliable and was skipped
        """
        if motion.confidence <= self.min_confidence:
            return False

        heading = self.pose.heading
        cos_h, sin_h = math.cos(heading), math.sin(heading)
        self.pose.x += motion.delta_x * cos_h - motion.delta_y * sin_h
        self.pose.y += motion.delta_x * sin_h + motion.delta_y * cos_h
        self.pose.heading = normalize_angle(heading + motion.rotation)
        return True

    def snapshot(self) -> Pose:
        return self.pose.copy()

    def reset(self):
        self.pose = Pose()
