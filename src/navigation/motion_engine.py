"""
Visual-Inertial Motion Engine for DeadR
Camera frames -> corner tracking -> motion estimate -> pose and landmark map;
accelerometer steps -> stride displacement fused with the visual motion.
"""

import logging
import threading
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from navigation.feature_detection import FeatureDetector
from navigation.feature_tracking import FeatureTracker
from navigation.fusion import FusionEngine
from navigation.grayscale import to_grayscale
from navigation.landmark_map import LandmarkMap
from navigation.motion_estimation import MotionEstimator
from navigation.motion_types import FeaturePoint, GrayFrame, Landmark, MotionEstimate, Pose, StepEvent
from navigation.pose_integration import PoseIntegrator
from navigation.step_detection import HeadingTracker, StepDetector, acceleration_magnitude


MotionListener = Callable[[MotionEstimate], None]


class MotionEngine:
    """
    One dead-reckoning session.

    Frames must be fed sequentially; inertial samples may come from another
    thread. A single re-entrant lock serializes every state change, so a
    reset never interleaves with a half-processed frame or step.
    """

    def __init__(self, config=None):
        """
        Initialize engine.

        Args:
            config: ConfigManager instance (defaults are used when None)
        """
        self.config = config
        get = config.get if config is not None else (lambda key, default=None: default)
        self.color_order = get('camera.color_order', 'bgr')

        self.detector = FeatureDetector(config)
        self.tracker = FeatureTracker(config)
        self.estimator = MotionEstimator(config)
        self.integrator = PoseIntegrator(config)
        self.landmarks = LandmarkMap(config)

        self.step_detector = StepDetector(config)
        self.heading = HeadingTracker(config)
        self.fusion = FusionEngine(self.heading, config)

        self._lock = threading.RLock()
        self._listeners: List[MotionListener] = []
        self._previous: Optional[GrayFrame] = None
        self._last_motion: Optional[MotionEstimate] = None
        self._last_accel: Optional[Tuple[float, float, float]] = None
        self.frame_count = 0

        self.logger = logging.getLogger(self.__class__.__name__)
        self.logger.info(
            f"Motion engine ready (fusion={'on' if self.fusion.enabled else 'off'}, "
            f"peak threshold={self.step_detector.peak_threshold:.1f})"
        )

    # Frames

    def process_frame(self, frame: np.ndarray) -> Optional[MotionEstimate]:
        """
        Process a camera frame.

        Args:
            frame: Color (H, W, 3) or intensity (H, W) image

        Returns:
            None for the first frame of a session, otherwise a MotionEstimate
            (confidence 0 when there were not enough matches)
        """
        gray = to_grayscale(frame, self.color_order)

        with self._lock:
            features = self.detector.detect(gray)
            current = GrayFrame(gray, tuple(features))
            self.frame_count += 1

            previous = self._previous
            if previous is None or not previous.features:
                self._previous = current
                return None

            matches = self.tracker.track(previous.gray, gray, previous.features)
            motion = self.estimator.estimate(matches, current.width, current.height)

            self.integrator.integrate(motion)
            self.landmarks.update(features, self.integrator.pose)

            self._previous = current
            self._last_motion = motion
            self.fusion.add_visual_motion(motion)
            listeners = list(self._listeners)

        self._notify(listeners, motion)
        return motion

    def add_motion_listener(self, listener: MotionListener):
        """Register a callback invoked after every new motion estimate."""
        with self._lock:
            self._listeners.append(listener)

    def remove_motion_listener(self, listener: MotionListener):
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, listeners: Sequence[MotionListener], motion: MotionEstimate):
        for listener in listeners:
            try:
                listener(motion)
            except Exception as e:
                self.logger.error(f"Motion listener failed: {e}")

    # Inertial samples

    def process_accelerometer_sample(self, vector: Sequence[float],
                                     timestamp: float) -> Optional[StepEvent]:
        """
        Feed an accelerometer sample (m/s^2, timestamp in seconds).

        Returns:
            StepEvent when this sample completes a step, otherwise None
        """
        magnitude = acceleration_magnitude(vector)
        with self._lock:
            self._last_accel = tuple(float(v) for v in vector[:3])
            interval = self.step_detector.update(magnitude, timestamp)
            if interval is None:
                return None
            event = self.fusion.on_step(interval, timestamp, self.step_detector.step_count)

        self.logger.debug(
            f"Step {event.step_count}: stride={event.stride_length:.2f}m, "
            f"pos=({event.position[0]:.2f}, {event.position[1]:.2f})"
        )
        return event

    def process_gyroscope_sample(self, vector: Sequence[float], timestamp: float) -> float:
        """Feed a gyroscope sample (rad/s); returns the fused heading."""
        with self._lock:
            return self.heading.update_gyroscope(vector, timestamp)

    def process_orientation_sample(self, vector: Sequence[float]) -> float:
        """Feed a rotation-vector sample; returns the fused heading."""
        with self._lock:
            return self.heading.update_rotation_vector(vector)

    def process_magnetometer_sample(self, vector: Sequence[float]) -> bool:
        """
        Feed a magnetometer sample for devices without a rotation-vector sensor.

        Uses the most recent accelerometer sample as gravity.
        """
        with self._lock:
            if self._last_accel is None:
                return False
            return self.heading.update_accel_mag(self._last_accel, vector)

    # Snapshots

    def get_current_pose(self) -> Pose:
        with self._lock:
            return self.integrator.snapshot()

    def get_current_features(self) -> List[FeaturePoint]:
        with self._lock:
            return list(self._previous.features) if self._previous is not None else []

    def get_landmarks(self) -> List[Landmark]:
        with self._lock:
            return self.landmarks.get_landmarks()

    def get_landmark_count(self) -> int:
        with self._lock:
            return self.landmarks.count

    def get_last_motion(self) -> Optional[MotionEstimate]:
        with self._lock:
            return self._last_motion

    def get_position(self) -> Tuple[float, float]:
        with self._lock:
            return self.fusion.position

    def get_path(self) -> List[Tuple[float, float]]:
        with self._lock:
            return self.fusion.get_path()

    def get_step_count(self) -> int:
        with self._lock:
            return self.step_detector.step_count

    def get_heading(self) -> float:
        with self._lock:
            return self.heading.heading

    def get_frame_count(self) -> int:
        with self._lock:
            return self.frame_count

    # Configuration

    def set_fusion_enabled(self, enabled: bool):
        with self._lock:
            self.fusion.set_enabled(enabled)

    def is_fusion_enabled(self) -> bool:
        with self._lock:
            return self.fusion.enabled

    def set_step_threshold(self, threshold: float):
        with self._lock:
            self.step_detector.set_peak_threshold(threshold)

    def reset(self):
        """Clear every piece of session state back to the origin."""
        with self._lock:
            self._previous = None
            self._last_motion = None
            self._last_accel = None
            self.frame_count = 0
            self.integrator.reset()
            self.landmarks.reset()
            self.step_detector.reset()
            self.heading.reset()
            self.fusion.reset()
        self.logger.info("Motion engine reset")