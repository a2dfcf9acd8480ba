"""
Inertial Step Detection and Heading
Peak/trough step detector on accelerometer magnitude, cadence-based stride
length, and a fused heading built from rotation-vector, gyroscope or
accelerometer+magnetometer samples.
"""

import logging
import math
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from navigation.motion_types import normalize_angle, wrap_to_pi


class StepState(Enum):
    IDLE = "idle"
    PEAK = "peak"


class StepDetector:
    """
    Two-state step detector.

    IDLE -> PEAK when the magnitude exceeds the peak threshold and more than
    `debounce_s` has passed since the last step; PEAK -> IDLE when it falls
    below the trough threshold. The PEAK -> IDLE transition is the step.
    """

    def __init__(self, config=None):
        get = config.get if config is not None else (lambda key, default=None: default)

        self.peak_threshold = float(get('step_detection.peak_threshold', 11.5))
        self.trough_threshold = float(get('step_detection.trough_threshold', 8.5))
        self.debounce_s = float(get('step_detection.debounce_s', 0.25))
        self.min_interval_s = float(get('step_detection.min_interval_s', 0.001))

        self.logger = logging.getLogger(self.__class__.__name__)
        self.reset()

    def update(self, magnitude: float, timestamp: float) -> Optional[float]:
        """
        Feed one accelerometer magnitude.

        Args:
            magnitude: |a| in m/s^2
            timestamp: Sample time in seconds

        Returns:
            Seconds since the previous step when this sample completes a step
            (inf for the first step of a session), otherwise None
        """
        since_last = (math.inf if self.last_step_time is None
                      else timestamp - self.last_step_time)

        if (self.state is StepState.IDLE and magnitude > self.peak_threshold
                and since_last > self.debounce_s):
            self.state = StepState.PEAK
        elif self.state is StepState.PEAK and magnitude < self.trough_threshold:
            self.state = StepState.IDLE
            self.step_count += 1
            self.last_step_time = timestamp
            return max(since_last, self.min_interval_s)
        return None

    def set_peak_threshold(self, threshold: float):
        self.peak_threshold = float(threshold)
        self.logger.info(f"Step peak threshold set to {self.peak_threshold:.2f}")

    def reset(self):
        self.state = StepState.IDLE
        self.step_count = 0
        self.last_step_time = None


class StrideModel:
    """Maps step cadence (Hz) to a stride length (m) through fixed breakpoints."""

    def __init__(self, config=None):
        get = config.get if config is not None else (lambda key, default=None: default)
        self.breakpoints = list(get('step_detection.stride_breakpoints_hz', [1.5, 2.0]))
        self.lengths = list(get('step_detection.stride_lengths_m', [0.60, 0.75, 1.00]))
        if len(self.lengths) != len(self.breakpoints) + 1:
            raise ValueError("stride_lengths_m needs one more entry than stride_breakpoints_hz")

    def stride_length(self, frequency: float) -> float:
        for breakpoint, length in zip(self.breakpoints, self.lengths):
            if frequency < breakpoint:
                return length
        return self.lengths[-1]


def acceleration_magnitude(vector: Sequence[float]) -> float:
    x, y, z = (float(v) for v in vector[:3])
    return math.sqrt(x * x + y * y + z * z)


def rotation_vector_to_matrix(vector: Sequence[float]) -> np.ndarray:
    """Unit-quaternion rotation vector (x, y, z[, w]) to a 3x3 rotation matrix."""
    q1, q2, q3 = (float(v) for v in vector[:3])
    if len(vector) >= 4:
        q0 = float(vector[3])
    else:
        q0 = 1.0 - q1 * q1 - q2 * q2 - q3 * q3
        q0 = math.sqrt(q0) if q0 > 0 else 0.0

    sq_q1, sq_q2, sq_q3 = 2 * q1 * q1, 2 * q2 * q2, 2 * q3 * q3
    q1_q2, q3_q0 = 2 * q1 * q2, 2 * q3 * q0
    q1_q3, q2_q0 = 2 * q1 * q3, 2 * q2 * q0
    q2_q3, q1_q0 = 2 * q2 * q3, 2 * q1 * q0

    return np.array([
        [1 - sq_q2 - sq_q3, q1_q2 - q3_q0, q1_q3 + q2_q0],
        [q1_q2 + q3_q0, 1 - sq_q1 - sq_q3, q2_q3 - q1_q0],
        [q1_q3 - q2_q0, q2_q3 + q1_q0, 1 - sq_q1 - sq_q2],
    ])


def rotation_from_gravity_and_field(gravity: Sequence[float],
                                    geomagnetic: Sequence[float]) -> Optional[np.ndarray]:
    """
    Device rotation from accelerometer and magnetometer vectors.

    Returns None in free fall or when the field is parallel to gravity.
    """
    a = np.asarray(gravity[:3], dtype=np.float64)
    e = np.asarray(geomagnetic[:3], dtype=np.float64)
    h = np.cross(e, a)
    norm_h = np.linalg.norm(h)
    norm_a = np.linalg.norm(a)
    if norm_h < 0.1 or norm_a == 0.0:
        return None
    h /= norm_h
    a /= norm_a
    m = np.cross(a, h)
    return np.vstack([h, m, a])


def azimuth_from_matrix(rotation: np.ndarray) -> float:
    """Azimuth (radians, -pi..pi) around the gravity axis."""
    return math.atan2(rotation[0, 1], rotation[1, 1])


class HeadingTracker:
    """
    Fused walking heading.

    Rotation-vector samples set the heading directly; gyroscope samples run a
    complementary filter against the last absolute azimuth; accelerometer +
    magnetometer samples provide that azimuth on devices without a
    rotation-vector sensor.
    """

    def __init__(self, config=None):
        get = config.get if config is not None else (lambda key, default=None: default)
        self.gyro_alpha = float(get('step_detection.gyro_alpha', 0.98))
        self.azimuth = 0.0
        self.reset()

    @property
    def heading(self) -> float:
        return self._heading

    def update_rotation_vector(self, vector: Sequence[float]) -> float:
        self.azimuth = azimuth_from_matrix(rotation_vector_to_matrix(vector))
        self._heading = normalize_angle(self.azimuth)
        return self._heading

    def update_gyroscope(self, vector: Sequence[float], timestamp: float) -> float:
        if self.last_gyro_time is None:
            self.last_gyro_time = timestamp
            return self._heading

        dt = timestamp - self.last_gyro_time
        gyro_z = float(vector[2])
        predicted = self._heading + gyro_z * dt
        # Blend along the shorter arc; heading and azimuth use different ranges
        fused = predicted + (1.0 - self.gyro_alpha) * wrap_to_pi(self.azimuth - predicted)
        self._heading = normalize_angle(fused)
        self.last_gyro_time = timestamp
        return self._heading

    def update_accel_mag(self, gravity: Sequence[float], geomagnetic: Sequence[float]) -> bool:
        """Refresh the absolute azimuth; False when the field was unusable."""
        rotation = rotation_from_gravity_and_field(gravity, geomagnetic)
        if rotation is None:
            return False
        self.azimuth = azimuth_from_matrix(rotation)
        return True

    def nudge(self, delta: float) -> float:
        self._heading = normalize_angle(self._heading + delta)
        return self._heading

    def reset(self):
        """Re-seed the heading from the last absolute azimuth (north if none was seen)."""
        self._heading = normalize_angle(self.azimuth)
        self.last_gyro_time = None
