"""
Shared data types for the visual-inertial motion engine.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple

import numpy as np


TWO_PI = 2.0 * math.pi


class FeatureType(Enum):
    """Classification of a detected corner."""
    OBSTACLE = "obstacle"
    ENVIRONMENT = "environment"


@dataclass(frozen=True)
class FeaturePoint:
    """Corner detected in one frame."""
    x: float
    y: float
    score: float  # corner strength (agreeing circle samples)
    type: FeatureType = FeatureType.OBSTACLE


@dataclass(frozen=True)
class FeatureMatch:
    """Feature matched between the previous and the current frame."""
    prev: FeaturePoint
    curr: FeaturePoint
    ssd: float  # sum of squared differences of the 7x7 patches


@dataclass(frozen=True)
class MotionEstimate:
    """Frame-to-frame camera motion."""
    delta_x: float  # meters, camera-local
    delta_y: float  # meters, camera-local
    rotation: float  # radians
    confidence: float  # 0-1
    match_count: int

    @classmethod
    def zero(cls, match_count: int = 0) -> "MotionEstimate":
        """Estimate used when there is not enough data to trust any motion."""
        return cls(0.0, 0.0, 0.0, 0.0, match_count)


@dataclass
class Pose:
    """Planar pose in world coordinates."""
    x: float = 0.0
    y: float = 0.0
    heading: float = 0.0  # radians, [0, 2*pi)

    def copy(self) -> "Pose":
        return Pose(self.x, self.y, self.heading)


@dataclass
class Landmark:
    """Sparse map landmark."""
    id: int
    x: float
    y: float
    quality: int = 1


@dataclass(frozen=True)
class GrayFrame:
    """Immutable snapshot of one processed frame."""
    gray: np.ndarray
    features: Tuple[FeaturePoint, ...] = field(default_factory=tuple)

    @property
    def width(self) -> int:
        return self.gray.shape[1]

    @property
    def height(self) -> int:
        return self.gray.shape[0]


@dataclass(frozen=True)
class StepEvent:
    """Result of one detected step after fusion."""
    step_count: int
    timestamp: float
    frequency: float
    stride_length: float
    heading: float
    imu_dx: float
    imu_dy: float
    final_dx: float
    final_dy: float
    camera_weight: float
    fused: bool
    position: Tuple[float, float]


def normalize_angle(angle: float) -> float:
    """Wrap an angle into [0, 2*pi)."""
    wrapped = math.fmod(angle, TWO_PI)
    if wrapped < 0.0:
        wrapped += TWO_PI
    # fmod/addition can round up to exactly 2*pi for tiny negative inputs
    if wrapped >= TWO_PI:
        wrapped = 0.0
    return wrapped


def wrap_to_pi(angle: float) -> float:
    """Wrap an angle difference into [-pi, pi]."""
    while angle > math.pi:
        angle -= TWO_PI
    while angle < -math.pi:
        angle += TWO_PI
    return angle
