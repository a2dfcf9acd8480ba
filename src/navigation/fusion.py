"""
Step-based dead reckoning with confidence-weighted visual fusion.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

from navigation.motion_types import MotionEstimate, StepEvent
from navigation.step_detection import HeadingTracker, StrideModel


@dataclass
class VisualAverage:
    delta_x: float
    delta_y: float
    rotation: float
    confidence: float
    samples: int


class VisualMotionAccumulator:
    """Sums trusted motion estimates between two steps."""

    def __init__(self, min_confidence: float = 0.2):
        self.min_confidence = min_confidence
        self.clear()

    def add(self, motion: MotionEstimate) -> bool:
        if motion.confidence <= self.min_confidence:
            return False
        self.delta_x += motion.delta_x
        self.delta_y += motion.delta_y
        self.rotation += motion.rotation
        self.confidence += motion.confidence
        self.samples += 1
        return True

    def average(self) -> Optional[VisualAverage]:
        if self.samples == 0:
            return None
        n = self.samples
        return VisualAverage(self.delta_x / n, self.delta_y / n, self.rotation / n,
                             min(1.0, max(0.0, self.confidence / n)), n)

    def clear(self):
        self.delta_x = 0.0
        self.delta_y = 0.0
        self.rotation = 0.0
        self.confidence = 0.0
        self.samples = 0


class FusionEngine:
    """
    Dead-reckoning position updated once per detected step.

    With fusion enabled and visual samples available since the last step,
    the stride displacement is blended with the (scaled) mean visual motion:
    camera_weight = clamp(conf * camera_weight_gain, 0, max_camera_weight).
    """

    def __init__(self, heading: HeadingTracker, config=None):
        get = config.get if config is not None else (lambda key, default=None: default)

        self.heading = heading
        self.stride_model = StrideModel(config)
        self.accumulator = VisualMotionAccumulator(get('fusion.min_sample_confidence', 0.2))

        self.enabled = bool(get('fusion.enabled', False))
        self.vo_scale = float(get('fusion.vo_scale', 10.0))
        self.camera_weight_gain = float(get('fusion.camera_weight_gain', 0.6))
        self.max_camera_weight = float(get('fusion.max_camera_weight', 0.5))
        self.heading_confidence = float(get('fusion.heading_correction_confidence', 0.5))
        self.heading_gain = float(get('fusion.heading_correction_gain', 0.3))

        self.logger = logging.getLogger(self.__class__.__name__)
        self.reset()

    def add_visual_motion(self, motion: MotionEstimate) -> bool:
        """Accumulate a visual estimate; ignored while fusion is disabled."""
        if not self.enabled:
            return False
        return self.accumulator.add(motion)

    def on_step(self, interval_s: float, timestamp: float, step_count: int) -> StepEvent:
        """
        Apply one step to the dead-reckoning position.

        Args:
            interval_s: Seconds since the previous step (inf for the first)
            timestamp: Step time in seconds
            step_count: Total steps including this one
        """
        frequency = 1.0 / interval_s
        stride = self.stride_model.stride_length(frequency)
        bearing = self.heading.heading

        imu_dx = stride * math.sin(bearing)
        imu_dy = stride * math.cos(bearing)

        visual = self.accumulator.average() if self.enabled else None
        camera_weight = 0.0
        if visual is not None:
            camera_weight = min(self.max_camera_weight,
                                max(0.0, visual.confidence * self.camera_weight_gain))
            imu_weight = 1.0 - camera_weight
            final_dx = imu_weight * imu_dx + camera_weight * (visual.delta_x * self.vo_scale)
            final_dy = imu_weight * imu_dy + camera_weight * (visual.delta_y * self.vo_scale)

            if visual.confidence > self.heading_confidence:
                self.heading.nudge(visual.rotation * camera_weight * self.heading_gain)

            self.logger.debug(
                f"Fusion: conf={visual.confidence:.3f}, cameraW={camera_weight:.3f}, "
                f"imu=({imu_dx:.3f},{imu_dy:.3f}), "
                f"vo=({visual.delta_x:.3f},{visual.delta_y:.3f}), "
                f"final=({final_dx:.3f},{final_dy:.3f})"
            )
            self.accumulator.clear()
        else:
            final_dx, final_dy = imu_dx, imu_dy

        self.x += final_dx
        self.y += final_dy
        self.path.append((self.x, self.y))

        return StepEvent(
            step_count=step_count,
            timestamp=timestamp,
            frequency=frequency,
            stride_length=stride,
            heading=bearing,
            imu_dx=imu_dx,
            imu_dy=imu_dy,
            final_dx=final_dx,
            final_dy=final_dy,
            camera_weight=camera_weight,
            fused=visual is not None,
            position=(self.x, self.y),
        )

    def set_enabled(self, enabled: bool):
        self.enabled = bool(enabled)
        self.logger.info(f"Visual fusion {'enabled' if self.enabled else 'disabled'}")

    @property
    def position(self) -> Tuple[float, float]:
        return self.x, self.y

    def get_path(self) -> List[Tuple[float, float]]:
        return list(self.path)

    def reset(self):
        self.x = 0.0
        self.y = 0.0
        self.path = [(0.0, 0.0)]
        self.accumulator.clear()
