"""
Unit tests for step-based dead reckoning and visual fusion.
"""

import math
import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from navigation.fusion import FusionEngine, VisualMotionAccumulator
from navigation.motion_types import MotionEstimate
from navigation.step_detection import HeadingTracker


class MockConfig:
    """Mock configuration for testing."""

    def __init__(self, enabled=True):
        self.config = {
            'fusion.enabled': enabled,
            'fusion.vo_scale': 10.0,
            'fusion.camera_weight_gain': 0.6,
            'fusion.max_camera_weight': 0.5,
        }

    def get(self, key, default=None):
        return self.config.get(key, default)


def motion(dx=0.01, dy=0.02, rotation=0.0, confidence=0.5):
    return MotionEstimate(dx, dy, rotation, confidence, 150)


class TestVisualMotionAccumulator:
    """Test cases for VisualMotionAccumulator."""

    def test_average(self):
        acc = VisualMotionAccumulator()
        acc.add(motion(dx=0.01, confidence=0.4))
        acc.add(motion(dx=0.03, confidence=0.8))

        average = acc.average()

        assert average.samples == 2
        assert average.delta_x == pytest.approx(0.02)
        assert average.confidence == pytest.approx(0.6)

    def test_low_confidence_is_not_accumulated(self):
        acc = VisualMotionAccumulator(min_confidence=0.2)
        assert not acc.add(motion(confidence=0.2))
        assert acc.average() is None

    def test_clear(self):
        acc = VisualMotionAccumulator()
        acc.add(motion())
        acc.clear()
        assert acc.samples == 0
        assert acc.average() is None


class TestFusionEngine:
    """Test cases for FusionEngine."""

    def test_disabled_is_pure_inertial(self):
        fusion = FusionEngine(HeadingTracker(), MockConfig(enabled=False))

        assert not fusion.add_visual_motion(motion(confidence=0.9))
        event = fusion.on_step(math.inf, 0.2, 1)

        assert event.frequency == 0.0
        assert event.stride_length == 0.60
        assert not event.fused
        assert event.camera_weight == 0.0
        assert (event.final_dx, event.final_dy) == (event.imu_dx, event.imu_dy)
        assert fusion.position == (pytest.approx(0.0), pytest.approx(0.6))
        print("✓ Inertial-only step test passed")

    def test_stride_follows_cadence(self):
        fusion = FusionEngine(HeadingTracker(), MockConfig(enabled=False))
        assert fusion.on_step(0.5, 1.0, 1).stride_length == 1.00   # 2.0 Hz
        assert fusion.on_step(0.6, 1.6, 2).stride_length == 0.75   # 1.67 Hz
        assert fusion.on_step(1.0, 2.6, 3).stride_length == 0.60   # 1.0 Hz

    def test_heading_drives_direction(self):
        heading = HeadingTracker()
        heading.nudge(math.pi / 2)  # east
        fusion = FusionEngine(heading, MockConfig(enabled=False))

        event = fusion.on_step(math.inf, 0.2, 1)

        assert event.imu_dx == pytest.approx(0.6)
        assert event.imu_dy == pytest.approx(0.0, abs=1e-12)

    def test_weighted_blend(self):
        fusion = FusionEngine(HeadingTracker(), MockConfig())
        assert fusion.add_visual_motion(motion(dx=0.01, dy=0.02, confidence=0.5))

        event = fusion.on_step(math.inf, 0.2, 1)

        assert event.fused
        assert event.camera_weight == pytest.approx(0.3)
        assert event.final_dx == pytest.approx(0.7 * 0.0 + 0.3 * 0.1)
        assert event.final_dy == pytest.approx(0.7 * 0.6 + 0.3 * 0.2)
        assert fusion.position == (pytest.approx(0.03), pytest.approx(0.48))

    def test_camera_weight_is_capped(self):
        fusion = FusionEngine(HeadingTracker(), MockConfig())
        fusion.add_visual_motion(motion(confidence=1.0))

        event = fusion.on_step(math.inf, 0.2, 1)

        assert event.camera_weight == 0.5

    def test_heading_correction(self):
        heading = HeadingTracker()
        fusion = FusionEngine(heading, MockConfig())
        fusion.add_visual_motion(motion(rotation=0.2, confidence=0.9))

        event = fusion.on_step(math.inf, 0.2, 1)

        # The step itself uses the heading from before the correction
        assert event.heading == 0.0
        assert heading.heading == pytest.approx(0.2 * 0.5 * 0.3)

    def test_no_heading_correction_at_moderate_confidence(self):
        heading = HeadingTracker()
        fusion = FusionEngine(heading, MockConfig())
        fusion.add_visual_motion(motion(rotation=0.2, confidence=0.5))
        fusion.on_step(math.inf, 0.2, 1)
        assert heading.heading == 0.0

    def test_accumulator_cleared_after_step(self):
        fusion = FusionEngine(HeadingTracker(), MockConfig())
        fusion.add_visual_motion(motion())

        assert fusion.on_step(math.inf, 0.2, 1).fused
        assert not fusion.on_step(0.5, 0.7, 2).fused
        assert len(fusion.get_path()) == 3

    def test_enable_toggle(self):
        fusion = FusionEngine(HeadingTracker(), MockConfig(enabled=False))
        fusion.set_enabled(True)
        assert fusion.add_visual_motion(motion())
        fusion.set_enabled(False)
        # Samples gathered while enabled are ignored once disabled
        assert not fusion.on_step(math.inf, 0.2, 1).fused

    def test_reset(self):
        fusion = FusionEngine(HeadingTracker(), MockConfig())
        fusion.add_visual_motion(motion())
        fusion.on_step(math.inf, 0.2, 1)
        fusion.add_visual_motion(motion())

        fusion.reset()

        assert fusion.position == (0.0, 0.0)
        assert fusion.get_path() == [(0.0, 0.0)]
        assert fusion.accumulator.samples == 0
