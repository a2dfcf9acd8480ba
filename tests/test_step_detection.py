"""
Unit tests for step detection, stride length and heading tracking.
"""

import math
import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from navigation.motion_types import TWO_PI
from navigation.step_detection import (HeadingTracker, StepDetector, StepState, StrideModel,
                                       acceleration_magnitude, rotation_from_gravity_and_field,
                                       rotation_vector_to_matrix)


class MockConfig:
    """Mock configuration for testing."""

    def __init__(self, **overrides):
        self.config = {
            'step_detection.peak_threshold': 11.5,
            'step_detection.trough_threshold': 8.5,
            'step_detection.debounce_s': 0.25,
        }
        self.config.update(overrides)

    def get(self, key, default=None):
        return self.config.get(key, default)


def yaw_rotation_vector(theta):
    """Rotation vector (x, y, z, w) for a pure rotation about the z axis."""
    return (0.0, 0.0, math.sin(theta / 2), math.cos(theta / 2))


class TestStepDetector:
    """Test cases for StepDetector."""

    def test_peak_then_trough_is_one_step(self):
        detector = StepDetector(MockConfig())

        assert detector.update(9.8, 0.0) is None
        assert detector.update(12.0, 0.1) is None
        assert detector.state == StepState.PEAK
        assert detector.update(10.0, 0.15) is None  # between thresholds
        interval = detector.update(8.0, 0.2)

        assert interval == math.inf  # first step of a session
        assert detector.step_count == 1
        assert detector.state == StepState.IDLE
        print("✓ Single step test passed")

    def test_debounce(self):
        detector = StepDetector(MockConfig())
        detector.update(12.0, 0.1)
        detector.update(8.0, 0.2)

        # Peak 0.1 s after the last step is ignored
        assert detector.update(12.0, 0.3) is None
        assert detector.state == StepState.IDLE
        assert detector.update(8.0, 0.35) is None
        assert detector.step_count == 1

        detector.update(12.0, 0.5)
        interval = detector.update(8.0, 0.6)
        assert interval == pytest.approx(0.4)
        assert detector.step_count == 2

    def test_step_count_is_monotonic(self):
        detector = StepDetector(MockConfig())
        counts = []
        t = 0.0
        for _ in range(10):
            for magnitude in (9.8, 13.0, 7.0):
                t += 0.15
                detector.update(magnitude, t)
                counts.append(detector.step_count)

        assert counts == sorted(counts)
        assert detector.step_count == 10

    def test_set_peak_threshold(self):
        detector = StepDetector(MockConfig())
        detector.set_peak_threshold(13.0)

        detector.update(12.0, 0.1)
        assert detector.update(8.0, 0.2) is None

        detector.update(13.5, 0.3)
        assert detector.update(8.0, 0.4) == math.inf

    def test_reset(self):
        detector = StepDetector(MockConfig())
        detector.update(12.0, 0.1)
        detector.reset()

        assert detector.state == StepState.IDLE
        assert detector.step_count == 0
        assert detector.last_step_time is None


class TestStrideModel:
    """Test cases for StrideModel."""

    @pytest.mark.parametrize("frequency,expected", [
        (0.0, 0.60), (1.49, 0.60), (1.5, 0.75), (1.99, 0.75), (2.0, 1.00), (3.0, 1.00),
    ])
    def test_cadence_breakpoints(self, frequency, expected):
        assert StrideModel().stride_length(frequency) == expected

    def test_mismatched_table_raises(self):
        config = MockConfig(**{'step_detection.stride_lengths_m': [0.6, 0.8]})
        with pytest.raises(ValueError):
            StrideModel(config)


class TestOrientationMath:
    """Test cases for rotation helpers."""

    def test_acceleration_magnitude(self):
        assert acceleration_magnitude((3.0, 4.0, 0.0)) == 5.0

    def test_identity_rotation_vector(self):
        matrix = rotation_vector_to_matrix((0.0, 0.0, 0.0, 1.0))
        assert matrix.tolist() == [[1, 0, 0], [0, 1, 0], [0, 0, 1]]

    def test_scalar_part_is_derived(self):
        four = rotation_vector_to_matrix(yaw_rotation_vector(0.7))
        three = rotation_vector_to_matrix(yaw_rotation_vector(0.7)[:3])
        assert three == pytest.approx(four)

    def test_field_parallel_to_gravity(self):
        assert rotation_from_gravity_and_field((0.0, 0.0, 9.81), (0.0, 0.0, -40.0)) is None


class TestHeadingTracker:
    """Test cases for HeadingTracker."""

    def test_rotation_vector_sets_heading(self):
        tracker = HeadingTracker()

        heading = tracker.update_rotation_vector(yaw_rotation_vector(math.pi / 2))

        assert tracker.azimuth == pytest.approx(-math.pi / 2)
        assert heading == pytest.approx(3 * math.pi / 2)
        assert tracker.heading == heading

    def test_first_gyro_sample_only_sets_time(self):
        tracker = HeadingTracker()
        assert tracker.update_gyroscope((0.0, 0.0, 5.0), 1.0) == 0.0
        assert tracker.last_gyro_time == 1.0

    def test_gyro_complementary_filter(self):
        tracker = HeadingTracker()
        tracker.update_gyroscope((0.0, 0.0, 1.0), 0.0)

        heading = tracker.update_gyroscope((0.0, 0.0, 1.0), 0.1)

        # 0.98 * (0 + 1.0 * 0.1) + 0.02 * azimuth(0)
        assert heading == pytest.approx(0.098)

    def test_gyro_pulls_toward_azimuth(self):
        tracker = HeadingTracker()
        tracker.update_rotation_vector(yaw_rotation_vector(-0.5))  # azimuth 0.5
        tracker.nudge(-0.5)  # heading back to 0
        tracker.update_gyroscope((0.0, 0.0, 0.0), 0.0)

        heading = tracker.update_gyroscope((0.0, 0.0, 0.0), 0.1)

        assert heading == pytest.approx(0.02 * 0.5)

    def test_accel_mag_azimuth(self):
        tracker = HeadingTracker()

        assert tracker.update_accel_mag((0.0, 0.0, 9.81), (0.0, 20.0, -40.0))
        assert tracker.azimuth == pytest.approx(0.0)

        assert tracker.update_accel_mag((0.0, 0.0, 9.81), (20.0, 0.0, -40.0))
        assert tracker.azimuth == pytest.approx(-math.pi / 2)

        assert not tracker.update_accel_mag((0.0, 0.0, 0.0), (0.0, 20.0, -40.0))

    def test_nudge_wraps(self):
        tracker = HeadingTracker()
        assert tracker.nudge(-0.1) == pytest.approx(TWO_PI - 0.1)
        assert tracker.nudge(0.2) == pytest.approx(0.1)

    def test_still_gyro_holds_heading_west_of_north(self):
        """Negative azimuth must not drag the heading around the circle."""
        tracker = HeadingTracker()
        tracker.update_rotation_vector(yaw_rotation_vector(math.radians(10)))  # 350 deg
        expected = tracker.heading

        for i in range(101):  # 2 s at 50 Hz
            heading = tracker.update_gyroscope((0.0, 0.0, 0.0), i * 0.02)

        assert expected == pytest.approx(math.radians(350))
        assert heading == pytest.approx(expected)

    def test_gyro_blend_across_north(self):
        tracker = HeadingTracker()
        tracker.update_rotation_vector(yaw_rotation_vector(0.05))  # azimuth -0.05
        tracker.nudge(0.1)  # heading 0.05
        tracker.update_gyroscope((0.0, 0.0, 0.0), 0.0)

        heading = tracker.update_gyroscope((0.0, 0.0, 0.0), 0.02)

        assert heading == pytest.approx(0.05 - 0.02 * 0.1)

    def test_reset_reseeds_from_azimuth(self):
        tracker = HeadingTracker()
        tracker.update_accel_mag((0.0, 0.0, 9.81), (20.0, 0.0, -40.0))  # azimuth -pi/2
        tracker.nudge(1.0)
        tracker.update_gyroscope((0.0, 0.0, 1.0), 3.0)
        tracker.reset()

        assert tracker.azimuth == pytest.approx(-math.pi / 2)
        assert tracker.heading == pytest.approx(3 * math.pi / 2)
        assert tracker.last_gyro_time is None

        # Still gyro keeps the re-seeded heading
        tracker.update_gyroscope((0.0, 0.0, 0.0), 4.0)
        assert tracker.update_gyroscope((0.0, 0.0, 0.0), 4.1) == pytest.approx(3 * math.pi / 2)

    def test_reset_without_absolute_orientation(self):
        tracker = HeadingTracker()
        tracker.nudge(1.0)
        tracker.reset()
        assert tracker.heading == 0.0
