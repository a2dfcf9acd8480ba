"""
Unit tests for SSD patch tracking.
"""

import pytest
import numpy as np
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from navigation.feature_tracking import FeatureTracker
from navigation.motion_types import FeaturePoint, FeatureType


def create_noise_frame(width=120, height=120, seed=0):
    """Random texture: every 7x7 patch is unique."""
    rng = np.random.RandomState(seed)
    return rng.randint(0, 256, (height, width)).astype(np.int32)


class TestFeatureTracker:
    """Test cases for FeatureTracker."""

    def test_tracks_shifted_texture(self):
        """Scene shifted right by 4 and down by 1 (both on the search lattice)."""
        prev = create_noise_frame()
        curr = np.roll(prev, shift=(1, 4), axis=(0, 1))
        features = [
            FeaturePoint(40.0, 40.0, 16.0, FeatureType.OBSTACLE),
            FeaturePoint(60.0, 50.0, 12.0, FeatureType.ENVIRONMENT),
            FeaturePoint(80.0, 70.0, 14.0, FeatureType.OBSTACLE),
        ]

        matches = FeatureTracker().track(prev, curr, features)

        assert len(matches) == 3
        for match, feat in zip(matches, features):
            assert (match.curr.x, match.curr.y) == (feat.x + 4, feat.y + 1)
            assert match.ssd == 0.0
            # Score and label travel with the track
            assert match.curr.score == feat.score
            assert match.curr.type == feat.type
        print(f"✓ Shift tracking test passed ({len(matches)} matches)")

    def test_unrelated_frames_do_not_match(self):
        prev = create_noise_frame(seed=1)
        curr = create_noise_frame(seed=2)
        features = [FeaturePoint(float(x), 60.0, 12.0) for x in range(30, 100, 10)]

        assert FeatureTracker().track(prev, curr, features) == []

    def test_feature_near_border_is_skipped(self):
        prev = create_noise_frame()
        curr = np.roll(prev, shift=(1, 1), axis=(0, 1))  # offset 1 is on the lattice
        features = [FeaturePoint(2.0, 2.0, 12.0), FeaturePoint(50.0, 50.0, 12.0)]

        matches = FeatureTracker().track(prev, curr, features)

        assert len(matches) == 1
        assert matches[0].prev.x == 50.0
        assert (matches[0].curr.x, matches[0].curr.y) == (51.0, 51.0)

    def test_zero_offset_is_not_searched(self):
        """A still scene is only matched at the nearest lattice offset."""
        prev = create_noise_frame()
        assert FeatureTracker().track(prev, prev.copy(), [FeaturePoint(50.0, 50.0, 12.0)]) == []

    def test_frame_smaller_than_patch(self):
        prev = create_noise_frame()
        assert FeatureTracker().track(prev, np.zeros((5, 5), dtype=np.int32),
                                      [FeaturePoint(50.0, 50.0, 12.0)]) == []

    def test_sampling_stride(self):
        tracker = FeatureTracker()
        many = [FeaturePoint(float(i), 0.0, 12.0) for i in range(700)]
        few = many[:250]

        sampled = tracker.sample(many)
        assert len(sampled) == 350  # stride 700 // 300 = 2
        assert sampled[1].x == 2.0
        assert tracker.sample(few) == few
