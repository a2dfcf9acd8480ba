"""
Unit tests for grayscale conversion.
"""

import numpy as np
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from navigation.grayscale import to_grayscale


class TestGrayscale:
    """Test cases for to_grayscale."""

    def test_channel_weights_bgr(self):
        frame = np.zeros((1, 3, 3), dtype=np.uint8)
        frame[0, 0] = (0, 0, 255)    # red
        frame[0, 1] = (0, 255, 0)    # green
        frame[0, 2] = (255, 0, 0)    # blue

        gray = to_grayscale(frame)

        assert gray.dtype == np.int32
        assert gray.tolist() == [[76, 149, 29]]
        print("✓ BGR luminance weights test passed")

    def test_rgb_order(self):
        frame = np.zeros((1, 1, 3), dtype=np.uint8)
        frame[0, 0] = (255, 0, 0)  # red in RGB order
        assert to_grayscale(frame, color_order='rgb')[0, 0] == 76

    def test_truncates_instead_of_rounding(self):
        frame = np.zeros((1, 2, 3), dtype=np.uint8)
        frame[0, 0] = (0, 0, 2)  # 0.598 -> 0
        frame[0, 1] = (0, 1, 0)  # 0.587 -> 0
        assert to_grayscale(frame).tolist() == [[0, 0]]

    def test_neutral_grey_ramp_is_unchanged(self):
        levels = np.arange(256, dtype=np.uint8)
        frame = np.dstack([levels, levels, levels]).reshape(1, 256, 3)

        gray = to_grayscale(frame)

        assert gray[0].tolist() == list(range(256))
        print("✓ Grey ramp test passed")

    def test_alpha_channel_ignored(self):
        frame = np.zeros((2, 2, 4), dtype=np.uint8)
        frame[:, :, 1] = 255
        frame[:, :, 3] = 255
        assert (to_grayscale(frame) == 149).all()

    def test_gray_input_passthrough(self):
        gray = np.arange(12, dtype=np.uint8).reshape(3, 4)
        result = to_grayscale(gray)

        assert result.shape == (3, 4)
        assert np.array_equal(result, gray)
        result[0, 0] = 99
        assert gray[0, 0] == 0  # copy, not a view
