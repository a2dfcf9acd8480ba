"""
DeadR - Utility Functions
Provides helper functions for configuration, logging, overlays and timing.
"""

import os
import copy
import time
import yaml
import logging
import colorlog
import numpy as np
import cv2
from typing import Dict, List, Optional


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config/config.yaml"):
        self.config_path = config_path
        self.config = self.load_config()

    @classmethod
    def from_dict(cls, config: Dict) -> "ConfigManager":
        """Build a manager from an in-memory dictionary (no file access)."""
        manager = cls.__new__(cls)
        manager.config_path = None
        manager.config = copy.deepcopy(config)
        return manager

    def load_config(self) -> Dict:
        """Load configuration from YAML file."""
        try:
            with open(self.config_path, 'r') as f:
                config = yaml.safe_load(f)
            if not isinstance(config, dict):
                logging.error(f"Config file is empty or malformed: {self.config_path}")
                return self._default_config()
            return config
        except FileNotFoundError:
            logging.error(f"Config file not found: {self.config_path}")
            return self._default_config()
        except yaml.YAMLError as e:
            logging.error(f"Error parsing config: {e}")
            return self._default_config()

    def _default_config(self) -> Dict:
        """Return default configuration."""
        return {
            'camera': {'source': 0, 'width': 640, 'height': 480, 'color_order': 'bgr'},
            'visual_odometry': {
                'fast_threshold': 20,
                'max_features': 1500,
                'max_features_to_track': 300,
                'ssd_threshold': 3000.0,
                'min_matches': 5,
                'pixel_to_meter': 0.001,
                'min_pose_confidence': 0.1,
            },
            'landmarks': {'max_landmarks': 500, 'match_threshold': 0.01, 'max_quality': 10},
            'step_detection': {'peak_threshold': 11.5, 'trough_threshold': 8.5, 'debounce_s': 0.25},
            'fusion': {'enabled': False, 'vo_scale': 10.0, 'camera_weight_gain': 0.6, 'max_camera_weight': 0.5},
            'logging': {'level': 'INFO', 'file': 'data/logs/deadr.log'},
            'mapping': {'maps_dir': 'data/maps'}
        }

    def get(self, key_path: str, default=None):
        """Get configuration value using dot notation (e.g., 'camera.width')."""
        keys = key_path.split('.')
        value = self.config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value


class Logger:
    """Custom logger with color output and file logging."""

    def __init__(self, name: str = "DeadR", log_file: Optional[str] = "data/logs/deadr.log",
                 log_level: int = logging.INFO):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(log_level)

        # Avoid stacking handlers when the same named logger is built twice
        if self.logger.handlers:
            return

        # Console handler with colors
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_formatter = colorlog.ColoredFormatter(
            '%(log_color)s%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%H:%M:%S',
            log_colors={
                'DEBUG': 'cyan',
                'INFO': 'green',
                'WARNING': 'yellow',
                'ERROR': 'red',
                'CRITICAL': 'red,bg_white',
            }
        )
        console_handler.setFormatter(console_formatter)
        self.logger.addHandler(console_handler)

        # File handler
        if log_file:
            os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(logging.DEBUG)
            file_formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str):
        self.logger.error(message)

    def debug(self, message: str):
        self.logger.debug(message)

    def critical(self, message: str):
        self.logger.critical(message)


class FrameProcessor:
    """Utilities for frame visualization."""

    @staticmethod
    def annotate_features(frame: np.ndarray, features: List, obstacle_color=(0, 0, 255),
                          environment_color=(0, 200, 0)) -> np.ndarray:
        """
        Draw feature points on a copy of the frame.

        Args:
            frame: Input frame (BGR or grayscale)
            features: FeaturePoint list; obstacles red, environment green

        Returns:
            Annotated BGR frame
        """
        if frame.ndim == 2:
            annotated = cv2.cvtColor(frame.astype(np.uint8), cv2.COLOR_GRAY2BGR)
        else:
            annotated = frame.copy()

        for feat in features:
            is_obstacle = getattr(feat.type, 'name', '') == 'OBSTACLE'
            color = obstacle_color if is_obstacle else environment_color
            cv2.circle(annotated, (int(feat.x), int(feat.y)), 2, color, -1)

        return annotated

    @staticmethod
    def annotate_status(frame: np.ndarray, lines: List[str]) -> np.ndarray:
        """Write status lines in the top-left corner (in place)."""
        for i, text in enumerate(lines):
            cv2.putText(frame, text, (10, 25 + i * 22),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.55, (0, 255, 0), 2)
        return frame


class PerformanceMonitor:
    """Monitor system performance and latency."""

    def __init__(self):
        self.timings = {}
        self.frame_times = []

    def start_timer(self, name: str):
        """Start a named timer."""
        self.timings[name] = time.perf_counter()

    def stop_timer(self, name: str) -> float:
        """Stop a named timer and return elapsed time in ms."""
        if name in self.timings:
            elapsed = (time.perf_counter() - self.timings[name]) * 1000
            return elapsed
        return 0.0

    def log_frame_time(self, frame_time: float):
        """Log frame processing time."""
        self.frame_times.append(frame_time)
        if len(self.frame_times) > 100:
            self.frame_times.pop(0)

    def get_avg_fps(self) -> float:
        """Get average FPS over recent frames."""
        if not self.frame_times:
            return 0.0
        avg_time = np.mean(self.frame_times)
        return 1000.0 / avg_time if avg_time > 0 else 0.0

    def get_stats(self) -> Dict[str, float]:
        """Get performance statistics."""
        if not self.frame_times:
            return {}
        return {
            'avg_frame_time_ms': float(np.mean(self.frame_times)),
            'min_frame_time_ms': float(np.min(self.frame_times)),
            'max_frame_time_ms': float(np.max(self.frame_times)),
            'fps': self.get_avg_fps()
        }


def parse_log_level(level_name: str, default: int = logging.INFO) -> int:
    """Map a level name from config/CLI ('debug', 'INFO', ...) to a logging level."""
    level = logging.getLevelName(str(level_name).upper())
    return level if isinstance(level, int) else default
