"""
DeadR - Visual-Inertial Dead Reckoning

Replays a recorded walk (video + IMU log) or a live camera through the
motion engine:
- FAST-like corner tracking and median-flow visual odometry
- Sparse landmark map
- Step detection with confidence-weighted visual fusion
"""

import sys
import os
import csv
import argparse
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

# Add src to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from utils import ConfigManager, Logger, FrameProcessor, PerformanceMonitor, parse_log_level
from core.error_handler import ErrorHandler
from core.frame_worker import FrameWorker
from navigation.feature_detection import count_by_type
from navigation.map_storage import MapStorage
from navigation.motion_engine import MotionEngine
from navigation.motion_types import FeatureType, MotionEstimate, StepEvent


SENSOR_ALIASES = {
    'accel': 'accel', 'accelerometer': 'accel', 'acc': 'accel',
    'gyro': 'gyro', 'gyroscope': 'gyro',
    'rotation': 'rotation', 'rotation_vector': 'rotation', 'orientation': 'rotation',
    'mag': 'mag', 'magnetometer': 'mag',
}


@dataclass
class SensorSample:
    timestamp: float  # seconds
    sensor: str
    values: Tuple[float, ...]


def load_imu_log(path: str) -> List[SensorSample]:
    """
    Read an IMU CSV log: timestamp,sensor,x,y,z[,w].

    Timestamps are seconds relative to the first video frame.

    A header row and malformed rows are skipped. Samples are returned in
    timestamp order (stable for equal timestamps).
    """
    samples = []
    with open(path, 'r', newline='') as f:
        for line_no, row in enumerate(csv.reader(f), start=1):
            if not row or row[0].strip().startswith('#'):
                continue
            try:
                timestamp = float(row[0])
                sensor = SENSOR_ALIASES[row[1].strip().lower()]
                values = tuple(float(v) for v in row[2:] if v.strip() != '')
            except (ValueError, IndexError, KeyError):
                if line_no > 1:
                    logging.warning(f"Skipping malformed IMU row {line_no}: {row}")
                continue
            if len(values) < 3:
                logging.warning(f"Skipping IMU row {line_no}: expected at least 3 values")
                continue
            samples.append(SensorSample(timestamp, sensor, values))

    samples.sort(key=lambda s: s.timestamp)
    return samples


class DeadReckoningRunner:
    """Feeds frames and IMU samples to a MotionEngine and records the session."""

    def __init__(self, config: ConfigManager, fusion: Optional[bool] = None,
                 mapping: bool = False, maps_dir: Optional[str] = None):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

        self.engine = MotionEngine(config)
        if fusion is not None:
            self.engine.set_fusion_enabled(fusion)

        self.mapping = mapping
        self.landmark_confidence = config.get('mapping.landmark_confidence', 0.5)
        self.storage = MapStorage(maps_dir or config.get('mapping.maps_dir', 'data/maps'))
        if mapping:
            self.storage.start_session()

        self.error_handler = ErrorHandler(self.logger)
        self.perf = PerformanceMonitor()
        self.confidences: List[float] = []
        self.steps: List[StepEvent] = []

        self.engine.add_motion_listener(self._on_motion)

    def _on_motion(self, motion: MotionEstimate):
        self.confidences.append(motion.confidence)
        if self.mapping and motion.confidence > self.landmark_confidence:
            x, y = self.engine.get_position()
            scores = [f.score for f in self.engine.get_current_features()]
            self.storage.add_landmark(x, y, scores)

    def dispatch_sample(self, sample: SensorSample) -> Optional[StepEvent]:
        """Route one IMU sample to the matching engine ingestion point."""
        if sample.sensor == 'accel':
            event = self.engine.process_accelerometer_sample(sample.values, sample.timestamp)
            if event is not None:
                self.steps.append(event)
                if self.mapping:
                    self.storage.add_path_point(event.position[0], event.position[1], event.heading)
            return event
        if sample.sensor == 'gyro':
            self.engine.process_gyroscope_sample(sample.values, sample.timestamp)
        elif sample.sensor == 'rotation':
            self.engine.process_orientation_sample(sample.values)
        elif sample.sensor == 'mag':
            self.engine.process_magnetometer_sample(sample.values)
        return None

    def process_frame(self, frame: np.ndarray) -> Optional[MotionEstimate]:
        self.perf.start_timer('frame')
        motion = self.engine.process_frame(frame)
        self.perf.log_frame_time(self.perf.stop_timer('frame'))
        return motion

    def replay(self, video_path: str, imu_samples: List[SensorSample],
               display: bool = False, max_frames: Optional[int] = None) -> int:
        """
        Replay a video file, interleaving IMU samples by timestamp.

        Returns:
            Number of frames processed
        """
        cap = cv2.VideoCapture(video_path)
        if not cap.isOpened():
            self.logger.error(f"Cannot open video: {video_path}")
            return 0

        fps = cap.get(cv2.CAP_PROP_FPS) or 30.0
        next_sample = 0
        frames = 0
        try:
            while max_frames is None or frames < max_frames:
                ret, frame = cap.read()
                if not ret:
                    break

                timestamp = frames / fps
                while next_sample < len(imu_samples) and imu_samples[next_sample].timestamp <= timestamp:
                    self.dispatch_sample(imu_samples[next_sample])
                    next_sample += 1

                self.error_handler.safe_execute(self.process_frame, frame)
                frames += 1

                if display and not self._show(frame):
                    break
        finally:
            cap.release()
            if display:
                cv2.destroyAllWindows()

        # Steps recorded after the last frame still count
        for sample in imu_samples[next_sample:]:
            self.dispatch_sample(sample)

        self.logger.info(f"Replayed {frames} frames and {len(imu_samples)} IMU samples")
        return frames

    def run_live(self, camera_index: int = 0, display: bool = True,
                 max_frames: Optional[int] = None) -> int:
        """Process a live camera on a latest-only worker thread."""
        cap = cv2.VideoCapture(camera_index)
        if not cap.isOpened():
            self.logger.error(f"Cannot open camera {camera_index}")
            return 0

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.get('camera.width', 640))
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.get('camera.height', 480))

        worker = FrameWorker(self.process_frame, error_handler=self.error_handler)
        worker.start()
        frames = 0
        try:
            while max_frames is None or frames < max_frames:
                ret, frame = cap.read()
                if not ret:
                    break
                worker.submit(frame)
                frames += 1
                if display and not self._show(frame):
                    break
        except KeyboardInterrupt:
            self.logger.info("Interrupted")
        finally:
            worker.stop()
            cap.release()
            if display:
                cv2.destroyAllWindows()

        self.logger.info(f"Live session: {worker.processed} frames processed, {worker.dropped} dropped")
        return worker.processed

    def _show(self, frame: np.ndarray) -> bool:
        features = self.engine.get_current_features()
        pose = self.engine.get_current_pose()
        x, y = self.engine.get_position()
        motion = self.engine.get_last_motion()
        confidence = motion.confidence if motion is not None else 0.0

        annotated = FrameProcessor.annotate_features(frame, features)
        FrameProcessor.annotate_status(annotated, [
            f"Features: {len(features)} | Landmarks: {self.engine.get_landmark_count()}",
            f"VO pose: ({pose.x:.3f}, {pose.y:.3f}) heading {np.degrees(pose.heading):.1f}",
            f"Steps: {self.engine.get_step_count()} | DR: ({x:.2f}, {y:.2f})",
            f"Confidence: {confidence:.2f} | FPS: {self.perf.get_avg_fps():.1f}",
        ])
        cv2.imshow('DeadR', annotated)
        return (cv2.waitKey(1) & 0xFF) != ord('q')

    def average_confidence(self) -> float:
        return float(np.mean(self.confidences)) if self.confidences else 0.0

    def save_map(self, name: str = "") -> str:
        return self.storage.save_map(name, self.engine.get_step_count(), self.average_confidence())

    def summary(self) -> Dict:
        pose = self.engine.get_current_pose()
        features = self.engine.get_current_features()
        x, y = self.engine.get_position()
        return {
            'frames': self.engine.get_frame_count(),
            'steps': self.engine.get_step_count(),
            'fused_steps': sum(1 for s in self.steps if s.fused),
            'position': (x, y),
            'heading_deg': float(np.degrees(self.engine.get_heading())),
            'vo_pose': (pose.x, pose.y, float(np.degrees(pose.heading))),
            'landmarks': self.engine.get_landmark_count(),
            'obstacle_features': count_by_type(features, FeatureType.OBSTACLE),
            'environment_features': count_by_type(features, FeatureType.ENVIRONMENT),
            'avg_confidence': self.average_confidence(),
            'errors': self.error_handler.total_errors(),
            'performance': self.perf.get_stats(),
        }


def main():
    parser = argparse.ArgumentParser(description='DeadR visual-inertial dead reckoning')
    parser.add_argument('--config', type=str, default='config/config.yaml',
                        help='Path to config file')
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument('--video', type=str, help='Recorded video to replay')
    source.add_argument('--camera', type=int, help='Live camera index')
    parser.add_argument('--imu', type=str, help='IMU CSV log (timestamp,sensor,x,y,z[,w])')
    parser.add_argument('--fusion', action='store_true',
                        help='Blend visual motion into step displacement')
    parser.add_argument('--step-threshold', type=float, help='Accelerometer peak threshold (m/s^2)')
    parser.add_argument('--save-map', type=str, nargs='?', const='', default=None,
                        help='Save the session map (optional name)')
    parser.add_argument('--no-display', action='store_true', help='Run without a window')
    parser.add_argument('--max-frames', type=int, help='Stop after this many frames')
    parser.add_argument('--log-level', type=str, help='Override logging.level from config')
    args = parser.parse_args()

    config = ConfigManager(args.config)
    log_level = parse_log_level(args.log_level or config.get('logging.level', 'INFO'))
    Logger(name='', log_file=config.get('logging.file', 'data/logs/deadr.log'), log_level=log_level)

    fusion = True if args.fusion else None
    runner = DeadReckoningRunner(config, fusion=fusion, mapping=args.save_map is not None)
    if args.step_threshold is not None:
        runner.engine.set_step_threshold(args.step_threshold)

    if args.video:
        if not os.path.exists(args.video):
            logging.error(f"Video not found: {args.video}")
            return 1
        samples = load_imu_log(args.imu) if args.imu else []
        runner.replay(args.video, samples, display=not args.no_display, max_frames=args.max_frames)
    else:
        runner.run_live(args.camera, display=not args.no_display, max_frames=args.max_frames)

    summary = runner.summary()
    for key, value in summary.items():
        logging.info(f"{key}: {value}")

    if args.save_map is not None:
        map_id = runner.save_map(args.save_map)
        logging.info(f"Saved map {map_id}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
