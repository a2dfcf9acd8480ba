"""
Map Storage
Records landmarks and path points of a mapping session and saves them as
JSON maps that can be listed, reloaded, deleted and matched against.
"""

import json
import logging
import math
import os
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from navigation.motion_types import FeaturePoint


@dataclass
class StoredLandmark:
    id: str
    x: float
    y: float
    feature_descriptor: List[float]  # feature scores seen when recorded
    timestamp: float


@dataclass
class PathPoint:
    x: float
    y: float
    heading: float
    timestamp: float


@dataclass
class MapMetadata:
    total_distance: float
    duration: float  # seconds
    step_count: int
    average_confidence: float


@dataclass
class StoredMap:
    id: str
    name: str
    created_at: float
    landmarks: List[StoredLandmark] = field(default_factory=list)
    path_points: List[PathPoint] = field(default_factory=list)
    metadata: Optional[MapMetadata] = None

    def to_dict(self):
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StoredMap":
        metadata = data.get('metadata')
        return cls(
            id=data['id'],
            name=data['name'],
            created_at=data['created_at'],
            landmarks=[StoredLandmark(**lm) for lm in data.get('landmarks', [])],
            path_points=[PathPoint(**pp) for pp in data.get('path_points', [])],
            metadata=MapMetadata(**metadata) if metadata else None,
        )


class MapStorage:
    """JSON map files under one directory, one file per map."""

    def __init__(self, maps_dir: str = "data/maps", clock=time.time):
        """
        Args:
            maps_dir: Directory holding <map_id>.json files
            clock: Time source in seconds (injectable for tests)
        """
        self.maps_dir = maps_dir
        self.clock = clock
        self.logger = logging.getLogger(self.__class__.__name__)
        os.makedirs(self.maps_dir, exist_ok=True)

        self.current_landmarks: List[StoredLandmark] = []
        self.current_path: List[PathPoint] = []
        self.session_start = self.clock()
        self.landmark_counter = 0

    def start_session(self):
        """Start a new mapping session."""
        self.current_landmarks = []
        self.current_path = []
        self.session_start = self.clock()
        self.landmark_counter = 0
        self.logger.info("Started mapping session")

    def add_landmark(self, x: float, y: float, features: Sequence[float]):
        """Record a landmark at the current position with a score descriptor."""
        self.current_landmarks.append(StoredLandmark(
            id=f"L{self.landmark_counter}",
            x=float(x),
            y=float(y),
            feature_descriptor=[float(f) for f in features],
            timestamp=self.clock(),
        ))
        self.landmark_counter += 1

    def add_path_point(self, x: float, y: float, heading: float):
        self.current_path.append(PathPoint(float(x), float(y), float(heading), self.clock()))

    def total_distance(self) -> float:
        """Length of the recorded path in meters."""
        return sum(
            math.hypot(curr.x - prev.x, curr.y - prev.y)
            for prev, curr in zip(self.current_path, self.current_path[1:])
        )

    def save_map(self, name: str = "", step_count: int = 0, avg_confidence: float = 0.0) -> str:
        """
        Save the current session as a named map.

        Returns:
            Map id (also the file stem)
        """
        now = self.clock()
        map_id = self._unique_id(datetime.fromtimestamp(now).strftime("%Y%m%d_%H%M%S"))

        stored = StoredMap(
            id=map_id,
            name=name or f"Map_{map_id}",
            created_at=now,
            landmarks=list(self.current_landmarks),
            path_points=list(self.current_path),
            metadata=MapMetadata(
                total_distance=self.total_distance(),
                duration=now - self.session_start,
                step_count=step_count,
                average_confidence=avg_confidence,
            ),
        )

        filepath = self._path(map_id)
        with open(filepath, 'w') as f:
            json.dump(stored.to_dict(), f, indent=2)

        self.logger.info(f"Map saved to {filepath} ({len(stored.landmarks)} landmarks, "
                         f"{len(stored.path_points)} path points)")
        return map_id

    def load_map(self, map_id: str) -> Optional[StoredMap]:
        """Load a map by id; None when missing or unreadable."""
        filepath = self._path(map_id)
        if not os.path.exists(filepath):
            return None
        return self._read(filepath)

    def list_maps(self) -> List[StoredMap]:
        """All readable maps, newest first."""
        maps = []
        for filename in sorted(os.listdir(self.maps_dir)):
            if not filename.endswith('.json'):
                continue
            stored = self._read(os.path.join(self.maps_dir, filename))
            if stored is not None:
                maps.append(stored)
        return sorted(maps, key=lambda m: m.created_at, reverse=True)

    def delete_map(self, map_id: str) -> bool:
        filepath = self._path(map_id)
        if not os.path.exists(filepath):
            return False
        os.remove(filepath)
        self.logger.info(f"Deleted map {map_id}")
        return True

    def match_position(self, features: Sequence[FeaturePoint],
                       stored_map: StoredMap, max_score_diff: float = 100.0) -> Optional[Tuple[float, float]]:
        """
        Position of the stored landmark whose first descriptor value is
        closest to any current feature score.
        """
        if not stored_map.landmarks or not features:
            return None

        best = None
        best_score = math.inf
        for landmark in stored_map.landmarks:
            reference = landmark.feature_descriptor[0] if landmark.feature_descriptor else 0.0
            for feat in features:
                score = abs(reference - feat.score)
                if score < best_score and score < max_score_diff:
                    best_score = score
                    best = landmark

        return (best.x, best.y) if best is not None else None

    def get_current_landmark_count(self) -> int:
        return len(self.current_landmarks)

    def get_current_path_point_count(self) -> int:
        return len(self.current_path)

    def _read(self, filepath: str) -> Optional[StoredMap]:
        try:
            with open(filepath, 'r') as f:
                return StoredMap.from_dict(json.load(f))
        except (OSError, ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Skipping unreadable map {filepath}: {e}")
            return None

    def _unique_id(self, base: str) -> str:
        map_id = base
        suffix = 1
        while os.path.exists(self._path(map_id)):
            map_id = f"{base}_{suffix}"
            suffix += 1
        return map_id

    def _path(self, map_id: str) -> str:
        return os.path.join(self.maps_dir, f"{map_id}.json")
