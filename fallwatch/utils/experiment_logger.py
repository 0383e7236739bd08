"""
Incident data logger for fall detection analysis.

Saves detailed data for every emitted fall event:
- Landmark positions of the triggering frame
- Derived features and confidence
- Which scoring signals fired
- Center height trace leading up to the event
"""

import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any

import numpy as np
import numpy.typing as npt

from ..models import FallDetectionResult, FallEvent

logger = logging.getLogger(__name__)


class ExperimentDataLogger:
    """
    Logger for incident data collection and analysis.

    Saves fall events with detailed information for offline analysis and
    threshold tuning.
    """

    def __init__(self, output_dir: Path):
        """
        Initialize incident data logger.

        Args:
            output_dir: Directory to save incident data
        """
        self.output_dir = Path(output_dir)
        self.data_dir = self.output_dir / "data"
        self.data_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"ExperimentDataLogger initialized: {output_dir}")

    def generate_event_id(self, event: FallEvent) -> str:
        """
        Build a file-safe identifier for an event.

        Format: YYYYMMDD_HHMMSS_<user>_<id>
        """
        stamp = datetime.fromtimestamp(event.detected_at).strftime("%Y%m%d_%H%M%S")
        return f"{stamp}_{event.user_id}_{event.id}"

    def save_fall_event(
        self,
        event: FallEvent,
        result: FallDetectionResult,
        landmarks: npt.NDArray[np.float64] | None,
        metadata: dict[str, Any] | None = None,
    ) -> Path:
        """
        Save fall event data to JSON file.

        Args:
            event: Emitted fall event
            result: Detection result that produced it
            landmarks: (33, 4) array of pose landmarks [x, y, z, visibility]
            metadata: Additional metadata (optional)

        Returns:
            Path to saved JSON file
        """
        event_id = self.generate_event_id(event)

        data = {
            "event_id": event_id,
            "event": event.to_dict(),
            "timestamp": event.detected_at,
            "confidence": result.confidence,
            "severity": result.severity.value,
            "features": asdict(result.features) if result.features else None,
            "triggered_conditions": list(result.signals),
            "motion_before": event.motion_before,
            "metadata": metadata or {},
        }

        if landmarks is not None:
            data["landmarks"] = {
                "shape": list(landmarks.shape),
                "data": landmarks.tolist(),
            }

        json_path = self.data_dir / f"{event_id}.json"
        with open(json_path, "w") as f:
            json.dump(data, f, indent=2)

        logger.info(f"Saved incident data: {json_path}")
        return json_path

    def load_event_data(self, event_id: str) -> dict[str, Any] | None:
        """
        Load event data from file.

        Args:
            event_id: Event identifier

        Returns:
            Event data dictionary or None if not found
        """
        json_path = self.data_dir / f"{event_id}.json"

        if not json_path.exists():
            logger.warning(f"Incident data not found: {event_id}")
            return None

        with open(json_path) as f:
            data: dict[str, Any] = json.load(f)

        # Convert landmarks back to numpy array
        if "landmarks" in data:
            data["landmarks"] = np.array(data["landmarks"]["data"])

        return data

    def list_events(self) -> list[str]:
        """
        List all saved event IDs.

        Returns:
            List of event IDs
        """
        return sorted(f.stem for f in self.data_dir.glob("*.json"))

    def get_statistics(self) -> dict[str, Any]:
        """
        Get statistics about saved incident data.

        Returns:
            Dictionary with statistics
        """
        event_ids = self.list_events()
        data_size = sum(f.stat().st_size for f in self.data_dir.glob("*.json"))

        return {
            "total_events": len(event_ids),
            "data_dir": str(self.data_dir),
            "events": event_ids,
            "data_size_mb": data_size / (1024 * 1024),
        }

    def __repr__(self) -> str:
        stats = self.get_statistics()
        return (
            f"ExperimentDataLogger("
            f"events={stats['total_events']}, "
            f"size={stats['data_size_mb']:.1f}MB)"
        )
