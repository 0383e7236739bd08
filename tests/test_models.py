from datetime import datetime

import pytest
from conftest import T0

from fallwatch.models import FallEvent, PoseFrame, Severity


def landmark_dicts(y=0.5):
    return [{"x": 0.5, "y": y, "z": 0.0, "visibility": 0.9} for _ in range(33)]


def test_from_dict_camel_case():
    frame = PoseFrame.from_dict(
        {
            "userId": 42,
            "sessionId": "s-1",
            "timestamp": T0,
            "frameNumber": 3,
            "overallConfidence": 0.8,
            "landmarks": landmark_dicts(),
        }
    )

    assert frame.user_id == "42"
    assert frame.session_id == "s-1"
    assert frame.frame_number == 3
    assert frame.overall_confidence == 0.8
    assert frame.landmarks.shape == (33, 4)
    assert frame.has_full_skeleton


def test_from_dict_snake_case_and_iso_timestamp():
    stamp = datetime(2024, 5, 1, 12, 0, 0)
    frame = PoseFrame.from_dict(
        {
            "user_id": "u",
            "timestamp": stamp.isoformat(),
            "landmarks": [[0.5, 0.5, 0.0, 0.9]] * 33,
        }
    )

    assert frame.timestamp == stamp.timestamp()
    assert frame.session_id is None
    assert frame.overall_confidence is None


def test_from_dict_bad_landmarks_become_empty():
    frame = PoseFrame.from_dict({"userId": "u", "timestamp": T0, "landmarks": [{"x": "left"}]})
    assert frame.landmarks.shape == (0, 4)
    assert not frame.has_full_skeleton


def test_from_dict_requires_user():
    with pytest.raises(ValueError):
        PoseFrame.from_dict({"timestamp": T0, "landmarks": []})


def test_severity_order_and_description():
    ranks = [s.rank for s in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)]
    assert ranks == [0, 1, 2, 3]
    assert Severity.CRITICAL.description == "critical"


def test_event_to_dict():
    event = FallEvent(
        id=1,
        user_id="u",
        session_id="s",
        detected_at=T0,
        severity=Severity.MEDIUM,
        confidence_score=0.712345,
        body_angle=12.3456,
    )
    data = event.to_dict()

    assert data["detectedAt"] == datetime.fromtimestamp(T0).isoformat()
    assert data["severityLabel"] == "moderate"
    assert data["confidenceScore"] == 0.7123
    assert data["bodyAngle"] == 12.35
    assert data["status"] == "DETECTED"
