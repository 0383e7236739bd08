import numpy as np
import pytest
from conftest import (
    as_window,
    fall_frames,
    lying_landmarks,
    make_frame,
    standing_frames,
    upright_landmarks,
)

from fallwatch.detectors import FeatureExtractor, validate_landmarks
from fallwatch.exceptions import MalformedLandmarksError
from fallwatch.utils.constants import PoseLandmarks


@pytest.fixture
def extractor():
    return FeatureExtractor()


def test_center_y_is_hip_midpoint(extractor):
    assert extractor.center_y(upright_landmarks(0.6)) == pytest.approx(0.6)


def test_validate_rejects_wrong_shape():
    with pytest.raises(MalformedLandmarksError):
        validate_landmarks(np.zeros((17, 4)))


def test_validate_rejects_non_finite():
    lm = upright_landmarks(0.5)
    lm[PoseLandmarks.LEFT_HIP, 1] = np.nan
    with pytest.raises(MalformedLandmarksError):
        validate_landmarks(lm)


def test_validate_rejects_out_of_range_coordinates():
    lm = upright_landmarks(0.5)
    lm[PoseLandmarks.NOSE, 0] = 1.2
    with pytest.raises(MalformedLandmarksError):
        validate_landmarks(lm)


def test_validate_allows_any_finite_depth():
    lm = upright_landmarks(0.5)
    lm[:, 2] = -2.5
    assert validate_landmarks(lm) is lm


def test_velocity_against_previous_frame(extractor):
    previous = make_frame(upright_landmarks(0.5), 0, timestamp=10.0)
    current = make_frame(upright_landmarks(0.6), 1, timestamp=10.1)
    previous.center_y, current.center_y = 0.5, 0.6

    assert extractor.velocity_y(current, previous) == pytest.approx(1.0)
    assert extractor.velocity_y(current, None) == 0.0


def test_velocity_is_zero_for_duplicate_timestamp(extractor):
    previous = make_frame(upright_landmarks(0.5), 0, timestamp=10.0)
    current = make_frame(upright_landmarks(0.6), 1, timestamp=10.0)
    previous.center_y, current.center_y = 0.5, 0.6

    assert extractor.velocity_y(current, previous) == 0.0


def test_is_horizontal(extractor):
    assert extractor.is_horizontal(lying_landmarks(0.85))
    assert not extractor.is_horizontal(upright_landmarks(0.6))


def test_is_horizontal_requires_visible_landmarks(extractor):
    assert not extractor.is_horizontal(lying_landmarks(0.85, visibility=0.3))


def test_motion_score(extractor):
    single = as_window(standing_frames(1))
    assert extractor.motion_score(single) == 1.0

    still = as_window(standing_frames(40, center_y=0.5))
    assert extractor.motion_score(still) == 0.0

    frames = [make_frame(upright_landmarks(0.5 + 0.02 * (i % 2)), i) for i in range(10)]
    assert extractor.motion_score(as_window(frames)) == pytest.approx(0.02)


def test_body_angle(extractor):
    assert extractor.body_angle(upright_landmarks(0.6)) == pytest.approx(90.0)
    assert extractor.body_angle(lying_landmarks(0.85)) == pytest.approx(0.0)


def test_angle_change_needs_history(extractor):
    window = as_window(fall_frames()[:9])
    assert extractor.angle_change(window) == 0.0


def test_angle_change_against_reference_frame(extractor):
    window = as_window(fall_frames())
    assert extractor.angle_change(window) == pytest.approx(90.0)


def test_fall_pattern_requires_drop_and_stop(extractor):
    heights = [0.5] * 10 + [0.53, 0.59] + [0.59] * 8
    window = as_window([make_frame(upright_landmarks(y), i) for i, y in enumerate(heights)])

    assert extractor.matches_fall_pattern(window, motion_score=0.0)
    assert not extractor.matches_fall_pattern(window, motion_score=0.02)


def test_fall_pattern_ignores_slow_descent(extractor):
    heights = [0.5 + 0.01 * i for i in range(20)]
    window = as_window([make_frame(upright_landmarks(y), i) for i, y in enumerate(heights)])

    assert not extractor.matches_fall_pattern(window, motion_score=0.0)


def test_extract_populates_frame(extractor):
    window = as_window(fall_frames())
    frame = window[0]

    features = extractor.extract(frame, window)

    assert features.center_y == pytest.approx(0.85)
    assert features.velocity_y == 0.0
    assert features.is_horizontal
    assert features.motion_score < 0.01
    assert frame.velocity_y == 0.0
    assert frame.is_horizontal is True
    assert frame.motion_score == features.motion_score


def test_extract_rejects_malformed_frame(extractor):
    frame = make_frame(np.zeros((10, 4)), 0)
    with pytest.raises(MalformedLandmarksError):
        extractor.extract(frame, [frame])
