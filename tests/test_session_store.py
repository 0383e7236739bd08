from conftest import FakeClock, make_frame, upright_landmarks

from fallwatch.models import SessionStatus
from fallwatch.store import InMemorySessionRepository, InMemoryWindowStore, PoseSessionStore


def make_store(clock=None):
    return PoseSessionStore(
        InMemoryWindowStore(), InMemorySessionRepository(), clock=clock or FakeClock(100.0)
    )


def test_first_frame_creates_active_session():
    store = make_store()
    frame = make_frame(upright_landmarks(0.5), 0)

    session, recent = store.append_frame("user-1", None, frame)

    assert session.status == SessionStatus.ACTIVE
    assert session.user_id == "user-1"
    assert session.total_frames == 1
    assert session.start_time == 100.0
    assert frame.session_id == session.session_id
    assert recent == [frame]


def test_frames_without_session_id_reuse_active_session():
    store = make_store()
    first, _ = store.append_frame("user-1", None, make_frame(upright_landmarks(0.5), 0))
    second, recent = store.append_frame("user-1", None, make_frame(upright_landmarks(0.5), 1))

    assert second is first
    assert second.total_frames == 2
    assert [f.frame_number for f in recent] == [1, 0]


def test_unknown_session_id_is_created_under_that_id():
    store = make_store()
    session, _ = store.append_frame("user-1", "cam-7", make_frame(upright_landmarks(0.5), 0))

    assert session.session_id == "cam-7"
    assert session.total_frames == 1
    assert store.session_repository.find_by_session_id("cam-7") is session


def test_end_session():
    clock = FakeClock(100.0)
    store = make_store(clock)
    session, _ = store.append_frame("user-1", None, make_frame(upright_landmarks(0.5), 0))

    clock.now = 160.0
    ended = store.end_session(session.session_id)

    assert ended.status == SessionStatus.ENDED
    assert ended.end_time == 160.0
    assert store.active_session("user-1") is None

    new_session, _ = store.append_frame("user-1", None, make_frame(upright_landmarks(0.5), 1))
    assert new_session.session_id != session.session_id
    assert new_session.is_active


def test_end_unknown_session():
    assert make_store().end_session("missing") is None


def test_users_get_separate_windows():
    store = make_store()
    store.append_frame("user-1", None, make_frame(upright_landmarks(0.5), 0, user_id="user-1"))
    _, recent = store.append_frame(
        "user-2", None, make_frame(upright_landmarks(0.5), 0, user_id="user-2")
    )

    assert len(recent) == 1
    assert len(store.recent_frames("user-1", 5.0)) == 1


def test_frame_naming_ended_session_starts_new_one():
    store = make_store()
    first, _ = store.append_frame("user-1", "s1", make_frame(upright_landmarks(0.5), 0))
    store.end_session("s1")

    session, _ = store.append_frame("user-1", "s1", make_frame(upright_landmarks(0.5), 1))

    assert session.session_id != "s1"
    assert session.is_active
    assert session.total_frames == 1
    assert first.total_frames == 1
    assert store.active_session("user-1") is session


def test_frame_naming_other_users_session_starts_own_session():
    store = make_store()
    store.append_frame("user-1", "s1", make_frame(upright_landmarks(0.5), 0, user_id="user-1"))

    session, _ = store.append_frame(
        "user-2", "s1", make_frame(upright_landmarks(0.5), 0, user_id="user-2")
    )

    assert session.session_id != "s1"
    assert session.user_id == "user-2"
    assert store.session_repository.find_by_session_id("s1").total_frames == 1
