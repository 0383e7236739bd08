"""
Frame & session store: resolves the monitoring session for a frame and keeps
the user's rolling window of recent frames.
"""

import logging
import threading
import time
import uuid
from collections.abc import Callable

from ..models import PoseFrame, Session, SessionStatus
from .repository import SessionRepository
from .window_store import WindowedStore

logger = logging.getLogger(__name__)


class PoseSessionStore:
    """
    Combines session resolution with the per-user frame window.

    Sessions are created lazily: a frame naming an unknown session id creates
    it, and a frame with no session id joins the user's active session or
    starts a new one under a generated id. A frame naming an ended session,
    or a session of another user, is treated as having no session id.
    """

    def __init__(
        self,
        window_store: WindowedStore[PoseFrame],
        session_repository: SessionRepository,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize store.

        Args:
            window_store: Buffer holding each user's recent frames
            session_repository: Session persistence
            clock: Wall clock used for session start/end times
        """
        self.window_store = window_store
        self.session_repository = session_repository
        self._clock = clock
        self._session_lock = threading.Lock()

    def get_or_create_session(self, session_id: str | None, user_id: str) -> Session:
        """
        Resolve the session for a user, creating it if needed.

        Args:
            session_id: Requested session id, or None
            user_id: Owner of the stream

        Returns:
            Existing or newly created ACTIVE session
        """
        with self._session_lock:
            session = None
            if session_id:
                session = self.session_repository.find_by_session_id(session_id)
                if session is not None and (
                    not session.is_active or session.user_id != user_id
                ):
                    logger.warning(
                        f"Session {session_id} is {session.status.value} or owned by "
                        f"another user, starting a new session for user {user_id}"
                    )
                    session_id = None
                    session = None

            if session is None and not session_id:
                session = self.session_repository.find_active_by_user(user_id)

            if session is not None:
                return session

            session = Session(
                session_id=session_id or str(uuid.uuid4()),
                user_id=user_id,
                start_time=self._clock(),
                status=SessionStatus.ACTIVE,
                total_frames=0,
            )
            self.session_repository.save_session(session)

        logger.info(f"Created session {session.session_id} for user {user_id}")
        return session

    def append_frame(
        self, user_id: str, session_id: str | None, frame: PoseFrame
    ) -> tuple[Session, list[PoseFrame]]:
        """
        Append a frame to the user's window.

        Args:
            user_id: Owner of the stream
            session_id: Requested session id, or None
            frame: Frame to append (its session_id is set to the resolved one)

        Returns:
            Tuple of (session, recent frames most recent first, frame included)
        """
        session = self.get_or_create_session(session_id, user_id)
        return session, self.append_to_session(session, frame)

    def append_to_session(self, session: Session, frame: PoseFrame) -> list[PoseFrame]:
        """Append a frame to an already resolved session."""
        frame.session_id = session.session_id
        recent = self.window_store.append(session.user_id, frame)
        session.total_frames += 1
        return recent

    def recent_frames(self, user_id: str, seconds: float) -> list[PoseFrame]:
        return self.window_store.recent_since(user_id, seconds)

    def end_session(self, session_id: str) -> Session | None:
        """
        Mark a session as ended.

        Args:
            session_id: Session to end

        Returns:
            The ended session, or None if unknown
        """
        session = self.session_repository.find_by_session_id(session_id)
        if session is None:
            logger.warning(f"Cannot end unknown session {session_id}")
            return None

        if session.status == SessionStatus.ACTIVE:
            session.status = SessionStatus.ENDED
            session.end_time = self._clock()
            self.session_repository.save_session(session)
            logger.info(
                f"Session {session_id} ended after {session.total_frames} frames"
            )
        return session

    def active_session(self, user_id: str) -> Session | None:
        return self.session_repository.find_active_by_user(user_id)
