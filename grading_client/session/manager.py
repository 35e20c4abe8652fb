import json
import threading
from collections.abc import Callable
from dataclasses import asdict

from grading_client.api.exceptions import MalformedResponseError
from grading_client.api.gateway import ApiGateway
from grading_client.api.models import User
from grading_client.api.validator import build_user
from grading_client.logging.logger import Log
from grading_client.session.models import Session
from grading_client.storage.base import BaseStorage
from grading_client.storage.exceptions import StorageError

SessionListener = Callable[[bool], None]


class SessionManager:
    """Owns the single current Session and its persistence.

    Listeners are called with ``expired=True`` when the backend rejected the
    token and with ``expired=False`` on an explicit logout. They run outside
    the manager's lock and at most once per ended session.
    """

    TOKEN_KEY = "access_token"
    USER_KEY = "user"

    def __init__(self, storage: BaseStorage, gateway: ApiGateway) -> None:
        self._storage = storage
        self._gateway = gateway
        self._session: Session | None = None
        self._listeners: list[SessionListener] = []
        self._lock = threading.RLock()
        gateway.set_unauthorized_handler(self.notify_unauthorized)

    @property
    def current(self) -> Session | None:
        with self._lock:
            return self._session

    @property
    def is_authenticated(self) -> bool:
        return self.current is not None

    def add_listener(self, listener: SessionListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def restore(self) -> bool:
        """Re-establish a persisted session without asking the server.

        A revoked token is only discovered by the first call that uses it.
        """
        try:
            token = self._storage.get(self.TOKEN_KEY)
            raw_user = self._storage.get(self.USER_KEY)
        except StorageError as exc:
            Log.warning(f"Discarding unreadable session store: {exc}")
            self._clear_storage()
            return False
        if not token or not raw_user:
            if token or raw_user:
                Log.warning("Discarding incomplete persisted session")
                self._clear_storage()
            else:
                Log.debug("No persisted session found")
            return False
        try:
            user = build_user(json.loads(raw_user))
        except (ValueError, MalformedResponseError) as exc:
            Log.warning(f"Discarding unreadable persisted session: {exc}")
            self._clear_storage()
            return False
        with self._lock:
            self._session = Session(token=token, user=user)
        Log.info(f"Restored session for {user.username}")
        return True

    def login(self, username: str, password: str) -> Session:
        """Authenticate, persist token and user together, and return the new Session.

        Raises:
            AuthError: credentials rejected.
            NetworkError: backend unreachable.
            ApiError: any other classified failure.
            StorageError: the session could not be persisted.
        """
        response = self._gateway.login(username, password)
        session = Session(token=response.access_token, user=response.user)
        self._storage.set_items(
            {
                self.TOKEN_KEY: session.token,
                self.USER_KEY: json.dumps(asdict(session.user)),
            }
        )
        with self._lock:
            self._session = session
        return session

    def logout(self) -> None:
        """Clear the session and persisted state. Never raises."""
        ended = self._end_session()
        Log.info("Logged out")
        if ended:
            self._fire(expired=False)

    def notify_unauthorized(self, session: Session | None = None) -> None:
        """Handle a 401 from a backend call made with ``session``.

        Clears everything like ``logout`` when ``session`` carries the current
        token. A 401 for a token that is no longer current is ignored. Only the
        call that actually ended a session signals listeners, so concurrent
        401s produce one transition.
        """
        with self._lock:
            if not self._is_current(session):
                Log.info("Ignoring 401 for a token that is no longer current")
                return
            ended = self._end_session()
        if ended:
            Log.warning("Session expired; backend rejected the token")
            self._fire(expired=True)

    def verify(self) -> User:
        """Validate the current token against the backend and refresh the cached user."""
        session = self.current
        user = self._gateway.current_user(session)
        with self._lock:
            if session is None or self._session is not session:
                return user
            self._session = Session(token=session.token, user=user)
        try:
            self._storage.set_items({self.USER_KEY: json.dumps(asdict(user))})
        except StorageError as exc:
            Log.error(f"Could not refresh cached user: {exc}")
        return user

    def _is_current(self, session: Session | None) -> bool:
        if self._session is None or session is None:
            return self._session is session
        return self._session.token == session.token

    def _end_session(self) -> bool:
        with self._lock:
            ended = self._session is not None
            self._session = None
            self._clear_storage()
        return ended

    def _clear_storage(self) -> None:
        try:
            self._storage.remove_items([self.TOKEN_KEY, self.USER_KEY])
        except StorageError as exc:
            Log.error(f"Could not clear persisted session: {exc}")

    def _fire(self, *, expired: bool) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(expired)
