import logging
import secrets
import time
from typing import Dict, List, Optional

from . import config
from .auth import SIGNED_IN, SIGNED_OUT, INITIAL_SESSION, AuthError, AuthState
from .feed import NeoFeed

logger = logging.getLogger(__name__)


class DashboardSession:
    """Everything one browser session holds: its feed, its user, its notices."""

    def __init__(self, session_id: str):
        self.id = session_id
        self.feed = NeoFeed()
        self.auth = AuthState()
        self.access_token: Optional[str] = None
        self.notices: List[str] = []

    @property
    def user(self):
        return self.auth.user

    async def sign_in(self, identity, email: str, password: str) -> bool:
        self.auth.loading = True
        self.auth.error = None
        try:
            token, user = await identity.sign_in(email, password)
        except AuthError as exc:
            self._auth_failed(exc)
            return False
        self.access_token = token
        self.auth.apply(SIGNED_IN, user)
        self.notices.append("Signed in successfully!")
        return True

    async def sign_up(self, identity, email: str, password: str, name: Optional[str] = None) -> bool:
        self.auth.loading = True
        self.auth.error = None
        try:
            token, user = await identity.sign_up(email, password, name)
        except AuthError as exc:
            self._auth_failed(exc)
            return False
        if token:
            self.access_token = token
            self.auth.apply(SIGNED_IN, user)
            self.notices.append("Account created!")
        else:
            self.auth.loading = False
            self.notices.append("Account created! Please check your email for verification.")
        return True

    async def sign_out(self, identity) -> None:
        token, self.access_token = self.access_token, None
        self.auth.apply(SIGNED_OUT, None)
        self.auth.error = None
        self.feed = NeoFeed()
        if token is None:
            return
        try:
            await identity.sign_out(token)
        except AuthError as exc:
            logger.error("Provider sign out failed: %s", exc)
            self.notices.append("Sign out completed but there was an issue with the server")
            return
        self.notices.append("Signed out successfully")

    async def resolve_token(self, identity, token: str) -> None:
        """Adopt a bearer token presented by an API caller."""

        if token == self.access_token and self.user is not None:
            return
        try:
            user = await identity.get_user(token)
        except AuthError as exc:
            logger.info("Rejected bearer token: %s", exc)
            return
        if user is not None:
            self.access_token = token
            self.auth.apply(INITIAL_SESSION, user)

    def pop_notices(self) -> List[str]:
        notices, self.notices = self.notices, []
        return notices + self.feed.pop_notices()

    def _auth_failed(self, exc: AuthError) -> None:
        logger.warning("Authentication failed: %s", exc)
        self.auth.error = str(exc)
        self.auth.loading = False


class SessionStore:
    """Live page sessions, bounded by idle time and by count.

    Entries are kept in least-recently-used order; bearer tokens map to the
    session that first resolved them.
    """

    def __init__(self, idle_ttl: Optional[float] = None, max_sessions: Optional[int] = None, clock=time.monotonic):
        self.idle_ttl = config.SESSION_IDLE_TTL if idle_ttl is None else idle_ttl
        self.max_sessions = config.SESSION_MAX if max_sessions is None else max_sessions
        self._clock = clock
        self._sessions: Dict[str, DashboardSession] = {}
        self._seen: Dict[str, float] = {}
        self._tokens: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: Optional[str]) -> Optional[DashboardSession]:
        if not session_id or session_id not in self._sessions:
            return None
        now = self._clock()
        if now - self._seen[session_id] > self.idle_ttl:
            self.drop(session_id)
            return None
        # re-insert to keep LRU order
        self._sessions[session_id] = self._sessions.pop(session_id)
        self._seen[session_id] = now
        return self._sessions[session_id]

    def get_by_token(self, token: str) -> Optional[DashboardSession]:
        session = self.get(self._tokens.get(token))
        if session is None:
            self._tokens.pop(token, None)
        return session

    def new(self) -> DashboardSession:
        """A session that is not stored until ``add`` is called."""

        return DashboardSession(secrets.token_urlsafe(32))

    def add(self, session: DashboardSession) -> DashboardSession:
        self._prune()
        while len(self._sessions) >= self.max_sessions:
            oldest = next(iter(self._sessions))
            logger.info("Session store full, evicting %s", oldest[:8])
            self.drop(oldest)
        self._sessions[session.id] = session
        self._seen[session.id] = self._clock()
        if session.access_token:
            self._tokens[session.access_token] = session.id
        return session

    def create(self) -> DashboardSession:
        return self.add(self.new())

    def bind_token(self, session: DashboardSession) -> None:
        if session.access_token and session.id in self._sessions:
            self._tokens[session.access_token] = session.id

    def drop(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._seen.pop(session_id, None)
        for token in [t for t, sid in self._tokens.items() if sid == session_id]:
            del self._tokens[token]

    def clear(self) -> None:
        self._sessions.clear()
        self._seen.clear()
        self._tokens.clear()

    def _prune(self) -> None:
        now = self._clock()
        expired = [sid for sid, seen in self._seen.items() if now - seen > self.idle_ttl]
        for sid in expired:
            self.drop(sid)
