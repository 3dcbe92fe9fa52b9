import logging
from typing import Callable, Optional

from planner.auth import IdentityProvider, Session
from planner.events import SESSION_ENDED, SESSION_STARTED, EventBus, Handler

logger = logging.getLogger(__name__)


class SessionContext:
    """The signed-in user, passed explicitly to everything that needs one.

    ``SESSION_ENDED`` for the previous user is always published before
    ``SESSION_STARTED`` for the next, so listeners can tear down subscriptions
    bound to the old user id before new ones are opened.
    """

    def __init__(self, provider: IdentityProvider):
        self.provider = provider
        self.events = EventBus()
        self._session: Optional[Session] = None
        self.loading = True

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def user_id(self) -> Optional[str]:
        return self._session.uid if self._session else None

    @property
    def signed_in(self) -> bool:
        return self._session is not None

    def on_start(self, handler: Handler) -> Callable[[], None]:
        return self.events.subscribe(SESSION_STARTED, handler)

    def on_end(self, handler: Handler) -> Callable[[], None]:
        return self.events.subscribe(SESSION_ENDED, handler)

    async def restore(self) -> Optional[Session]:
        try:
            session = await self.provider.current_session()
        finally:
            self.loading = False
        if session is not None:
            self._begin(session)
        return session

    async def sign_in(self, email: str, password: str) -> Session:
        session = await self.provider.sign_in_with_credential(email, password)
        self._begin(session)
        return session

    async def sign_in_with_provider(self, provider: str, token: str) -> Session:
        session = await self.provider.sign_in_with_provider(provider, token)
        self._begin(session)
        return session

    async def sign_up(self, email: str, password: str) -> Session:
        session = await self.provider.sign_up(email, password)
        self._begin(session)
        return session

    async def sign_out(self) -> None:
        self._end()
        await self.provider.sign_out()

    def _begin(self, session: Session) -> None:
        if self._session is not None:
            if self._session.uid == session.uid:
                self._session = session
                return
            self._end()
        self._session = session
        self.loading = False
        logger.info("session started for %s", session.uid)
        self.events.publish(SESSION_STARTED, {"uid": session.uid, "email": session.email})

    def _end(self) -> None:
        if self._session is None:
            return
        uid = self._session.uid
        self._session = None
        logger.info("session ended for %s", uid)
        self.events.publish(SESSION_ENDED, {"uid": uid})
