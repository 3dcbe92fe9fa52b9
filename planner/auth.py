import asyncio
import hashlib
import logging
import re
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
from uuid import uuid4

from planner.errors import AuthError

logger = logging.getLogger(__name__)

INVALID_CREDENTIAL = "auth/invalid-credential"
INVALID_EMAIL = "auth/invalid-email"
EMAIL_IN_USE = "auth/email-already-in-use"
WEAK_PASSWORD = "auth/weak-password"
UNKNOWN_PROVIDER = "auth/unknown-provider"

MIN_PASSWORD_LENGTH = 6
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_MESSAGES = {
    INVALID_CREDENTIAL: "No user found or incorrect password. Please try again.",
    INVALID_EMAIL: "Please enter a valid email address.",
    EMAIL_IN_USE: "This email is already in use.",
    WEAK_PASSWORD: "Password should be at least 6 characters.",
    UNKNOWN_PROVIDER: "This sign-in method is not available.",
}


def auth_error_message(code: str) -> str:
    return _MESSAGES.get(code, "An unexpected error occurred. Please try again.")


@dataclass(frozen=True)
class Session:
    uid: str
    email: Optional[str]
    provider: str = "password"


class IdentityProvider(ABC):

    @abstractmethod
    async def current_session(self) -> Optional[Session]:
        pass

    @abstractmethod
    async def sign_in_with_credential(self, email: str, password: str) -> Session:
        pass

    @abstractmethod
    async def sign_in_with_provider(self, provider: str, token: str) -> Session:
        pass

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> Session:
        """Register a password account and sign it in."""

    @abstractmethod
    async def sign_out(self) -> None:
        pass


PBKDF2_ITERATIONS = 100_000


def _hash_password(password: str, salt: str) -> str:
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), PBKDF2_ITERATIONS)
    return digest.hex()


class InMemoryIdentityProvider(IdentityProvider):
    """Process-local accounts; federated identities are provisioned on first sign-in."""

    def __init__(self, providers: Tuple[str, ...] = ("google",)):
        self.providers = providers
        self._accounts: Dict[str, Tuple[str, str, str]] = {}   # email -> (uid, salt, hash)
        self._federated: Dict[Tuple[str, str], str] = {}       # (provider, token) -> uid
        self._current: Optional[Session] = None

    async def current_session(self) -> Optional[Session]:
        await asyncio.sleep(0)
        return self._current

    async def sign_up(self, email: str, password: str) -> Session:
        await asyncio.sleep(0)
        email = (email or "").strip().lower()
        if not EMAIL_RE.match(email):
            raise AuthError(INVALID_EMAIL)
        if email in self._accounts:
            raise AuthError(EMAIL_IN_USE)
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(WEAK_PASSWORD)
        salt = secrets.token_hex(8)
        uid = uuid4().hex
        self._accounts[email] = (uid, salt, _hash_password(password, salt))
        logger.info("registered account %s", uid)
        self._current = Session(uid=uid, email=email)
        return self._current

    async def sign_in_with_credential(self, email: str, password: str) -> Session:
        await asyncio.sleep(0)
        email = (email or "").strip().lower()
        if not EMAIL_RE.match(email):
            raise AuthError(INVALID_EMAIL)
        account = self._accounts.get(email)
        if account is None or not secrets.compare_digest(account[2], _hash_password(password or "", account[1])):
            raise AuthError(INVALID_CREDENTIAL)
        self._current = Session(uid=account[0], email=email)
        return self._current

    async def sign_in_with_provider(self, provider: str, token: str) -> Session:
        await asyncio.sleep(0)
        if provider not in self.providers:
            raise AuthError(UNKNOWN_PROVIDER)
        if not token:
            raise AuthError(INVALID_CREDENTIAL)
        uid = self._federated.setdefault((provider, token), uuid4().hex)
        self._current = Session(uid=uid, email=None, provider=provider)
        return self._current

    async def sign_out(self) -> None:
        await asyncio.sleep(0)
        self._current = None
