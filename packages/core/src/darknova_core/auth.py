"""Authentication helpers and the session provider.

Usernames are mapped to a synthetic email-shaped login identifier
(``username@darknova.app``) by one fixed transform used on signup and login.
"""

# Standard library
import logging
import threading
import uuid
import warnings
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

# Third-party
from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext

# Local
from darknova_core.config import load_settings
from darknova_core.domain import User
from darknova_core.events import ChangeEvent, ChangeFeed
from darknova_core.repositories.base import UserRepository

_settings = load_settings()

logger = logging.getLogger("darknova_core.auth")

SECRET_KEY = _settings.secret_key or "dev-insecure-secret-key-change-me"

if SECRET_KEY == "dev-insecure-secret-key-change-me":
    warnings.warn(
        "Using insecure default SECRET_KEY. Set a proper one in your environment!",
        RuntimeWarning,
    )
    logger.warning("auth: insecure default SECRET_KEY in use; set a proper one in env")

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = 12
LOGIN_DOMAIN = _settings.login_domain
INVALID_CREDENTIALS = "Ungültiger Benutzername oder Passwort"

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# jti -> token expiry (epoch seconds); entries are dropped once the token has expired
_revoked: Dict[str, float] = {}
_revoked_lock = threading.Lock()


def login_identifier(username: str, domain: Optional[str] = None) -> str:
    """Map a username to its login identifier; case-insensitive."""
    return f"{username.strip().lower()}@{domain or LOGIN_DOMAIN}"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a hashed value."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def hash_password(password: str) -> str:
    """Return a hashed representation of ``password``."""
    return pwd_context.hash(password)


def authenticate_user(username: str, password: str, users: UserRepository) -> Optional[User]:
    """Return the ``User`` when ``username``/``password`` match a stored account."""
    creds = users.get_credentials(login_identifier(username))
    if not creds:
        return None
    user, password_hash = creds
    if not verify_password(password, password_hash):
        return None
    return user


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT access token containing ``data``.

    A random ``jti`` is added so an individual token can be revoked on sign-out.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))
    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token_raw(token: str) -> Dict:
    """Decode a JWT token without translating exceptions."""
    return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])


def decode_token(token: str) -> Dict:
    """Safe decode a JWT token with controlled exceptions; revoked tokens are invalid."""
    try:
        payload = decode_token_raw(token)
    except ExpiredSignatureError as e:
        raise ExpiredSignatureError("Token expired") from e
    except JWTError as e:
        raise JWTError("Invalid token") from e
    if is_revoked(payload):
        raise JWTError("Token revoked")
    return payload


def revoke_token(token: str) -> None:
    try:
        payload = decode_token_raw(token)
    except JWTError:
        return
    jti = payload.get("jti")
    if jti:
        with _revoked_lock:
            _revoked[jti] = float(payload.get("exp", 0))
        prune_revoked()


def prune_revoked(now: Optional[datetime] = None) -> int:
    """Forget revocations of tokens that have expired anyway; returns how many were dropped."""
    cutoff = (now or datetime.now(timezone.utc)).timestamp()
    with _revoked_lock:
        expired = [jti for jti, exp in _revoked.items() if exp <= cutoff]
        for jti in expired:
            del _revoked[jti]
    return len(expired)


def is_revoked(payload: Dict) -> bool:
    jti = payload.get("jti")
    with _revoked_lock:
        return bool(jti) and jti in _revoked


class SessionProvider:
    """Sign-in/sign-out over a user repository.

    Keeps the identity of the last signed-in user for single-user callers and,
    with the local adapter, persists it in the store's session slot. Servers
    shared by many clients pass ``track_current=False`` and resolve every caller
    from its token instead. Auth state changes are published on ``changes`` as
    ``("auth", "signed_in"|"signed_out")``.
    """

    def __init__(
        self,
        users: UserRepository,
        store=None,
        session_key: str = "darknovaUser",
        track_current: bool = True,
    ):
        self._users = users
        self._store = store
        self._session_key = session_key
        self._track_current = track_current
        self._current: Optional[User] = None
        self._token: Optional[str] = None
        self.changes = ChangeFeed()
        if store is not None and track_current:
            saved = store.read(session_key)
            if saved and saved.get("id"):
                self._current = users.get(saved["id"])

    def current_identity(self, token: Optional[str] = None) -> Optional[User]:
        """Resolve ``token`` to a user, or return the provider's own session."""
        if token is None:
            return self._current
        try:
            payload = decode_token(token)
        except JWTError:
            return None
        login = payload.get("sub")
        if not login:
            return None
        return self._users.get_by_login(login)

    def sign_in(self, username: str, password: str) -> Optional[str]:
        user = authenticate_user(username, password, self._users)
        if user is None:
            logging.getLogger("darknova_api.auth").warning("auth.sign_in fail username=%s", username)
            return None
        token = create_access_token({"sub": login_identifier(user.username), "role": user.role.value})
        if self._track_current:
            self._current = user
            self._token = token
            if self._store is not None:
                self._store.write(self._session_key, {"id": user.id, "username": user.username, "role": user.role.value})
        logging.getLogger("darknova_api.auth").info("auth.sign_in ok id=%s username=%s", user.id, user.username)
        self.changes.publish("auth", "signed_in", user.id)
        return token

    def sign_out(self, token: Optional[str] = None) -> None:
        own = token is None or token == self._token
        token = token or self._token
        user = self._current if own else self.current_identity(token)
        if token:
            revoke_token(token)
        if own:
            self._current = None
            self._token = None
            if self._store is not None:
                self._store.remove(self._session_key)
        logging.getLogger("darknova_api.auth").info("auth.sign_out id=%s", getattr(user, "id", None))
        self.changes.publish("auth", "signed_out", getattr(user, "id", None))

    def subscribe(self, listener: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        return self.changes.subscribe(listener)


__all__ = [
    "login_identifier",
    "verify_password",
    "hash_password",
    "authenticate_user",
    "create_access_token",
    "decode_token_raw",
    "decode_token",
    "revoke_token",
    "is_revoked",
    "prune_revoked",
    "SessionProvider",
    "INVALID_CREDENTIALS",
    "ExpiredSignatureError",
    "JWTError",
]
