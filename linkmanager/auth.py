"""
Single-password access gate.

The browser never sees the password hash: a successful login hands out a
signed session token whose ``ver`` claim must match the session version kept
in the app config. Changing the password or logging out bumps that version,
which revokes every token issued before.

Passwords are stored as argon2 hashes. A bare hex SHA-256 ``passwordHash``
left by older configs is still accepted and upgraded on the next login.
"""
import hashlib
import logging
import re
import secrets
import threading
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from jose import JWTError, jwt

from .config import DEFAULT_PASSWORD, SESSION_MAX_AGE
from .errors import OldPasswordIncorrect, WrongPassword
from .models import AppConfig
from .storage import KeyValueStore, load_config, save_config

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SUBJECT = "owner"

_LEGACY_HASH = re.compile(r"^[0-9a-f]{64}$")
_secret_lock = threading.Lock()

ph = PasswordHasher()


def hash_password(password: str) -> str:
    return ph.hash(password)


def legacy_hash(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def is_legacy_hash(hashed: str) -> bool:
    return bool(_LEGACY_HASH.match(hashed))


def verify_password(password: str, hashed: str) -> bool:
    if is_legacy_hash(hashed):
        return secrets.compare_digest(legacy_hash(password), hashed)
    try:
        return ph.verify(hashed, password)
    except (VerificationError, InvalidHashError):
        return False


@lru_cache
def default_password_hash() -> str:
    return hash_password(DEFAULT_PASSWORD)


def ensure_session_secret(store: KeyValueStore) -> str:
    """Return the stored signing key, generating and saving it on first use."""
    with _secret_lock:
        cfg = load_config(store)
        if not cfg.session_secret:
            cfg.session_secret = secrets.token_urlsafe(32)
            save_config(store, cfg)
            logger.info("generated a new session signing key")
        return cfg.session_secret


class AuthGate:
    def __init__(
        self,
        store: KeyValueStore,
        secret_key: Optional[str] = None,
        max_age: int = SESSION_MAX_AGE,
    ):
        self.store = store
        self.max_age = max_age
        self._secret_key = secret_key

    def _config(self) -> AppConfig:
        return load_config(self.store)

    @property
    def secret_key(self) -> str:
        if not self._secret_key:
            self._secret_key = ensure_session_secret(self.store)
        return self._secret_key

    def current_password_hash(self) -> str:
        cfg = self._config()
        if cfg.password_hash:
            return cfg.password_hash
        return default_password_hash()

    def authenticate(self, password: str) -> bool:
        return verify_password(password, self.current_password_hash())

    def _upgrade_hash(self, password: str):
        cfg = self._config()
        if not cfg.password_hash:
            return
        if is_legacy_hash(cfg.password_hash) or ph.check_needs_rehash(cfg.password_hash):
            cfg.password_hash = hash_password(password)
            save_config(self.store, cfg)
            logger.info("password hash upgraded")

    def issue_token(self, now: Optional[datetime] = None) -> str:
        current_time = now if now is not None else datetime.now(timezone.utc)
        claims = {
            "sub": SUBJECT,
            "ver": self._config().session_version,
            "exp": current_time + timedelta(seconds=self.max_age),
        }
        return jwt.encode(claims, self.secret_key, algorithm=ALGORITHM)

    def is_request_authenticated(self, token: Optional[str]) -> bool:
        if not token:
            return False
        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[ALGORITHM])
        except JWTError:
            return False
        if claims.get("sub") != SUBJECT:
            return False
        return claims.get("ver") == self._config().session_version

    def login(self, password: str) -> str:
        if not self.authenticate(password):
            logger.warning("login rejected: wrong password")
            raise WrongPassword()
        self._upgrade_hash(password)
        return self.issue_token()

    def change_password(self, old: str, new: str) -> str:
        """Store the new password and return a fresh token; older tokens stop working."""
        if not self.authenticate(old):
            logger.warning("password change rejected: old password incorrect")
            raise OldPasswordIncorrect()
        cfg = self._config()
        cfg.password_hash = hash_password(new)
        cfg.session_version += 1
        save_config(self.store, cfg)
        logger.info("password changed, session version now %d", cfg.session_version)
        return self.issue_token()

    def revoke_sessions(self):
        cfg = self._config()
        cfg.session_version += 1
        save_config(self.store, cfg)
        logger.info("sessions revoked, session version now %d", cfg.session_version)
