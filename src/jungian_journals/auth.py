import hmac
import secrets
import time
from typing import Optional, Dict

from jungian_journals.config import ADMIN_ID, ADMIN_PASSWORD, ADMIN_SESSION_TTL_HOURS
from jungian_journals.database import DatabaseManager
from jungian_journals.logger import get_logger

logger = get_logger(__name__)


class AdminAuth:
    """Single-account admin login with expiring in-memory session tokens."""

    def __init__(
        self,
        admin_id: Optional[str] = ADMIN_ID,
        admin_password: Optional[str] = ADMIN_PASSWORD,
        session_ttl_hours: float = ADMIN_SESSION_TTL_HOURS
    ):
        self.admin_id = admin_id
        self.admin_password = admin_password
        self.session_ttl = session_ttl_hours * 3600
        # token -> expiry (epoch seconds)
        self._sessions: Dict[str, float] = {}

    def login(self, admin_id: str, password: str) -> Optional[str]:
        logger.info(f"Admin login attempt: {admin_id}")
        if not self.admin_id or not self.admin_password:
            logger.error("ADMIN_ID / ADMIN_PASSWORD are not configured; admin login disabled.")
            return None
        id_ok = hmac.compare_digest(admin_id or '', self.admin_id)
        password_ok = hmac.compare_digest(password or '', self.admin_password)
        if not (id_ok and password_ok):
            logger.warning("Admin login failed: bad credentials")
            return None
        self._purge_expired()
        token = secrets.token_urlsafe(32)
        self._sessions[token] = time.time() + self.session_ttl
        logger.info("Admin login succeeded")
        return token

    def logout(self, token: str) -> None:
        self._sessions.pop(token, None)

    def is_authenticated(self, token: Optional[str]) -> bool:
        expiry = self._sessions.get(token) if token else None
        if expiry is None:
            return False
        if expiry > time.time():
            return True
        self._sessions.pop(token, None)
        return False

    def _purge_expired(self) -> None:
        now = time.time()
        for token in [t for t, expiry in self._sessions.items() if expiry <= now]:
            del self._sessions[token]


def exchange_code_for_session(db: DatabaseManager, code: Optional[str]) -> bool:
    """OAuth callback: trade the provider code for a Supabase session."""
    if not code:
        return False
    try:
        db.exchange_code_for_session(code)
    except Exception as e:
        logger.error(f"Session exchange failed: {e}")
        return False
    logger.info("Session exchange succeeded")
    return True
