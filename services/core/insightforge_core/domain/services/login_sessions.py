"""Stored browser login sessions.

Cookies captured from a user's remote browser are kept encrypted with
``CryptoService`` in ``login_sessions``. A user has at most one active
session: saving a new one deactivates the previous ones in the same commit.
Sessions that have expired or can no longer be decrypted (e.g. after a key
rotation) are deactivated and reported as absent, which sends the run back
through the login handoff.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from insightforge_core.domain.models import LoginSession, utcnow
from insightforge_core.infrastructure.crypto import ALGORITHM, CryptoService, DecryptionError

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "browserless"


@dataclass
class ActiveSession:
    """Decrypted view of the active login session."""

    session_id: int
    user_id: int
    cookies: list[dict[str, Any]]
    expires_at: Optional[datetime] = None


class LoginSessionService:
    """Encrypts, stores and retrieves browser cookies per user."""

    def __init__(self, db: Session, crypto: CryptoService):
        self.db = db
        self.crypto = crypto

    def _active_rows(self, user_id: int) -> list[LoginSession]:
        return (
            self.db.query(LoginSession)
            .filter(LoginSession.user_id == user_id, LoginSession.is_active.is_(True))
            .order_by(LoginSession.id.desc())
            .all()
        )

    def _deactivate(self, row: LoginSession, reason: str) -> None:
        row.is_active = False
        row.updated_at = utcnow()
        self.db.commit()
        logger.warning(f"Deactivated login session {row.id} for user {row.user_id}: {reason}")

    def get_active_session(
        self, user_id: int, now: Optional[datetime] = None
    ) -> Optional[ActiveSession]:
        """Newest usable session for ``user_id``, or None."""
        now = now or utcnow()
        for row in self._active_rows(user_id):
            if row.expires_at is not None and row.expires_at <= now:
                self._deactivate(row, "expired")
                continue
            try:
                cookies = self.crypto.decrypt_json(row.encrypted_payload)
            except DecryptionError:
                self._deactivate(row, "payload could not be decrypted")
                continue
            return ActiveSession(
                session_id=row.id,
                user_id=row.user_id,
                cookies=list(cookies or []),
                expires_at=row.expires_at,
            )
        return None

    def deactivate_sessions(self, user_id: int) -> int:
        """Deactivate every active session of ``user_id``; returns how many."""
        result = self.db.execute(
            update(LoginSession)
            .where(LoginSession.user_id == user_id, LoginSession.is_active.is_(True))
            .values(is_active=False, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        self.db.commit()
        if result.rowcount:
            logger.info(f"Deactivated {result.rowcount} login sessions for user {user_id}")
        return result.rowcount

    def save_session(
        self,
        user_id: int,
        cookies: list[dict[str, Any]],
        expires_at: Optional[datetime] = None,
        provider: str = DEFAULT_PROVIDER,
    ) -> LoginSession:
        """Store ``cookies`` as the user's only active session."""
        now = utcnow()
        self.db.execute(
            update(LoginSession)
            .where(LoginSession.user_id == user_id, LoginSession.is_active.is_(True))
            .values(is_active=False, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        row = LoginSession(
            user_id=user_id,
            provider=provider,
            encrypted_payload=self.crypto.encrypt_json(cookies),
            encryption_algorithm=ALGORITHM,
            expires_at=expires_at,
            is_active=True,
        )
        self.db.add(row)
        self.db.commit()
        logger.info(f"Saved login session {row.id} for user {user_id} ({len(cookies)} cookies)")
        return row


__all__ = ["ActiveSession", "LoginSessionService"]
