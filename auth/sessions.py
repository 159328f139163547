"""
auth/sessions.py -- In-process refresh token index (RefreshTokenStore).

Two indices, both owned here and kept mutually consistent:
  _by_token: token_key -> SessionRecord   (primary)
  _by_user:  user_id   -> token_key       (at most one live session per user)

token_key is HMAC-SHA256(SECRET_KEY, raw_refresh_token). Every public method
takes the raw bearer value and hashes it first; the raw value never enters
either index.

Concurrency:
  Request handlers run in a threadpool and the expiry sweep runs from the
  event loop, all against one shared instance. Every compound mutation
  (put, rotate, delete, revoke_user, sweep_expired) holds self._lock for its
  whole read-check-write region, so:
    - the revoke-on-reissue delete and the insert in put() are one unit;
    - two concurrent put()s for the same user leave both indices agreeing on
      a single winner;
    - rotate() lets exactly one of N concurrent refreshes of the same token
      succeed.

Lifetime: constructed once in the application lifespan and shared through
app.state -- not a module-level global. Contents do not survive restart.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from auth.models import SessionRecord
from auth.tokens import refresh_token_key

logger = logging.getLogger("nutritrack.auth.sessions")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefreshTokenStore:
    """Keyed index of session records plus a per-user secondary index.

    Usage:
        store = RefreshTokenStore(settings.secret_key)
        store.put(raw_token, user_id, expires_at)
        record = store.get(raw_token)
        store.delete(raw_token)
        store.sweep_expired()
    """

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key
        self._lock = threading.Lock()
        self._by_token: dict[str, SessionRecord] = {}
        self._by_user: dict[str, str] = {}

    def _key(self, raw_token: str) -> str:
        return refresh_token_key(raw_token, self._secret_key)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, raw_token: str) -> SessionRecord | None:
        """Return the session record for a raw refresh token, or None."""
        key = self._key(raw_token)
        with self._lock:
            return self._by_token.get(key)

    def get_by_user(self, user_id: str) -> SessionRecord | None:
        """Return the user's current session record, or None."""
        with self._lock:
            key = self._by_user.get(user_id)
            return self._by_token.get(key) if key is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_token)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, raw_token: str, user_id: str, expires_at: datetime) -> SessionRecord:
        """Insert a new session, revoking any other session the user holds.

        This is the single-session enforcement point: the superseded record is
        removed from _by_token before the new one becomes reachable, under the
        same lock, so no reader can observe both.
        """
        record = SessionRecord(token_key=self._key(raw_token), user_id=user_id, expires_at=expires_at)
        with self._lock:
            self._insert_locked(record)
        return record

    def rotate(self, old_raw_token: str, new_raw_token: str, expires_at: datetime) -> SessionRecord | None:
        """Atomically replace old_raw_token with a new session for the same user.

        Returns the new record, or None if old_raw_token is no longer stored
        (already rotated, revoked, swept or superseded) -- in which case nothing
        changes. Of several concurrent rotations of one token, exactly one wins.
        """
        old_key = self._key(old_raw_token)
        new_key = self._key(new_raw_token)
        with self._lock:
            old = self._by_token.get(old_key)
            if old is None:
                return None
            record = SessionRecord(token_key=new_key, user_id=old.user_id, expires_at=expires_at)
            self._remove_locked(old)
            self._insert_locked(record)
        return record

    def delete(self, raw_token: str) -> bool:
        """Remove a session. Returns True if a record was removed.

        The user index entry is only cleared if it still points at this token,
        so a stale delete cannot orphan a newer session.
        """
        key = self._key(raw_token)
        with self._lock:
            record = self._by_token.get(key)
            if record is None:
                return False
            self._remove_locked(record)
        return True

    def revoke_user(self, user_id: str) -> bool:
        """Remove the user's current session, if any. Returns True if one was removed."""
        with self._lock:
            key = self._by_user.get(user_id)
            if key is None:
                return False
            record = self._by_token.get(key)
            if record is None:
                # Index drift; heal it rather than leave a dangling entry.
                del self._by_user[user_id]
                return False
            self._remove_locked(record)
        return True

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Delete every record with expires_at < now from both indices.

        Meant for a periodic background task, not the request path. Returns the
        number of records removed.
        """
        now = now or _utcnow()
        with self._lock:
            expired = [record for record in self._by_token.values() if record.is_expired(now)]
            for record in expired:
                self._remove_locked(record)
        if expired:
            logger.info("Swept %d expired refresh session(s)", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._by_token.clear()
            self._by_user.clear()

    # ------------------------------------------------------------------
    # Lock-held helpers -- callers must hold self._lock
    # ------------------------------------------------------------------

    def _insert_locked(self, record: SessionRecord) -> None:
        previous_key = self._by_user.get(record.user_id)
        if previous_key is not None and previous_key != record.token_key:
            self._by_token.pop(previous_key, None)
            logger.debug("Superseded previous refresh session for user %s", record.user_id)
        self._by_token[record.token_key] = record
        self._by_user[record.user_id] = record.token_key

    def _remove_locked(self, record: SessionRecord) -> None:
        self._by_token.pop(record.token_key, None)
        if self._by_user.get(record.user_id) == record.token_key:
            del self._by_user[record.user_id]
