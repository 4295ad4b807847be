"""
In-memory stores for cross-request flow state.

The browser only carries an opaque flow key (in the signed session cookie);
the records themselves stay server-side so that consumption can be made
atomic. Data is lost when the application restarts, which simply expires
any in-flight flows.
"""

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime

from codegrant.core.domain import AuthenticatedSession, AuthorizationRequestState
from codegrant.core.ports import AuthorizationRequestStateStore, SecurityContextRepository


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryAuthorizationRequestStateStore(AuthorizationRequestStateStore):
    """
    Thread-safe store of in-flight authorization requests.

    One record per flow key; starting a new flow under the same key
    replaces the previous record. The lock is never held across I/O.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._records: dict[str, AuthorizationRequestState] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def save(self, key: str, state: AuthorizationRequestState) -> None:
        now = self._clock()
        with self._lock:
            expired = [k for k, record in self._records.items() if record.is_expired(now)]
            for k in expired:
                del self._records[k]
            self._records[key] = state

        if expired:
            logger.debug(f"Purged {len(expired)} expired authorization request(s)")

    def pop(self, key: str) -> AuthorizationRequestState | None:
        with self._lock:
            record = self._records.pop(key, None)

        if record is None:
            return None
        if record.is_expired(self._clock()):
            logger.info(
                "Discarded expired authorization request",
                extra={"configuration_id": record.configuration_id},
            )
            return None
        return record

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class InMemorySecurityContextRepository(SecurityContextRepository):
    """Holds the single AuthenticatedSession of each browser session."""

    def __init__(self):
        self._sessions: dict[str, AuthenticatedSession] = {}
        self._lock = threading.Lock()

    def save(self, key: str, session: AuthenticatedSession) -> None:
        with self._lock:
            self._sessions[key] = session

    def load(self, key: str) -> AuthenticatedSession | None:
        with self._lock:
            return self._sessions.get(key)

    def clear(self, key: str) -> bool:
        with self._lock:
            return self._sessions.pop(key, None) is not None
