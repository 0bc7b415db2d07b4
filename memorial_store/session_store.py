"""
Wizard session storage in Redis.

Each browser session owns one ``WizardState``, stored as JSON under
``wizard:<session_id>`` with a sliding TTL. A second key guards the final
submission so a repeated click cannot create a duplicate order.
"""
import hashlib
import logging
import uuid
from typing import Optional

from memorial_store.atomic_scripts import AtomicScripts
from memorial_store.config import Config
from memorial_store.exceptions import SessionNotFoundError, SubmissionInProgressError
from memorial_store.redis_client import get_redis_client
from memorial_store.wizard import WizardState

logger = logging.getLogger(__name__)


class WizardSessionStore:
    """Service for wizard session persistence"""

    def __init__(self, redis=None):
        self.redis = redis or get_redis_client()
        self.scripts = AtomicScripts(self.redis)

    def _get_session_key(self, session_id: str) -> str:
        """Generate Redis key for a wizard session"""
        return f"wizard:{session_id}"

    def _get_lock_key(self, session_id: str) -> str:
        """Generate Redis key for the submission lock"""
        return f"wizard:{session_id}:submit"

    def _hash_session_id(self, session_id: str) -> str:
        """Hash session ID for logging (no PII)"""
        return hashlib.sha256(session_id.encode()).hexdigest()[:8]

    def create(self) -> WizardState:
        """Start a new wizard session"""
        state = WizardState.new(uuid.uuid4().hex)
        self.scripts.save_session(
            self._get_session_key(state.session_id),
            state.model_dump_json(),
            Config.WIZARD_SESSION_TTL_SECONDS,
            must_exist=False
        )
        logger.info(
            "Wizard session created",
            extra={"hashed_session_id": self._hash_session_id(state.session_id)}
        )
        return state

    def get(self, session_id: str) -> WizardState:
        """Load a wizard session"""
        payload = self.redis.get(self._get_session_key(session_id))
        if payload is None:
            raise SessionNotFoundError(session_id)
        return WizardState.model_validate_json(payload)

    def save(self, state: WizardState) -> WizardState:
        """Store a wizard session and refresh its TTL"""
        saved = self.scripts.save_session(
            self._get_session_key(state.session_id),
            state.model_dump_json(),
            Config.WIZARD_SESSION_TTL_SECONDS
        )
        if not saved:
            raise SessionNotFoundError(state.session_id)
        return state

    def delete(self, session_id: str) -> bool:
        deleted = self.redis.delete(self._get_session_key(session_id), self._get_lock_key(session_id))
        return deleted > 0

    def acquire_submission_lock(self, session_id: str) -> str:
        """
        Claim the submission slot for a session.

        Returns:
            Token to pass to release_submission_lock

        Raises:
            SubmissionInProgressError: If another submission holds the lock
        """
        token = uuid.uuid4().hex
        acquired = self.redis.set(
            self._get_lock_key(session_id),
            token,
            ex=Config.SUBMISSION_LOCK_TTL_SECONDS,
            nx=True
        )
        if not acquired:
            logger.warning(
                "Duplicate submission rejected",
                extra={"hashed_session_id": self._hash_session_id(session_id)}
            )
            raise SubmissionInProgressError(session_id)
        return token

    def release_submission_lock(self, session_id: str, token: Optional[str]) -> bool:
        if not token:
            return False
        return self.scripts.release_lock(self._get_lock_key(session_id), token) == 1
