"""
API-key access gate

Tokens look like ``cvk_<prefix>_<secret>``. The prefix is stored in clear and
indexed, so a presented token costs one lookup and one bcrypt check. Only the
bcrypt hash of the secret is persisted; the full token is kept for 24 hours in
the in-process reveal cache right after issuance.
"""

import asyncio
import logging
import secrets
import uuid
from datetime import UTC, datetime, timedelta

import bcrypt
from sqlalchemy.orm import Session, sessionmaker

from cloudvault.cache_utils import get_revealed_key, remove_revealed_key, store_revealed_key
from cloudvault.db import as_utc
from cloudvault.errors import AuthError, NotFoundOrUnauthorized, RateLimitExceeded
from cloudvault.logger import audit_logger
from cloudvault.models.api_key import ApiKey
from cloudvault.repositories.api_key_repository import ApiKeyRepository
from cloudvault.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

TOKEN_SCHEME = "cvk"
RATE_WINDOW = timedelta(hours=1)


def generate_token() -> tuple[str, str, str]:
    """Return ``(prefix, secret, token)`` for a new key."""
    prefix = secrets.token_hex(8)
    secret = secrets.token_urlsafe(32)
    return prefix, secret, f"{TOKEN_SCHEME}_{prefix}_{secret}"


def parse_token(token: str | None) -> tuple[str, str] | None:
    if not token:
        return None
    parts = token.strip().split("_", 2)
    if len(parts) != 3 or parts[0] != TOKEN_SCHEME or not parts[1] or not parts[2]:
        return None
    return parts[1], parts[2]


def hash_secret(secret: str) -> str:
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_secret(secret: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def is_trial_expired(api_key: ApiKey, now: datetime | None = None) -> bool:
    if not api_key.is_trial or api_key.trial_expires_at is None:
        return False
    return as_utc(api_key.trial_expires_at) <= (now or datetime.now(UTC))


def mark_key_used(key_id: uuid.UUID, session_factory: sessionmaker[Session]) -> None:
    """Stamp ``last_used_at``. Runs after the response, on its own session."""
    with session_factory() as db:
        try:
            ApiKeyRepository(db).touch_last_used(key_id)
        except Exception:
            logger.warning(f"Failed to update last_used_at for API key {key_id}", exc_info=True)
            db.rollback()


def prune_usage(db: Session) -> int:
    """Delete call records that fell out of the rate window and can no longer count."""
    return ApiKeyRepository(db).prune_usage(datetime.now(UTC) - RATE_WINDOW)


class ApiKeyGate:
    def __init__(self, db: Session):
        self.db = db
        self.keys = ApiKeyRepository(db)
        self.users = UserRepository(db)

    async def authenticate(self, bearer_token: str | None) -> ApiKey:
        """Resolve a presented token to its key, whose ``user_id`` is the acting user.

        Raises:
            AuthError: malformed or unknown token, wrong secret, inactive key,
                expired trial (even while active) or suspended owner
        """
        parsed = parse_token(bearer_token)
        if parsed is None:
            raise AuthError("API key required")
        prefix, secret = parsed

        api_key = self.keys.get_by_prefix(prefix)
        if api_key is None:
            raise AuthError()
        if not await asyncio.to_thread(verify_secret, secret, api_key.key_hash):
            raise AuthError()
        if not api_key.is_active:
            raise AuthError("API key is inactive")
        if is_trial_expired(api_key):
            raise AuthError("API key trial period has expired")

        owner = self.users.get_user_by_id(api_key.user_id)
        if owner is None or not owner.is_active:
            raise AuthError("Account suspended")
        return api_key

    def enforce_rate_limit(self, api_key: ApiKey, endpoint: str, method: str) -> None:
        """Count the call against the owner's hourly plan ceiling and record it.

        Raises:
            RateLimitExceeded: the owner already used up the trailing hour's calls
        """
        owner = self.users.get_user_by_id(api_key.user_id)
        if owner is not None and not owner.is_admin and owner.plan is not None:
            since = datetime.now(UTC) - RATE_WINDOW
            if self.keys.count_calls_since(owner.id, since) >= owner.plan.api_calls_per_hour:
                raise RateLimitExceeded()
        self.keys.record_usage(api_key.user_id, api_key.id, endpoint, method)

    def issue_key(
        self,
        user_id: uuid.UUID,
        name: str,
        is_trial: bool = False,
        trial_expires_at: datetime | None = None,
        application_id: uuid.UUID | None = None,
    ) -> tuple[ApiKey, str]:
        """Create a key and park its plaintext in the reveal cache. Returns ``(key, token)``."""
        prefix, secret, token = generate_token()
        api_key = self.keys.create_api_key(
            user_id=user_id,
            name=name,
            key_prefix=prefix,
            key_hash=hash_secret(secret),
            is_trial=is_trial,
            trial_expires_at=trial_expires_at,
            application_id=application_id,
        )
        store_revealed_key(api_key.id, token, user_id)
        audit_logger.log_event("api_key_issued", user_id=user_id, key_id=api_key.id, is_trial=is_trial)
        return api_key, token

    def list_keys(self, user_id: uuid.UUID) -> list[ApiKey]:
        return self.keys.get_api_keys_by_user_id(user_id)

    def _owned(self, key_id: uuid.UUID, user_id: uuid.UUID) -> ApiKey:
        api_key = self.keys.get_by_id_and_owner(key_id, user_id)
        if api_key is None:
            raise NotFoundOrUnauthorized("API key not found")
        return api_key

    def revoke_key(self, key_id: uuid.UUID, user_id: uuid.UUID) -> ApiKey:
        api_key = self.keys.deactivate(self._owned(key_id, user_id))
        remove_revealed_key(key_id)
        audit_logger.log_event("api_key_revoked", user_id=user_id, key_id=key_id)
        return api_key

    def reveal_key(self, key_id: uuid.UUID, user_id: uuid.UUID) -> str:
        self._owned(key_id, user_id)
        token = get_revealed_key(key_id, user_id)
        if token is None:
            raise NotFoundOrUnauthorized("API key can no longer be revealed")
        return token

    def revoke_any(self, key_id: uuid.UUID, revoked_by: uuid.UUID) -> ApiKey:
        """Admin revocation of a key owned by anyone."""
        api_key = self.keys.get_by_id(key_id)
        if api_key is None:
            raise NotFoundOrUnauthorized("API key not found")
        api_key = self.keys.deactivate(api_key)
        remove_revealed_key(key_id)
        audit_logger.log_event("api_key_revoked", user_id=api_key.user_id, key_id=key_id, revoked_by=revoked_by)
        return api_key
