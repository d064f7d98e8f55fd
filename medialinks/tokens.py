"""
Token authority: issues, reads, extends, revokes and verifies session tokens.

Every owner-scoped operation elsewhere in the service authenticates the
caller through `verify` (or `authenticate`) before trusting a phone number
supplied in the request.
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional

from medialinks.config import Settings
from medialinks.errors import (
    ExpiredError,
    ForbiddenError,
    InvalidCredentialsError,
    NotFoundError,
    PersistenceError,
    ServiceError,
    ValidationError,
)
from medialinks.metrics import record_token_operation
from medialinks.schemas import (
    Account,
    Token,
    TokenCreateRequest,
    TokenExtendRequest,
    clean_record_id,
    load_record,
    parse_payload,
)
from medialinks.storage import RecordNotFoundError, RecordStore, StorageError
from medialinks.utils import create_random_string, current_time_ms, verify_password

logger = logging.getLogger(__name__)

FORBIDDEN_MESSAGE = "Missing required token in header, or token is invalid."


def counted(operation: str):
    """Record the outcome of a token operation in metrics."""
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                result = await func(*args, **kwargs)
            except ServiceError as e:
                record_token_operation(operation, e.kind)
                raise
            record_token_operation(operation, "ok")
            return result
        return wrapper
    return decorator


class TokenAuthority:
    """Session token lifecycle. Expiry is checked lazily; nothing sweeps old tokens."""

    def __init__(
        self,
        store: RecordStore,
        settings: Settings,
        clock: Callable[[], int] = current_time_ms,
    ):
        self.store = store
        self.settings = settings
        self.clock = clock

    @property
    def ttl_ms(self) -> int:
        return self.settings.TOKEN_TTL_SECONDS * 1000

    async def _load(self, token_id: str) -> Token:
        record = await self.store.read(Token.COLLECTION, token_id)
        return load_record(Token, record)

    @counted("issue")
    async def issue(self, payload: Any) -> Token:
        """
        Exchange a phone/password pair for a new token.

        Raises:
            ValidationError: phone or password missing/invalid
            NotFoundError: no account for the phone number
            InvalidCredentialsError: password does not match
            PersistenceError: the token could not be stored
        """
        request = parse_payload(TokenCreateRequest, payload, "Missing required field(s).")

        try:
            account = load_record(Account, await self.store.read(Account.COLLECTION, request.phone))
        except RecordNotFoundError:
            raise NotFoundError("Could not find the specified user.")
        except StorageError:
            raise PersistenceError("Could not look up the specified user.")

        if not verify_password(request.password, account.hashed_password):
            logger.info(f"Password mismatch for {account.phone}")
            raise InvalidCredentialsError("Password did not match the specified user's stored password")

        token = Token(
            id=create_random_string(self.settings.RECORD_ID_LENGTH),
            phone=account.phone,
            expires=self.clock() + self.ttl_ms,
            first_name=account.first_name,
        )
        try:
            await self.store.create(Token.COLLECTION, token.id, token.to_record())
        except StorageError:
            raise PersistenceError("Could not create the new token")

        logger.info(f"Token issued for {account.phone}")
        return token

    async def read(self, token_id: Any) -> Token:
        token_id = clean_record_id(token_id, self.settings.RECORD_ID_LENGTH)
        if not token_id:
            raise ValidationError("Missing required field, or field invalid")
        try:
            return await self._load(token_id)
        except RecordNotFoundError:
            raise NotFoundError("Token not found.", status_code=404)
        except StorageError:
            raise PersistenceError("Could not read the token.")

    @counted("extend")
    async def extend(self, payload: Any) -> Token:
        """
        Push an unexpired token's expiry to now + TTL.

        An expired token is left untouched and ExpiredError is raised.
        """
        request = parse_payload(TokenExtendRequest, payload, "Missing required field(s) or field(s) are invalid.")
        token_id = clean_record_id(request.id, self.settings.RECORD_ID_LENGTH)
        if not token_id or not request.extend:
            raise ValidationError("Missing required field(s) or field(s) are invalid.")

        try:
            token = await self._load(token_id)
        except RecordNotFoundError:
            raise NotFoundError("Specified token does not exist.")
        except StorageError:
            raise PersistenceError("Could not read the token.")

        now = self.clock()
        if token.expires <= now:
            raise ExpiredError("The token has already expired, and cannot be extended.")

        # expires never moves backwards, even if the TTL was shortened
        token.expires = max(token.expires, now + self.ttl_ms)
        try:
            await self.store.update(Token.COLLECTION, token_id, token.to_record())
        except StorageError:
            raise PersistenceError("Could not update the token's expiration.")

        logger.info(f"Token extended for {token.phone}")
        return token

    @counted("revoke")
    async def revoke(self, token_id: Any) -> None:
        token_id = clean_record_id(token_id, self.settings.RECORD_ID_LENGTH)
        if not token_id:
            raise ValidationError("Missing required field")
        try:
            await self.store.delete(Token.COLLECTION, token_id)
        except RecordNotFoundError:
            raise NotFoundError("Could not find the specified token.")
        except StorageError:
            raise PersistenceError("Could not delete the specified token")
        logger.info("Token revoked")

    async def verify(self, token_id: Optional[str], phone: Optional[str]) -> bool:
        """
        True only if the token exists, belongs to `phone` and has not expired.

        Never raises: a missing header, unknown token or store failure all
        count as an invalid token.
        """
        if not token_id or not phone:
            record_token_operation("verify", "denied")
            return False
        try:
            token = await self._load(token_id)
        except StorageError:
            record_token_operation("verify", "denied")
            return False

        is_valid = token.phone == phone and token.expires > self.clock()
        record_token_operation("verify", "ok" if is_valid else "denied")
        return is_valid

    async def authenticate(self, token_id: Optional[str]) -> Token:
        """
        Resolve a caller's token to the token record itself.

        Raises:
            ForbiddenError: token missing, unknown or expired
        """
        if not token_id:
            raise ForbiddenError(FORBIDDEN_MESSAGE)
        try:
            token = await self._load(token_id)
        except StorageError:
            raise ForbiddenError(FORBIDDEN_MESSAGE)
        if token.expires <= self.clock():
            raise ForbiddenError(FORBIDDEN_MESSAGE)
        return token
