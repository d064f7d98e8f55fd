"""
Account manager: create, read, update and delete user accounts.

Accounts are keyed by phone number and own the `mediaLinks` list. Deleting
an account removes its media records first through the cascade orchestrator.
"""

import logging
from typing import Any, Optional

from medialinks.cascade import CascadeOrchestrator, CascadeResult
from medialinks.config import Settings
from medialinks.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PartialFailureError,
    PersistenceError,
    ValidationError,
)
from medialinks.schemas import (
    Account,
    AccountCreateRequest,
    AccountResponse,
    AccountUpdateRequest,
    clean_phone,
    load_record,
    parse_payload,
)
from medialinks.storage import RecordExistsError, RecordNotFoundError, RecordStore, StorageError
from medialinks.tokens import FORBIDDEN_MESSAGE, TokenAuthority
from medialinks.utils import hash_password

logger = logging.getLogger(__name__)


class AccountManager:
    def __init__(
        self,
        store: RecordStore,
        tokens: TokenAuthority,
        cascade: CascadeOrchestrator,
        settings: Settings,
    ):
        self.store = store
        self.tokens = tokens
        self.cascade = cascade
        self.settings = settings

    async def _load(self, phone: str, missing: NotFoundError) -> Account:
        try:
            return load_record(Account, await self.store.read(Account.COLLECTION, phone))
        except RecordNotFoundError:
            raise missing
        except StorageError:
            raise PersistenceError("Could not read the specified user.")

    async def _authorize(self, token_id: Optional[str], phone: str) -> None:
        if not await self.tokens.verify(token_id, phone):
            raise ForbiddenError(FORBIDDEN_MESSAGE)

    async def create(self, payload: Any) -> Account:
        """
        Register a new account with an empty media list.

        Raises:
            ValidationError: a required field is missing or invalid
            ConflictError: an account with that phone already exists
        """
        request = parse_payload(AccountCreateRequest, payload, "Missing required fields")

        account = Account(
            phone=request.phone,
            first_name=request.first_name,
            last_name=request.last_name,
            hashed_password=hash_password(request.password),
            tos_agreement=True,
            media_links=[],
        )
        try:
            await self.store.create(Account.COLLECTION, account.phone, account.to_record())
        except RecordExistsError:
            raise ConflictError("A user with that phone number already exists")
        except StorageError:
            raise PersistenceError("Could not create the new user")

        logger.info(f"Account created: {account.phone}")
        return account

    async def read(self, phone: Any, token_id: Optional[str]) -> AccountResponse:
        phone = clean_phone(phone)
        if not phone:
            raise ValidationError("Missing required field")
        await self._authorize(token_id, phone)

        account = await self._load(phone, NotFoundError("Could not find the specified user.", status_code=404))
        return AccountResponse.from_account(account)

    async def update(self, payload: Any, token_id: Optional[str]) -> None:
        """Apply whichever of firstName, lastName and password were supplied."""
        request = parse_payload(AccountUpdateRequest, payload, "Missing required field.")
        if not request.has_changes:
            raise ValidationError("Missing fields to update.")
        await self._authorize(token_id, request.phone)

        account = await self._load(request.phone, NotFoundError("Specified user does not exist."))
        if request.first_name:
            account.first_name = request.first_name
        if request.last_name:
            account.last_name = request.last_name
        if request.password:
            account.hashed_password = hash_password(request.password)

        try:
            await self.store.update(Account.COLLECTION, account.phone, account.to_record())
        except StorageError:
            raise PersistenceError("Could not update the user.")
        logger.info(f"Account updated: {account.phone}")

    async def delete(self, phone: Any, token_id: Optional[str]) -> CascadeResult:
        """
        Delete an account and every media record it links to.

        The media records are removed first and the account row last. The
        steps are not transactional: if some media deletions fail the
        account row is still removed and PartialFailureError reports how
        many were left behind.
        """
        phone = clean_phone(phone)
        if not phone:
            raise ValidationError("Missing required field")
        await self._authorize(token_id, phone)

        account = await self._load(phone, NotFoundError("Could not find the specified user."))
        result = await self.cascade.delete_all(account.media_links)

        try:
            await self.store.delete(Account.COLLECTION, phone)
        except StorageError:
            raise PersistenceError(
                "Could not delete the specified user",
                succeeded=result.succeeded,
                failed=result.failed,
            )
        logger.info(f"Account deleted: {phone} ({result.succeeded} media removed, {result.failed} failed)")

        if not result.ok:
            raise PartialFailureError(
                "The user was deleted, but errors were encountered while deleting the user's media links. "
                "Not all media links may have been removed.",
                succeeded=result.succeeded,
                failed=result.failed,
            )
        return result
