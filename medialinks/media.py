"""
Media manager: user-owned links whose urls must point at a resolvable host.

Creating or deleting a media record also updates the owner's `mediaLinks`.
The two writes are separate store calls. If the second one fails the first
is not undone: a create can leave an orphan media record, and callers are
told through PersistenceError / InconsistentError instead of a false success.
"""

import asyncio
import logging
from typing import Any, Optional

from medialinks.config import Settings
from medialinks.errors import (
    EmptyError,
    ForbiddenError,
    InconsistentError,
    InvalidError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from medialinks.resolver import HostResolver, ResolutionError, extract_hostname
from medialinks.schemas import (
    Account,
    Media,
    MediaCreateRequest,
    MediaUpdateRequest,
    clean_record_id,
    load_record,
    parse_payload,
)
from medialinks.storage import RecordNotFoundError, RecordStore, StorageError
from medialinks.tokens import TokenAuthority
from medialinks.utils import create_random_string

logger = logging.getLogger(__name__)


class MediaManager:
    def __init__(
        self,
        store: RecordStore,
        tokens: TokenAuthority,
        resolver: HostResolver,
        settings: Settings,
    ):
        self.store = store
        self.tokens = tokens
        self.resolver = resolver
        self.settings = settings

    async def _check_resolvable(self, url: str) -> None:
        hostname = extract_hostname(url)
        if not hostname:
            raise InvalidError("The url entered does not contain a host name")
        try:
            addresses = await self.resolver.resolve(hostname)
        except ResolutionError:
            addresses = []
        if not addresses:
            raise InvalidError("The host name of the url entered did not resolve to any DNS entries")

    async def _load(self, media_id: str) -> Media:
        try:
            return load_record(Media, await self.store.read(Media.COLLECTION, media_id))
        except RecordNotFoundError:
            raise NotFoundError("The Media ID specified could not be found")
        except StorageError:
            raise PersistenceError("Could not read the media.")

    async def create(self, payload: Any, token_id: Optional[str]) -> Media:
        """
        Create a media link for the account that owns `token_id`.

        Raises:
            ValidationError: url or description missing
            ForbiddenError: token missing, unknown or expired
            NotFoundError: (403) the token's account cannot be loaded
            InvalidError: the url host does not resolve
            PersistenceError: a store write failed
        """
        request = parse_payload(MediaCreateRequest, payload, "Missing required inputs, or inputs are invalid")
        token = await self.tokens.authenticate(token_id)

        try:
            account = load_record(Account, await self.store.read(Account.COLLECTION, token.phone))
        except StorageError:
            raise NotFoundError("Could not find the user that owns this token.", status_code=403)

        await self._check_resolvable(request.url)

        media = Media(
            id=create_random_string(self.settings.RECORD_ID_LENGTH),
            phone=account.phone,
            url=request.url,
            description=request.description,
            first_name=token.first_name,
        )
        try:
            await self.store.create(Media.COLLECTION, media.id, media.to_record())
        except StorageError:
            raise PersistenceError("Could not create the new media link")

        if media.id not in account.media_links:
            account.media_links.append(media.id)
        try:
            await self.store.update(Account.COLLECTION, account.phone, account.to_record())
        except StorageError:
            logger.error(f"Media {media.id} created but not linked to {account.phone}")
            raise PersistenceError("Could not update the user with the new media link.")

        logger.info(f"Media created: {media.id} for {account.phone}")
        return media

    async def list(self) -> dict[str, Media]:
        """Every media record in the store, keyed by id. Not filtered by owner."""
        try:
            ids = sorted(await self.store.list(Media.COLLECTION))
        except StorageError:
            raise PersistenceError("Could not list media", status_code=400)
        if not ids:
            raise EmptyError("No media available")

        records = await asyncio.gather(
            *(self.store.read(Media.COLLECTION, media_id) for media_id in ids),
            return_exceptions=True,
        )

        media_list = {}
        for media_id, record in zip(ids, records):
            if isinstance(record, BaseException):
                logger.error(f"Could not read media {media_id}: {record!r}")
                raise PersistenceError(f"Unable to get {media_id} media data", status_code=400)
            try:
                media_list[media_id] = load_record(Media, record)
            except StorageError:
                raise PersistenceError(f"Unable to get {media_id} media data", status_code=400)
        return media_list

    async def update(self, payload: Any, token_id: Optional[str]) -> None:
        """Change the url and/or description of a media record owned by the caller."""
        request = parse_payload(MediaUpdateRequest, payload, "Missing required field.")
        media_id = clean_record_id(request.id, self.settings.RECORD_ID_LENGTH)
        if not media_id:
            raise ValidationError("Missing required field.")
        if not request.has_changes:
            raise ValidationError("Missing fields to update.")

        try:
            media = load_record(Media, await self.store.read(Media.COLLECTION, media_id))
        except RecordNotFoundError:
            raise NotFoundError("Media ID did not exist.")
        except StorageError:
            raise PersistenceError("Could not read the media.")

        if not await self.tokens.verify(token_id, media.phone):
            raise ForbiddenError("Token is invalid or does not belong to the media owner.")

        if request.url:
            await self._check_resolvable(request.url)
            media.url = request.url
        if request.description:
            media.description = request.description

        try:
            await self.store.update(Media.COLLECTION, media_id, media.to_record())
        except StorageError:
            raise PersistenceError("Could not update the media")
        logger.info(f"Media updated: {media_id}")

    async def delete(self, media_id: Any, token_id: Optional[str]) -> None:
        """
        Delete a media record owned by the caller and unlink it from the owner.

        Raises:
            InconsistentError: the owner is gone or did not list this media id
        """
        media_id = clean_record_id(media_id, self.settings.RECORD_ID_LENGTH)
        if not media_id:
            raise ValidationError("Missing valid id")

        media = await self._load(media_id)
        if not await self.tokens.verify(token_id, media.phone):
            raise ForbiddenError("Token is invalid or does not belong to the media owner.")

        try:
            await self.store.delete(Media.COLLECTION, media_id)
        except StorageError:
            raise PersistenceError("Could not delete the Media data.")

        try:
            account = load_record(Account, await self.store.read(Account.COLLECTION, media.phone))
        except StorageError:
            raise InconsistentError(
                "Could not find the user who created the Media, so could not remove it from their list of Media."
            )

        if media_id not in account.media_links:
            raise InconsistentError("Could not find the Media on the user's object, so could not remove it.")
        account.media_links.remove(media_id)

        try:
            await self.store.update(Account.COLLECTION, account.phone, account.to_record())
        except StorageError:
            raise PersistenceError("Could not update the user.")
        logger.info(f"Media deleted: {media_id}")
