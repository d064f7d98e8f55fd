"""
Tests for the media manager.

Tests cover:
- Creation with DNS validation and mediaLinks maintenance
- Unfiltered listing
- Owner-only update and delete
- Best-effort relation maintenance (orphans, inconsistencies)
- The known last-write-wins race on concurrent creates
"""

import asyncio

import pytest

from medialinks.errors import (
    EmptyError,
    ForbiddenError,
    InconsistentError,
    InvalidError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from medialinks.schemas import Account, Media

from tests.fakes import ACCOUNT_PAYLOAD

PHONE = ACCOUNT_PAYLOAD["phone"]
OTHER_PHONE = "0987654321"
HOUR_MS = 60 * 60 * 1000


def login(services, phone):
    return asyncio.run(services.tokens.issue({"phone": phone, "password": "pw"})).id


@pytest.fixture
def token_id(services):
    asyncio.run(services.accounts.create(ACCOUNT_PAYLOAD))
    return login(services, PHONE)


@pytest.fixture
def other_token_id(services):
    asyncio.run(services.accounts.create(dict(ACCOUNT_PAYLOAD, phone=OTHER_PHONE, firstName="Grace")))
    return login(services, OTHER_PHONE)


def create(services, token_id, url="https://example.com/watch?v=1", description="first clip"):
    return asyncio.run(services.media.create({"url": url, "description": description}, token_id))


def links(store, phone=PHONE):
    return store.get(Account.COLLECTION, phone)["mediaLinks"]


class TestCreate:
    """Test media creation."""

    def test_create_persists_and_links_once(self, services, token_id, store, resolver):
        media = create(services, token_id)

        assert len(media.id) == 20
        assert media.phone == PHONE
        assert media.first_name == "Ada"
        assert store.get(Media.COLLECTION, media.id)["url"] == "https://example.com/watch?v=1"
        assert links(store) == [media.id]
        assert resolver.calls == ["example.com"]

    def test_links_keep_creation_order(self, services, token_id, store):
        ids = [create(services, token_id, description=f"clip {n}").id for n in range(3)]
        assert links(store) == ids

    def test_create_accepts_dis_alias(self, services, token_id):
        media = asyncio.run(services.media.create({"url": "https://example.com", "dis": "legacy"}, token_id))
        assert media.description == "legacy"

    @pytest.mark.parametrize("url", [
        "https://unknown.invalid/path",
        "example.com/no-scheme",
        "not a url",
    ])
    def test_unresolvable_host_writes_nothing(self, services, token_id, store, url):
        with pytest.raises(InvalidError) as exc_info:
            create(services, token_id, url=url)

        assert exc_info.value.status_code == 400
        assert store.collections[Media.COLLECTION] == {}
        assert links(store) == []

    def test_host_with_no_addresses_is_invalid(self, services, token_id, resolver):
        resolver.hosts["empty.example.net"] = []
        with pytest.raises(InvalidError):
            create(services, token_id, url="http://empty.example.net/")

    @pytest.mark.parametrize("payload", [
        {"url": "https://example.com"},
        {"description": "no url"},
        {"url": "  ", "description": "blank url"},
    ])
    def test_create_requires_url_and_description(self, services, token_id, payload):
        with pytest.raises(ValidationError):
            asyncio.run(services.media.create(payload, token_id))

    @pytest.mark.parametrize("bad_token", [None, "", "q" * 20])
    def test_create_requires_valid_token(self, services, token_id, bad_token):
        with pytest.raises(ForbiddenError) as exc_info:
            create(services, bad_token)
        assert exc_info.value.status_code == 403

    def test_create_with_expired_token(self, services, token_id, clock, store):
        clock.advance(HOUR_MS)
        with pytest.raises(ForbiddenError):
            create(services, token_id)
        assert store.collections[Media.COLLECTION] == {}

    def test_create_when_owner_missing(self, services, token_id, store):
        del store.collections[Account.COLLECTION][PHONE]

        with pytest.raises(NotFoundError) as exc_info:
            create(services, token_id)
        assert exc_info.value.status_code == 403

    def test_account_update_failure_leaves_orphan(self, services, token_id, store):
        # Media write and account write are separate: the media record survives
        store.fail("update", Account.COLLECTION, PHONE)

        with pytest.raises(PersistenceError) as exc_info:
            create(services, token_id)

        assert exc_info.value.status_code == 500
        assert len(store.collections[Media.COLLECTION]) == 1
        assert links(store) == []


class TestKnownRace:
    """Concurrent read-modify-write on one account is last-write-wins."""

    def test_concurrent_creates_can_lose_a_link(self, services, token_id, store):
        async def create_two():
            return await asyncio.gather(
                services.media.create({"url": "https://example.com/a", "description": "a"}, token_id),
                services.media.create({"url": "https://example.com/b", "description": "b"}, token_id),
            )

        first, second = asyncio.run(create_two())

        # Both media records exist ...
        assert store.get(Media.COLLECTION, first.id) is not None
        assert store.get(Media.COLLECTION, second.id) is not None
        # ... but both requests read the account before either wrote it back,
        # so only the last writer's link survives.
        assert links(store) == [second.id]


class TestList:
    """Test listing all media records."""

    def test_list_returns_every_owner(self, services, token_id, other_token_id):
        mine = create(services, token_id)
        theirs = create(services, other_token_id, url="https://media.example.org/x", description="other")

        listed = asyncio.run(services.media.list())

        assert set(listed) == {mine.id, theirs.id}
        assert listed[theirs.id].phone == OTHER_PHONE

    def test_list_empty(self, services):
        with pytest.raises(EmptyError) as exc_info:
            asyncio.run(services.media.list())
        assert exc_info.value.status_code == 400

    def test_list_read_failure(self, services, token_id, store):
        media = create(services, token_id)
        store.fail("read", Media.COLLECTION, media.id)

        with pytest.raises(PersistenceError) as exc_info:
            asyncio.run(services.media.list())
        assert exc_info.value.status_code == 400


class TestUpdate:
    """Test owner-only media updates."""

    def test_update_description(self, services, token_id, store):
        media = create(services, token_id)
        asyncio.run(services.media.update({"id": media.id, "description": "renamed"}, token_id))

        record = store.get(Media.COLLECTION, media.id)
        assert record["description"] == "renamed"
        assert record["url"] == media.url
        assert record["phone"] == PHONE

    def test_update_url_is_revalidated(self, services, token_id, store):
        media = create(services, token_id)

        with pytest.raises(InvalidError):
            asyncio.run(services.media.update({"id": media.id, "url": "https://nowhere.invalid"}, token_id))
        assert store.get(Media.COLLECTION, media.id)["url"] == media.url

        asyncio.run(services.media.update({"id": media.id, "url": "https://media.example.org/y"}, token_id))
        assert store.get(Media.COLLECTION, media.id)["url"] == "https://media.example.org/y"

    def test_update_by_non_owner(self, services, token_id, other_token_id, store):
        media = create(services, token_id)

        with pytest.raises(ForbiddenError):
            asyncio.run(services.media.update({"id": media.id, "description": "hijack"}, other_token_id))
        assert store.get(Media.COLLECTION, media.id)["description"] == "first clip"

    def test_update_requires_a_field(self, services, token_id):
        media = create(services, token_id)
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(services.media.update({"id": media.id, "url": ""}, token_id))
        assert exc_info.value.message == "Missing fields to update."

    def test_update_invalid_id(self, services, token_id):
        with pytest.raises(ValidationError):
            asyncio.run(services.media.update({"id": "short", "description": "x"}, token_id))

    def test_update_missing_media(self, services, token_id):
        with pytest.raises(NotFoundError) as exc_info:
            asyncio.run(services.media.update({"id": "m" * 20, "description": "x"}, token_id))
        assert exc_info.value.status_code == 400


class TestDelete:
    """Test owner-only media deletion."""

    def test_delete_unlinks_from_owner(self, services, token_id, store):
        keep = create(services, token_id, description="keep")
        drop = create(services, token_id, description="drop")

        asyncio.run(services.media.delete(drop.id, token_id))

        assert store.get(Media.COLLECTION, drop.id) is None
        assert links(store) == [keep.id]

    def test_delete_by_non_owner(self, services, token_id, other_token_id, store):
        media = create(services, token_id)

        with pytest.raises(ForbiddenError):
            asyncio.run(services.media.delete(media.id, other_token_id))
        assert store.get(Media.COLLECTION, media.id) is not None

    def test_delete_missing_media(self, services, token_id):
        with pytest.raises(NotFoundError) as exc_info:
            asyncio.run(services.media.delete("m" * 20, token_id))
        assert exc_info.value.status_code == 400

    def test_delete_invalid_id(self, services, token_id):
        with pytest.raises(ValidationError):
            asyncio.run(services.media.delete(None, token_id))

    def test_delete_when_owner_account_is_gone(self, services, token_id, store):
        media = create(services, token_id)
        # Token stays valid; only the account row is removed
        del store.collections[Account.COLLECTION][PHONE]

        with pytest.raises(InconsistentError) as exc_info:
            asyncio.run(services.media.delete(media.id, token_id))

        assert exc_info.value.status_code == 500
        assert "user who created the Media" in exc_info.value.message
        assert store.get(Media.COLLECTION, media.id) is None

    def test_delete_with_link_already_missing(self, services, token_id, store):
        media = create(services, token_id)
        store.collections[Account.COLLECTION][PHONE]["mediaLinks"] = []

        with pytest.raises(InconsistentError) as exc_info:
            asyncio.run(services.media.delete(media.id, token_id))

        assert exc_info.value.status_code == 500
        # The media record itself is already gone; nothing is rolled back
        assert store.get(Media.COLLECTION, media.id) is None
