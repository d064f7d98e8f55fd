"""
In-memory test doubles for the store, resolver and clock.

MemoryStore follows the RecordStore contract and adds two knobs:
- fail(): make a given operation on a given record raise StorageError
- delays: number of event-loop turns an operation on a key waits before
  completing, used to force out-of-order completion and interleavings
"""

import asyncio
import copy
from collections import defaultdict

from medialinks.resolver import ResolutionError
from medialinks.storage import RecordExistsError, RecordNotFoundError, StorageError


ACCOUNT_PAYLOAD = {
    "firstName": "Ada",
    "lastName": "Lovelace",
    "phone": "1234567890",
    "password": "pw",
    "tosAgreement": True,
}


class MemoryStore:
    def __init__(self):
        self.collections = defaultdict(dict)
        self.failures = set()
        self.delays = {}
        self.calls = []

    def fail(self, operation: str, collection: str, key: str = "*") -> None:
        self.failures.add((operation, collection, key))

    async def _enter(self, operation: str, collection: str, key: str = "*") -> None:
        await asyncio.sleep(0)
        for _ in range(self.delays.get(key, 0)):
            await asyncio.sleep(0)
        self.calls.append((operation, collection, key))
        if (operation, collection, key) in self.failures or (operation, collection, "*") in self.failures:
            raise StorageError(f"injected {operation} failure for {collection}/{key}")

    async def create(self, collection, key, record):
        await self._enter("create", collection, key)
        if key in self.collections[collection]:
            raise RecordExistsError(f"{collection}/{key} already exists")
        self.collections[collection][key] = copy.deepcopy(record)

    async def read(self, collection, key):
        await self._enter("read", collection, key)
        if key not in self.collections[collection]:
            raise RecordNotFoundError(f"{collection}/{key} not found")
        return copy.deepcopy(self.collections[collection][key])

    async def update(self, collection, key, record):
        await self._enter("update", collection, key)
        if key not in self.collections[collection]:
            raise RecordNotFoundError(f"{collection}/{key} not found")
        self.collections[collection][key] = copy.deepcopy(record)

    async def delete(self, collection, key):
        await self._enter("delete", collection, key)
        if key not in self.collections[collection]:
            raise RecordNotFoundError(f"{collection}/{key} not found")
        del self.collections[collection][key]

    async def list(self, collection):
        await self._enter("list", collection)
        return set(self.collections[collection])

    def get(self, collection, key):
        """Synchronous peek for assertions."""
        return self.collections[collection].get(key)


class StaticResolver:
    """Resolves only the hostnames it was given."""

    def __init__(self, hosts=None):
        if hosts is None:
            hosts = {
                "example.com": ["93.184.216.34"],
                "media.example.org": ["192.0.2.10", "192.0.2.11"],
            }
        self.hosts = hosts
        self.calls = []

    async def resolve(self, hostname):
        await asyncio.sleep(0)
        self.calls.append(hostname)
        if hostname not in self.hosts:
            raise ResolutionError(f"{hostname} does not resolve")
        return list(self.hosts[hostname])


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms
