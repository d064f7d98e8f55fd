"""
Construction of the resource managers.

The managers are built once at application start and shared by every
request through `app.state.services`.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from medialinks.accounts import AccountManager
from medialinks.cascade import CascadeOrchestrator
from medialinks.config import Settings, get_settings
from medialinks.media import MediaManager
from medialinks.resolver import HostResolver
from medialinks.storage import RecordStore
from medialinks.tokens import TokenAuthority
from medialinks.utils import current_time_ms


@dataclass
class Services:
    tokens: TokenAuthority
    accounts: AccountManager
    media: MediaManager


def build_services(
    store: Optional[RecordStore] = None,
    resolver: Optional[HostResolver] = None,
    settings: Optional[Settings] = None,
    clock: Callable[[], int] = current_time_ms,
) -> Services:
    if store is None:
        store = RecordStore()
    if resolver is None:
        resolver = HostResolver()
    if settings is None:
        settings = get_settings()

    tokens = TokenAuthority(store, settings, clock=clock)
    return Services(
        tokens=tokens,
        accounts=AccountManager(store, tokens, CascadeOrchestrator(store), settings),
        media=MediaManager(store, tokens, resolver, settings),
    )
