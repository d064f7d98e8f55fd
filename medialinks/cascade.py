"""
Fan-out deletion of the media records owned by an account.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable

from medialinks.metrics import record_cascade_outcome
from medialinks.schemas import Media
from medialinks.storage import RecordStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeResult:
    succeeded: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    @property
    def ok(self) -> bool:
        return self.failed == 0


class CascadeOrchestrator:
    """
    Deletes a fixed set of records concurrently and reports the aggregate.

    All deletes are started together and joined with asyncio.gather, so each
    one is counted exactly once whatever order they finish in, and the result
    is only produced after the last of them completes. A failed delete is
    counted; it never cancels or short-circuits the others.
    """

    def __init__(self, store: RecordStore, collection: str = Media.COLLECTION):
        self.store = store
        self.collection = collection

    async def delete_all(self, ids: Iterable[str]) -> CascadeResult:
        ids = list(ids)
        if not ids:
            return CascadeResult()

        logger.info(f"Cascade deleting {len(ids)} record(s) from {self.collection}")
        outcomes = await asyncio.gather(
            *(self.store.delete(self.collection, record_id) for record_id in ids),
            return_exceptions=True,
        )

        failed = 0
        for record_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                failed += 1
                logger.warning(f"Cascade delete failed for {self.collection}/{record_id}: {outcome!r}")

        result = CascadeResult(succeeded=len(ids) - failed, failed=failed)
        record_cascade_outcome(result.succeeded, result.failed)
        logger.info(f"Cascade finished: {result.succeeded} deleted, {result.failed} failed")
        return result
