import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

from sqlalchemy import create_engine, inspect, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from starlette.concurrency import run_in_threadpool

from medialinks.config import settings

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite because store calls run in
# the thread pool, not on the thread that opened the connection
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=connect_args,
    echo=False,
)

# Create SessionLocal class for creating database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for SQLAlchemy models
Base = declarative_base()


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from medialinks.models import Record  # noqa: F401

        logger.debug("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            logger.debug("Database connectivity OK")
        if not inspect(engine).has_table("records"):
            logger.error("Database schema not applied: 'records' table not found")
            return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


def _now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# =============================================================================
# Record Store
# =============================================================================

class StorageError(Exception):
    """The backing store failed for reasons opaque to the caller."""


class RecordExistsError(StorageError):
    """A record with the given collection/key already exists."""


class RecordNotFoundError(StorageError):
    """No record exists for the given collection/key."""


class RecordStore:
    """
    Durable key -> record storage scoped by collection name.

    Every method is a coroutine; the blocking SQLAlchemy work runs in the
    Starlette thread pool so the event loop is never blocked. Each call uses
    its own session and commits on its own: there are no multi-record
    transactions, and concurrent read-modify-write sequences on the same key
    are last-write-wins.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, action: str, collection: str, key: Optional[str] = None) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except (RecordExistsError, RecordNotFoundError):
            db.rollback()
            raise
        except IntegrityError:
            db.rollback()
            logger.info(f"Duplicate record detected: {collection}/{key}")
            raise RecordExistsError(f"{collection}/{key} already exists")
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to {action} record {collection}/{key}: {e}")
            raise StorageError(f"Could not {action} record") from e
        finally:
            db.close()

    # -------------------------------------------------------------------------
    # Public async API
    # -------------------------------------------------------------------------

    async def create(self, collection: str, key: str, record: dict[str, Any]) -> None:
        await run_in_threadpool(self._create, collection, key, record)

    async def read(self, collection: str, key: str) -> dict[str, Any]:
        return await run_in_threadpool(self._read, collection, key)

    async def update(self, collection: str, key: str, record: dict[str, Any]) -> None:
        await run_in_threadpool(self._update, collection, key, record)

    async def delete(self, collection: str, key: str) -> None:
        await run_in_threadpool(self._delete, collection, key)

    async def list(self, collection: str) -> set[str]:
        return await run_in_threadpool(self._list, collection)

    # -------------------------------------------------------------------------
    # Blocking implementations
    # -------------------------------------------------------------------------

    def _create(self, collection: str, key: str, record: dict[str, Any]) -> None:
        from medialinks.models import Record

        logger.debug(f"Creating record: {collection}/{key}")
        now = _now_iso()
        with self._session("create", collection, key) as db:
            db.add(Record(
                collection=collection,
                key=key,
                data=dict(record),
                created_at=now,
                updated_at=now,
            ))
            db.commit()
        logger.debug(f"Record created: {collection}/{key}")

    def _read(self, collection: str, key: str) -> dict[str, Any]:
        from medialinks.models import Record

        logger.debug(f"Reading record: {collection}/{key}")
        with self._session("read", collection, key) as db:
            row = db.get(Record, (collection, key))
            if row is None:
                raise RecordNotFoundError(f"{collection}/{key} not found")
            return dict(row.data)

    def _update(self, collection: str, key: str, record: dict[str, Any]) -> None:
        from medialinks.models import Record

        logger.debug(f"Updating record: {collection}/{key}")
        with self._session("update", collection, key) as db:
            row = db.get(Record, (collection, key))
            if row is None:
                raise RecordNotFoundError(f"{collection}/{key} not found")
            # Assign a fresh dict so the JSON column is flagged as modified
            row.data = dict(record)
            row.updated_at = _now_iso()
            db.commit()

    def _delete(self, collection: str, key: str) -> None:
        from medialinks.models import Record

        logger.debug(f"Deleting record: {collection}/{key}")
        with self._session("delete", collection, key) as db:
            row = db.get(Record, (collection, key))
            if row is None:
                raise RecordNotFoundError(f"{collection}/{key} not found")
            db.delete(row)
            db.commit()

    def _list(self, collection: str) -> set[str]:
        from medialinks.models import Record

        logger.debug(f"Listing records in {collection}")
        with self._session("list", collection) as db:
            keys = db.execute(
                select(Record.key).where(Record.collection == collection)
            ).scalars().all()
        return set(keys)
