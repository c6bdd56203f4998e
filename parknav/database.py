"""
PostgreSQL persistence for parknav.

ParkingStore owns a psycopg2 connection pool. It is created once at
server start and handed to each tool call; nothing else holds a
connection.

Every write runs inside one explicit BEGIN/COMMIT. Any statement error
rolls the whole call back and surfaces as PersistenceError, so partial
batches are never visible. Connections always go back to the pool.
"""

import asyncio
import functools
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Generator, Iterable, TypeVar

import psycopg2
import psycopg2.pool
from psycopg2.extras import Json

from parknav.config import get_settings
from parknav.errors import PersistenceError
from parknav.logger import get_logger
from parknav.models import EnrichedParkingFeature, ParkingCandidate

logger = get_logger(__name__)

T = TypeVar("T")


CREATE_PARKING_CANDIDATES = """
CREATE TABLE IF NOT EXISTS parking_candidates (
    source_url TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    address TEXT,
    hourly_rate NUMERIC(10, 2),
    hours TEXT,
    neighborhood TEXT NOT NULL
)
"""

CREATE_PARKING_FEATURES = """
CREATE TABLE IF NOT EXISTS parking_features (
    id BIGINT PRIMARY KEY,
    latitude DOUBLE PRECISION NOT NULL,
    longitude DOUBLE PRECISION NOT NULL,
    name TEXT,
    amenity TEXT,
    source TEXT NOT NULL,
    retrieved_at TIMESTAMPTZ NOT NULL,
    confidence DOUBLE PRECISION NOT NULL,
    other_tags JSONB NOT NULL DEFAULT '{}'::jsonb
)
"""

UPSERT_PARKING_CANDIDATE = """
INSERT INTO parking_candidates (
    source_url,
    name,
    address,
    hourly_rate,
    hours,
    neighborhood
) VALUES (
    %(source_url)s,
    %(name)s,
    %(address)s,
    %(hourly_rate)s,
    %(hours)s,
    %(neighborhood)s
)
ON CONFLICT (source_url) DO UPDATE SET
    name = EXCLUDED.name,
    address = EXCLUDED.address,
    hourly_rate = EXCLUDED.hourly_rate,
    hours = EXCLUDED.hours,
    neighborhood = EXCLUDED.neighborhood
"""

UPSERT_PARKING_FEATURE = """
INSERT INTO parking_features (
    id,
    latitude,
    longitude,
    name,
    amenity,
    source,
    retrieved_at,
    confidence,
    other_tags
) VALUES (
    %(id)s,
    %(latitude)s,
    %(longitude)s,
    %(name)s,
    %(amenity)s,
    %(source)s,
    %(retrieved_at)s,
    %(confidence)s,
    %(other_tags)s
)
ON CONFLICT (id) DO UPDATE SET
    latitude = EXCLUDED.latitude,
    longitude = EXCLUDED.longitude,
    name = EXCLUDED.name,
    amenity = EXCLUDED.amenity,
    source = EXCLUDED.source,
    retrieved_at = EXCLUDED.retrieved_at,
    confidence = EXCLUDED.confidence,
    other_tags = EXCLUDED.other_tags
"""

SELECT_PARKING_FEATURES = """
SELECT id, latitude, longitude, name, amenity, source,
       retrieved_at, confidence, other_tags
FROM parking_features
ORDER BY id
"""


class ParkingStore:
    """Connection-pooled gateway to the parking tables."""

    def __init__(
        self,
        dsn: str,
        min_connections: int = 1,
        max_connections: int = 10,
        connect_timeout: int = 10,
    ):
        self.dsn = dsn
        self.min_connections = min_connections
        self.max_connections = max_connections
        self.connect_timeout = connect_timeout
        self._pool: psycopg2.pool.ThreadedConnectionPool | None = None
        # getconn raises PoolError when exhausted; borrowers wait here instead
        self._slots = threading.BoundedSemaphore(max_connections)

    @classmethod
    def from_settings(cls) -> "ParkingStore":
        settings = get_settings()
        return cls(
            settings.database_url,
            min_connections=settings.db_pool_min_size,
            max_connections=settings.db_pool_max_size,
            connect_timeout=settings.db_connect_timeout,
        )

    # ------------------------------------------------------------
    # Pool lifecycle
    # ------------------------------------------------------------

    def open(self) -> None:
        """
        Create the pool and verify the database is reachable.

        Raises:
            PersistenceError: If no connection can be established
        """
        if self._pool is not None:
            return
        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                self.min_connections,
                self.max_connections,
                dsn=self.dsn,
                connect_timeout=self.connect_timeout,
            )
            with self.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
        except psycopg2.Error as e:
            logger.error(f"Could not connect to database: {e}")
            self.close()
            raise PersistenceError("Could not connect to database", cause=e) from e

        logger.info(
            "Database connection pool initialised",
            extra={"min": self.min_connections, "max": self.max_connections},
        )

    def close(self) -> None:
        """Close all connections in the pool."""
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("Database connection pool closed")

    @contextmanager
    def connection(self) -> Generator:
        """
        Borrow a pooled connection in autocommit mode (transactions are explicit).

        Blocks while max_connections are already checked out.
        """
        if self._pool is None:
            raise PersistenceError("Database pool is not open")
        pool = self._pool
        self._slots.acquire()
        try:
            try:
                conn = pool.getconn()
            except psycopg2.Error as e:
                raise PersistenceError("Could not acquire a database connection", cause=e) from e
            try:
                conn.autocommit = True
                yield conn
            finally:
                pool.putconn(conn)
        finally:
            self._slots.release()

    @contextmanager
    def transaction(self) -> Generator:
        """
        Run a block inside BEGIN/COMMIT on its own pooled connection.

        Yields a cursor. Any exception issues ROLLBACK and is re-raised as
        PersistenceError.
        """
        with self.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("BEGIN")
                try:
                    yield cur
                    cur.execute("COMMIT")
                except Exception as e:
                    try:
                        cur.execute("ROLLBACK")
                    except psycopg2.Error as rollback_error:
                        logger.error(f"Rollback failed: {rollback_error}")
                    if isinstance(e, PersistenceError):
                        raise
                    logger.warning(f"Transaction rolled back: {e}")
                    raise PersistenceError(f"Database transaction failed: {e}", cause=e) from e

    # ------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------

    def ensure_schema(self) -> None:
        """Create both tables if they do not exist. Safe to call repeatedly."""
        with self.transaction() as cur:
            cur.execute(CREATE_PARKING_CANDIDATES)
            cur.execute(CREATE_PARKING_FEATURES)

    def upsert_parking_candidates(self, records: Iterable[ParkingCandidate]) -> int:
        """Insert or overwrite candidates keyed on source_url. Returns rows written."""
        records = list(records)
        if not records:
            return 0
        with self.transaction() as cur:
            for record in records:
                cur.execute(UPSERT_PARKING_CANDIDATE, record.model_dump())
        logger.debug(f"Upserted {len(records)} parking candidates")
        return len(records)

    def upsert_enriched_features(self, records: Iterable[EnrichedParkingFeature]) -> int:
        """
        Insert or overwrite features keyed on id.

        other_tags is replaced wholesale, not merged. Returns rows written.
        """
        records = list(records)
        if not records:
            return 0
        with self.transaction() as cur:
            for record in records:
                params = record.model_dump()
                params["other_tags"] = Json(params["other_tags"])
                cur.execute(UPSERT_PARKING_FEATURE, params)
        logger.debug(f"Upserted {len(records)} parking features")
        return len(records)

    def read_all_enriched_features(self) -> dict[str, Any]:
        """Return every stored feature as a GeoJSON FeatureCollection."""
        with self.transaction() as cur:
            cur.execute(SELECT_PARKING_FEATURES)
            rows = cur.fetchall()

        features = []
        for row in rows:
            (feature_id, latitude, longitude, name, amenity, source,
             retrieved_at, confidence, other_tags) = row
            if isinstance(retrieved_at, datetime):
                retrieved_at = retrieved_at.isoformat()
            record = EnrichedParkingFeature(
                id=feature_id,
                latitude=latitude,
                longitude=longitude,
                name=name,
                amenity=amenity,
                source=source,
                retrieved_at=retrieved_at,
                confidence=confidence,
                other_tags=other_tags or {},
            )
            features.append(record.to_geojson())

        return {
            "type": "FeatureCollection",
            "features": features,
        }

    def check_connection(self) -> dict[str, Any]:
        """Check that the database answers a trivial query."""
        try:
            with self.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT version()")
                    version = cur.fetchone()[0]
            return {"status": "connected", "version": version}
        except (psycopg2.Error, PersistenceError) as e:
            logger.warning(f"Database health check failed: {e}")
            return {"status": "error", "error": str(e)}


async def run_in_thread(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run a blocking store call in the default executor.

    Keeps tool coroutines cooperative while psycopg2 blocks.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))
