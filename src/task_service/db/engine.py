"""SQLAlchemy engine with a bounded, health-checked connection pool."""

import threading
import time
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolCheckoutTimeout
from sqlalchemy.pool import QueuePool

from ..config import Settings
from ..exceptions import DeadlineExceededError, PoolClosedError, PoolError, PoolTimeoutError
from ..logger import get_logger

logger = get_logger(__name__)


def create_sqlite_engine(
    database_url: str,
    *,
    min_size: int = 5,
    max_size: int = 20,
    max_lifetime: float = 7200.0,
    acquire_timeout: float = 5.0,
) -> Engine:
    """Build an engine whose QueuePool keeps ``min_size`` connections and caps at ``max_size``.

    Connections are pinged on checkout and recycled after ``max_lifetime`` seconds.
    """
    engine = create_engine(
        database_url,
        poolclass=QueuePool,
        pool_size=min_size,
        max_overflow=max_size - min_size,
        pool_timeout=acquire_timeout,
        pool_recycle=max_lifetime,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False, "timeout": acquire_timeout},
    )

    @event.listens_for(engine, "connect")
    def enable_wal(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


class Database:
    """Owns the engine and a background loop that keeps the pool warm.

    Every ``health_check_interval`` seconds ``min_size`` connections are
    checked out together; pre-ping replaces any that went bad, so the pool
    always holds that many live connections.
    """

    def __init__(self, engine: Engine, min_size: int = 5, health_check_interval: float = 60.0):
        self.engine = engine
        self.min_size = min_size
        self.health_check_interval = health_check_interval
        self._closed = False
        self._stop = threading.Event()
        self._health_thread: threading.Thread | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        """Open ``min_size`` connections and start the health-check loop.

        Raises:
            PoolError: If the initial connections cannot be established.
        """
        self.check_health()
        self._health_thread = threading.Thread(
            target=self._run_health_checks,
            name="pool-health-check",
            daemon=True,
        )
        self._health_thread.start()
        logger.info(
            "pool_opened",
            min_size=self.min_size,
            pool=self.engine.pool.status(),
            health_check_interval=self.health_check_interval,
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop.set()
        if self._health_thread is not None:
            self._health_thread.join(timeout=self.health_check_interval)
        self.engine.dispose()
        logger.info("pool_closed")

    def __enter__(self) -> "Database":
        self.open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def check_health(self) -> None:
        """Check out ``min_size`` connections at once and ping each."""
        with ExitStack() as stack:
            for _ in range(self.min_size):
                conn = stack.enter_context(self._checkout())
                conn.execute(text("SELECT 1"))

    def _run_health_checks(self) -> None:
        while not self._stop.wait(self.health_check_interval):
            try:
                self.check_health()
            except PoolError as e:
                logger.warning("pool_health_check_failed", error=str(e))

    @contextmanager
    def _checkout(self) -> Iterator[Connection]:
        if self._closed:
            raise PoolClosedError("Connection pool is closed", operation="connect")
        try:
            conn = self.engine.connect()
        except PoolCheckoutTimeout as e:
            raise PoolTimeoutError(
                "Timed out waiting for a database connection", operation="connect"
            ) from e
        except SQLAlchemyError as e:
            raise PoolError(f"Failed to connect to database: {e}", operation="connect") from e
        with conn:
            yield conn

    @contextmanager
    def transaction(self, deadline: float | None = None) -> Iterator[Connection]:
        """Yield a connection inside a transaction; commits on success.

        With a ``deadline`` (a ``time.monotonic()`` value) the running
        statement is interrupted once it passes, and the transaction is rolled
        back instead of committed if the deadline passed before commit.

        Raises:
            DeadlineExceededError: The deadline passed; nothing was committed.
        """
        with self._checkout() as conn:
            _check_deadline(deadline)
            timer = None
            if deadline is not None:
                timer = threading.Timer(
                    deadline - time.monotonic(),
                    conn.connection.dbapi_connection.interrupt,
                )
                timer.daemon = True
                timer.start()
            try:
                with conn.begin():
                    yield conn
                    _check_deadline(deadline)
            except OperationalError as e:
                if deadline is not None and time.monotonic() >= deadline:
                    raise DeadlineExceededError("Statement interrupted at deadline") from e
                raise
            finally:
                if timer is not None:
                    timer.cancel()


def _check_deadline(deadline: float | None) -> None:
    if deadline is not None and time.monotonic() >= deadline:
        raise DeadlineExceededError("Request deadline passed")


def create_database(settings: Settings) -> Database:
    """Build an unopened database configured from settings."""
    engine = create_sqlite_engine(
        settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        max_lifetime=settings.pool_max_lifetime,
        acquire_timeout=settings.pool_acquire_timeout,
    )
    return Database(
        engine,
        min_size=settings.pool_min_size,
        health_check_interval=settings.pool_health_check_interval,
    )
