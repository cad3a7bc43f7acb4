"""Query executors: run one query against one configured database."""

import logging
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import DBAPIError, DisconnectionError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.pool import NullPool

from jikji.exceptions import DatabaseConnectionError, QueryError, UnknownDriver
from jikji.models.config import Database, Driver

logger = logging.getLogger(__name__)

_DRIVER_NAMES = {
    Driver.POSTGRES: "postgresql+psycopg",
    Driver.MYSQL: "mysql+pymysql",
    Driver.SQLITE: "sqlite",
}

_CONNECTION_ERRORS = (DisconnectionError, PoolTimeoutError)


class QueryExecutor(ABC):
    """Runs queries against a single database.

    Executors do not retry; a failed run is reported to the caller, which
    retries on its next scheduled tick.
    """

    # Number of executions the scheduler allows at the same time
    max_concurrency: int = 1

    @abstractmethod
    def run(self, query: str) -> Any:
        """Execute ``query`` and return a scalar or the first result row.

        Raises:
            DatabaseConnectionError: The database is unreachable.
            QueryError: The query was rejected or returned nothing.
        """
        ...

    def close(self) -> None:
        """Release connections held by this executor."""
        pass


class SqlAlchemyExecutor(QueryExecutor):
    """Executor backed by a single-connection SQLAlchemy engine."""

    def __init__(self, database: Database, connect_timeout: int = 10):
        self.database = database
        self.engine = self._create_engine(database, connect_timeout)
        logger.info(f"Created executor for {database.identity}")

    @staticmethod
    def build_url(database: Database) -> URL:
        if database.driver == Driver.SQLITE:
            return URL.create("sqlite", database=database.database or None)

        return URL.create(
            _DRIVER_NAMES[database.driver],
            username=database.username or None,
            password=database.password or None,
            host=database.hostname or None,
            port=database.port,
            database=database.database or None,
        )

    def _create_engine(self, database: Database, connect_timeout: int) -> Engine:
        url = self.build_url(database)

        if database.driver == Driver.SQLITE:
            # Connect per run so each database file is opened by the thread using it
            return create_engine(url, poolclass=NullPool)

        return create_engine(
            url,
            pool_size=1,
            max_overflow=0,
            pool_timeout=connect_timeout,
            pool_pre_ping=True,
            connect_args={"connect_timeout": connect_timeout},
        )

    def run(self, query: str) -> tuple[Any, ...]:
        try:
            conn = self.engine.connect()
        except SQLAlchemyError as e:
            raise DatabaseConnectionError(
                f"Connection to {self.database.identity} failed: {e}"
            ) from e

        with conn:
            try:
                result = conn.execute(text(query))
                if not result.returns_rows:
                    raise QueryError("Query did not return a result set")
                row = result.first()
            except DBAPIError as e:
                # sqlite reports syntax errors as OperationalError, so only
                # trust the dialect's disconnect detection here
                if e.connection_invalidated:
                    raise DatabaseConnectionError(
                        f"Lost connection to {self.database.identity}: {e}"
                    ) from e
                raise QueryError(f"Query failed on {self.database.identity}: {e}") from e
            except _CONNECTION_ERRORS as e:
                raise DatabaseConnectionError(
                    f"Lost connection to {self.database.identity}: {e}"
                ) from e
            except SQLAlchemyError as e:
                raise QueryError(f"Query failed on {self.database.identity}: {e}") from e

        if row is None:
            raise QueryError("Query returned no rows")

        return tuple(row)

    def close(self) -> None:
        self.engine.dispose()
        logger.debug(f"Disposed engine for {self.database.identity}")


def build_executor(database: Database) -> QueryExecutor:
    """Create the executor for a configured database.

    Raises:
        UnknownDriver: If the driver is not supported or its DBAPI module
            is not installed.
    """
    try:
        driver = Driver(database.driver)
    except ValueError:
        raise UnknownDriver(str(database.driver), "unsupported driver") from None

    try:
        return SqlAlchemyExecutor(database)
    except (ImportError, SQLAlchemyError) as e:
        raise UnknownDriver(driver.value, str(e)) from e
