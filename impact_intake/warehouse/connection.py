"""
PostgreSQL access through a psycopg3 connection pool.

Rows come back as dictionaries. Connection settings not passed explicitly
are read from DB_HOST, DB_PORT, DB_NAME, DB_USER and DB_PASSWORD.
"""
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager

from psycopg import Connection, Cursor, OperationalError
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool
from pydantic import BaseModel, SecretStr

from impact_intake.observability.logger import get_logger

logger = get_logger(__name__)

Params = tuple | dict | None


class DatabaseSettings(BaseModel):
    host: str = "localhost"
    port: int = 5432
    database: str = "impact_intake"
    user: str = "impact"
    password: SecretStr
    connect_timeout: int = 10

    @classmethod
    def from_env(cls, **overrides) -> "DatabaseSettings":
        """
        Build settings from DB_* variables, with non-None overrides taking precedence.

        Raises:
            ValueError: If no password is configured anywhere
        """
        values = {
            "host": os.getenv("DB_HOST"),
            "port": os.getenv("DB_PORT"),
            "database": os.getenv("DB_NAME"),
            "user": os.getenv("DB_USER"),
            "password": os.getenv("DB_PASSWORD"),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        values = {k: v for k, v in values.items() if v is not None and v != ""}

        if "password" not in values:
            raise ValueError(
                "Database password must be provided: set DB_PASSWORD or pass password="
            )
        return cls(**values)

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}/{self.database}"

    def conninfo(self) -> str:
        return make_conninfo(
            host=self.host,
            port=self.port,
            dbname=self.database,
            user=self.user,
            password=self.password.get_secret_value(),
            connect_timeout=self.connect_timeout,
        )


class DatabaseConnectionPool:
    """
    Pool of PostgreSQL connections shared by the repository and analytics sink.

    Usable as a context manager, which opens on entry and closes on exit.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_size: int = 1,
        max_size: int = 10,
        timeout: float = 30.0,
    ) -> None:
        self.settings = DatabaseSettings.from_env(
            host=host, port=port, database=database, user=user, password=password
        )
        self.min_size = min_size
        self.max_size = max_size
        self.timeout = timeout
        self._pool: ConnectionPool | None = None

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self, attempts: int = 3, backoff: float = 1.0) -> None:
        """
        Open the pool and wait until min_size connections are established.

        The delay between attempts starts at `backoff` seconds and doubles.

        Raises:
            OperationalError: If the database is unreachable on every attempt
        """
        if self._pool is not None:
            return

        delay = backoff
        for attempt in range(1, attempts + 1):
            pool = ConnectionPool(
                self.settings.conninfo(),
                min_size=self.min_size,
                max_size=self.max_size,
                timeout=self.timeout,
                kwargs={"row_factory": dict_row},
                name="impact-intake",
                open=False,
            )
            try:
                pool.open(wait=True, timeout=self.timeout)
            except OperationalError as e:
                pool.close()
                if attempt == attempts:
                    raise OperationalError(
                        f"Could not connect to {self.settings.target} after {attempts} attempts: {e}"
                    ) from e
                logger.warning(
                    f"Connection attempt {attempt} to {self.settings.target} failed, retrying in {delay}s",
                    extra={"attempt": attempt, "error": str(e)},
                )
                time.sleep(delay)
                delay *= 2
            else:
                self._pool = pool
                logger.info(f"Connected to {self.settings.target}", extra={"attempt": attempt})
                return

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    @contextmanager
    def get_connection(self) -> Iterator[Connection]:
        """
        Borrow a connection; it goes back to the pool when the block exits.

        Raises:
            RuntimeError: If the pool has not been opened
        """
        if self._pool is None:
            raise RuntimeError("Connection pool is closed; call open() first")
        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def get_cursor(self) -> Iterator[Cursor]:
        with self.get_connection() as conn, conn.cursor() as cur:
            yield cur

    def execute_query(self, query: str, params: Params = None) -> list[dict]:
        with self.get_cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()

    def execute_returning(self, query: str, params: Params = None) -> list[dict]:
        """Run a write with a RETURNING clause, commit, and return the rows."""
        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            conn.commit()
        return rows

    def execute_command(self, command: str, params: Params = None) -> int:
        """Run a write, commit, and return the number of affected rows."""
        with self.get_connection() as conn:
            rowcount = conn.execute(command, params).rowcount
            conn.commit()
        return rowcount

    def __enter__(self) -> "DatabaseConnectionPool":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
