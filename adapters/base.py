from __future__ import annotations

import math
import os
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Tuple
from uuid import uuid4

from adapters.dialect import SQLDialect, get_sql_dialect
from query.result import TIMEOUT_MESSAGE, ColumnMeta, ErrorKind, Result
from utils.env_loader import load_environments
from utils.log import get_logger

if TYPE_CHECKING:
    from query.statement import BoundStatement

logger = get_logger(__name__)


class AdapterError(RuntimeError):
    kind = ErrorKind.UNKNOWN


class AdapterConnectionError(AdapterError):
    kind = ErrorKind.CONNECTION_LOST


class AdapterTimeoutError(AdapterError):
    kind = ErrorKind.STATEMENT_TIMEOUT


class AdapterSyntaxError(AdapterError):
    kind = ErrorKind.SYNTAX


class AdapterPermissionError(AdapterError):
    kind = ErrorKind.PERMISSION


class UnknownAdapterError(AdapterError):
    kind = ErrorKind.UNKNOWN


TIMEOUT_ERRORS = (
    "canceling statement due to statement timeout",  # postgres
    "canceling statement due to conflict with recovery",  # postgres
    "cancelled on user's request",  # redshift
    "canceled on user's request",  # redshift
    "system requested abort",  # redshift
    "maximum statement execution time exceeded",  # mysql
    "interrupted",  # sqlite
)
CONNECTION_ERRORS = (
    "server closed the connection",
    "connection refused",
    "could not connect",
    "lost connection",
    "gone away",
    "connection already closed",
    "terminating connection",
    "broken pipe",
    "connection reset",
)
DEFAULT_CONNECT_TIMEOUT = 10
PERMISSION_ERRORS = ("permission denied", "access denied", "not authorized", "security_exception")
SYNTAX_ERRORS = (
    "syntax error",
    "does not exist",
    "no such table",
    "no such column",
    "unknown column",
    "parsing_exception",
    "incomplete input",
)


@dataclass(frozen=True)
class TableMeta:
    schema: Optional[str]
    name: str
    columns: List[ColumnMeta] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema": self.schema,
            "table": self.name,
            "columns": [{"name": c.name, "data_type": c.data_type} for c in self.columns],
        }


@dataclass
class RunHandle:
    run_id: str = field(default_factory=lambda: uuid4().hex)
    connection: Any = None
    backend_id: Any = None
    cancelled: bool = False


class DatabaseAdapter(ABC):
    engine: str = "unknown"
    supports_server_timeout: bool = True
    max_idle_connections: int = 4
    timeout_errors: Tuple[str, ...] = TIMEOUT_ERRORS

    def __init__(self, source_config: Optional[Dict[str, Any]] = None):
        self.source_config = source_config or {}
        self.dialect: SQLDialect = get_sql_dialect(self.engine)
        self._idle: List[Any] = []
        self._generation = 0
        self._lock = Lock()

    # -- backend hooks -------------------------------------------------

    @abstractmethod
    def _execute(self, bound: "BoundStatement", timeout: float, handle: RunHandle) -> Tuple[List[ColumnMeta], List[List[Any]]]:
        raise NotImplementedError

    @abstractmethod
    def cancel(self, handle: RunHandle) -> None:
        raise NotImplementedError

    @abstractmethod
    def schema(self) -> List[TableMeta]:
        raise NotImplementedError

    @abstractmethod
    def explain(self, statement: str) -> str:
        raise NotImplementedError

    def _connect(self, timeout: Optional[float] = None) -> Any:
        raise NotImplementedError(f"{type(self).__name__} does not hold connections")

    def _server_params(self, default_port: int) -> Dict[str, Any]:
        """Connection settings from the source config, falling back to the DB_* environment variables."""
        load_environments()
        params: Dict[str, Any] = {}
        for key, env_name in (("host", "DB_HOST"), ("dbname", "DB_NAME"), ("user", "DB_USER"), ("password", "DB_PASSWORD")):
            value = self.source_config.get(key) or os.getenv(env_name)
            if not value:
                raise ValueError(f"{self.engine} data source needs {key} (or {env_name})")
            params[key] = value
        params["port"] = int(self.source_config.get("port") or os.getenv("DB_PORT") or default_port)
        return params

    def _connect_timeout(self, timeout: Optional[float]) -> int:
        """Whole seconds to wait for a new connection: the configured value, else the run timeout."""
        configured = self.source_config.get("connect_timeout")
        if configured:
            return int(configured)
        if timeout:
            return max(1, math.ceil(timeout))
        return DEFAULT_CONNECT_TIMEOUT

    # -- contract ------------------------------------------------------

    def run(self, bound: "BoundStatement", timeout: float) -> Result:
        handle = RunHandle()
        started = time.monotonic()
        try:
            if self.supports_server_timeout:
                columns, rows = self._execute(bound, timeout, handle)
            else:
                columns, rows = self._execute_bounded(bound, timeout, handle)
        except Exception as exc:  # backend failures become classified results
            runtime = time.monotonic() - started
            kind = self.classify_error(exc)
            logger.debug("statement failed", extra={"engine": self.engine, "error_kind": kind.value})
            return Result.failure(self.error_message(exc), kind, runtime=runtime)
        return Result.success(columns, rows, runtime=time.monotonic() - started)

    def _execute_bounded(self, bound: "BoundStatement", timeout: float, handle: RunHandle):
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{self.engine}-run")
        future = pool.submit(self._execute, bound, timeout, handle)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeout as exc:
            handle.cancelled = True
            self.cancel(handle)
            raise AdapterTimeoutError(TIMEOUT_MESSAGE) from exc
        finally:
            pool.shutdown(wait=False)

    def quote_identifier(self, name: str) -> str:
        return self.dialect.quote_identifier(name)

    def quote(self, value: Any) -> str:
        return self.dialect.quote(value)

    def classify_error(self, exc: BaseException) -> ErrorKind:
        if isinstance(exc, AdapterError):
            return exc.kind
        if isinstance(exc, TimeoutError):
            return ErrorKind.STATEMENT_TIMEOUT
        if isinstance(exc, ConnectionError):
            return ErrorKind.CONNECTION_LOST
        text = str(exc).lower()
        if any(message in text for message in self.timeout_errors):
            return ErrorKind.STATEMENT_TIMEOUT
        if any(message in text for message in CONNECTION_ERRORS):
            return ErrorKind.CONNECTION_LOST
        if any(message in text for message in PERMISSION_ERRORS):
            return ErrorKind.PERMISSION
        if any(message in text for message in SYNTAX_ERRORS):
            return ErrorKind.SYNTAX
        return ErrorKind.UNKNOWN

    def error_message(self, exc: BaseException) -> str:
        text = str(exc).strip()
        if text.startswith("ERROR:"):
            text = text[len("ERROR:"):].strip()
        return text or type(exc).__name__

    # -- connections ---------------------------------------------------

    @contextmanager
    def _connection(self, timeout: Optional[float] = None) -> Iterator[Any]:
        with self._lock:
            generation = self._generation
            conn = self._idle.pop() if self._idle else None
        if conn is None:
            conn = self._connect(timeout)
        healthy = True
        try:
            yield conn
        except Exception as exc:
            if self.classify_error(exc) == ErrorKind.CONNECTION_LOST:
                healthy = False
            raise
        finally:
            with self._lock:
                keep = healthy and generation == self._generation and len(self._idle) < self.max_idle_connections
                if keep:
                    self._idle.append(conn)
            if not keep:
                self._close(conn)

    def _close(self, conn: Any) -> None:
        try:
            conn.close()
        except Exception as exc:  # the connection is being discarded either way
            logger.debug("error closing connection", extra={"engine": self.engine, "error": str(exc)})

    def reconnect(self) -> None:
        with self._lock:
            self._generation += 1
            stale, self._idle = self._idle, []
        for conn in stale:
            self._close(conn)

    def close(self) -> None:
        self.reconnect()
