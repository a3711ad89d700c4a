"""
Branch database connection factory.

Turns a branch record into a ``BranchContext``: the SQLAlchemy URL and
driver arguments for the branch database plus a lazily created async
engine. Contexts are scoped to one operation and dispose their engine on
exit, so no branch connection outlives the call that needed it.

Drivers per provider:
    - sqlite: ``sqlite+aiosqlite``, file at
      ``<sqlite_root>/<code>/Database/<code>.db``
    - postgresql: ``postgresql+asyncpg``
    - mysql: ``mysql+aiomysql``
    - mssql: ``mssql+aioodbc`` (ODBC Driver 18 for SQL Server)

Example:
    >>> factory = ConnectionFactory(OrchestratorConfig())
    >>> async with factory.create_branch_context(branch) as context:
    ...     async with context.engine.connect() as conn:
    ...         await conn.execute(text("SELECT 1"))
"""

from __future__ import annotations

import logging
import ssl
from collections.abc import Callable
from pathlib import Path
from types import TracebackType
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from branchmigrator.config import OrchestratorConfig
from branchmigrator.exceptions import InvalidConnectionConfigError, UnsupportedProviderError
from branchmigrator.models import Branch, DatabaseProvider, SslMode

logger = logging.getLogger(__name__)

MSSQL_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"

EngineFactory = Callable[..., AsyncEngine]


def mask_connection_string(url: URL | str) -> str:
    """Render a connection URL with the password replaced by ``***``."""
    if isinstance(url, URL):
        return url.render_as_string(hide_password=True)
    # Plain strings: key=value;key=value style
    parts = []
    for part in url.split(";"):
        key, sep, _ = part.partition("=")
        if sep and key.strip().lower() in ("password", "pwd"):
            parts.append(f"{key}=***")
        else:
            parts.append(part)
    return ";".join(parts)


def parse_additional_params(params: str | None) -> dict[str, str]:
    """Split ``"key=value;key=value"`` into a dict, ignoring blanks."""
    result: dict[str, str] = {}
    if not params:
        return result
    for part in params.split(";"):
        key, sep, value = part.partition("=")
        if not key.strip():
            continue
        if not sep:
            raise ValueError(f"Malformed connection parameter {part!r}, expected key=value")
        result[key.strip()] = value.strip()
    return result


class BranchContext:
    """
    Connection context for one branch database.

    The engine is created on first use and disposed when the context
    exits. Use as ``async with``; call ``dispose()`` yourself otherwise.

    Attributes:
        branch: The branch this context targets
        url: SQLAlchemy URL of the branch database
        connect_args: Driver keyword arguments
        sqlite_path: Database file for SQLite branches, else None
        connect_timeout: Seconds allowed for a reachability probe
    """

    def __init__(
        self,
        branch: Branch,
        url: URL,
        *,
        connect_args: dict[str, Any] | None = None,
        sqlite_path: Path | None = None,
        connect_timeout: float = 10.0,
        engine_factory: EngineFactory = create_async_engine,
    ) -> None:
        self.branch = branch
        self.url = url
        self.connect_args = dict(connect_args or {})
        self.sqlite_path = sqlite_path
        self.connect_timeout = connect_timeout
        self._engine_factory = engine_factory
        self._engine: AsyncEngine | None = None

    @property
    def provider(self) -> DatabaseProvider:
        return self.branch.provider

    @property
    def masked_url(self) -> str:
        return mask_connection_string(self.url)

    @property
    def engine(self) -> AsyncEngine:
        """The branch engine, created on first access."""
        if self._engine is None:
            logger.debug(
                "Creating engine for branch %s: %s",
                self.branch.code,
                self.masked_url,
            )
            self._engine = self._engine_factory(self.url, connect_args=self.connect_args)
            if self.provider.is_embedded:
                _enable_transactional_ddl(self._engine)
        return self._engine

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    async def __aenter__(self) -> BranchContext:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.dispose()

    def __repr__(self) -> str:
        return f"BranchContext(branch={self.branch.code!r}, url={self.masked_url!r})"


class ConnectionFactory:
    """
    Builds branch connection contexts from branch records.

    Args:
        config: Orchestrator configuration (SQLite root, connect timeout)
        engine_factory: Callable creating the async engine; defaults to
            ``sqlalchemy.ext.asyncio.create_async_engine``
    """

    def __init__(
        self,
        config: OrchestratorConfig | None = None,
        *,
        engine_factory: EngineFactory = create_async_engine,
    ) -> None:
        self._config = config or OrchestratorConfig()
        self._engine_factory = engine_factory

    def sqlite_path_for(self, branch: Branch) -> Path:
        return Path(self._config.sqlite_root) / branch.code / "Database" / f"{branch.code}.db"

    def create_branch_context(self, branch: Branch) -> BranchContext:
        """
        Build the connection context for a branch.

        Raises:
            InvalidConnectionConfigError: If the branch's coordinates cannot
                form a connection target
            UnsupportedProviderError: If the provider has no driver mapping
        """
        builders = {
            DatabaseProvider.SQLITE: self._sqlite,
            DatabaseProvider.POSTGRESQL: self._postgresql,
            DatabaseProvider.MYSQL: self._mysql,
            DatabaseProvider.MSSQL: self._mssql,
        }
        builder = builders.get(branch.provider)
        if builder is None:
            raise UnsupportedProviderError(branch.provider, branch_id=branch.id)

        try:
            extra = parse_additional_params(branch.db_additional_params)
        except ValueError as e:
            raise InvalidConnectionConfigError(str(e), branch_id=branch.id) from e

        url, connect_args, sqlite_path = builder(branch, extra)
        context = BranchContext(
            branch,
            url,
            connect_args=connect_args,
            sqlite_path=sqlite_path,
            connect_timeout=self._config.connect_timeout,
            engine_factory=self._engine_factory,
        )
        logger.debug("Built connection context for branch %s: %s", branch.code, context.masked_url)
        return context

    def _sqlite(
        self, branch: Branch, extra: dict[str, str]
    ) -> tuple[URL, dict[str, Any], Path | None]:
        path = self.sqlite_path_for(branch)
        url = URL.create("sqlite+aiosqlite", database=str(path))
        return url, {"timeout": self._config.connect_timeout}, path

    def _postgresql(
        self, branch: Branch, extra: dict[str, str]
    ) -> tuple[URL, dict[str, Any], Path | None]:
        self._require_server(branch)
        url = URL.create(
            "postgresql+asyncpg",
            username=branch.db_username,
            password=_password(branch),
            host=branch.db_server,
            port=branch.db_port or None,
            database=branch.db_name,
            query=extra,
        )
        connect_args: dict[str, Any] = {"timeout": self._config.connect_timeout}
        pg_ssl = {
            SslMode.DISABLE: "disable",
            SslMode.REQUIRE: "require",
            SslMode.VERIFY_CA: "verify-ca",
            SslMode.VERIFY_FULL: "verify-full",
        }
        connect_args["ssl"] = pg_ssl[branch.ssl_mode]
        return url, connect_args, None

    def _mysql(
        self, branch: Branch, extra: dict[str, str]
    ) -> tuple[URL, dict[str, Any], Path | None]:
        self._require_server(branch)
        url = URL.create(
            "mysql+aiomysql",
            username=branch.db_username,
            password=_password(branch),
            host=branch.db_server,
            port=branch.db_port or None,
            database=branch.db_name,
            query={"charset": "utf8mb4", **extra},
        )
        connect_args: dict[str, Any] = {"connect_timeout": self._config.connect_timeout}
        context = _mysql_ssl_context(branch.ssl_mode)
        if context is not None:
            connect_args["ssl"] = context
        return url, connect_args, None

    def _mssql(
        self, branch: Branch, extra: dict[str, str]
    ) -> tuple[URL, dict[str, Any], Path | None]:
        self._require_server(branch)
        query: dict[str, str] = {"driver": MSSQL_ODBC_DRIVER}
        if branch.trust_server_certificate:
            query["TrustServerCertificate"] = "yes"
        if not branch.db_username:
            query["Trusted_Connection"] = "yes"
        query.update(extra)
        url = URL.create(
            "mssql+aioodbc",
            username=branch.db_username or None,
            password=_password(branch) if branch.db_username else None,
            host=branch.db_server,
            port=branch.db_port or None,
            database=branch.db_name,
            query=query,
        )
        return url, {"timeout": int(self._config.connect_timeout)}, None

    @staticmethod
    def _require_server(branch: Branch) -> None:
        if not branch.db_server.strip():
            raise InvalidConnectionConfigError(
                f"Branch {branch.code} has no database server configured",
                branch_id=branch.id,
            )
        if not branch.db_name.strip():
            raise InvalidConnectionConfigError(
                f"Branch {branch.code} has no database name configured",
                branch_id=branch.id,
            )


def _enable_transactional_ddl(engine: AsyncEngine) -> None:
    # The sqlite3 driver does not open a transaction before DDL; take over
    # BEGIN so a unit's statements and its ledger row commit together.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


def _password(branch: Branch) -> str | None:
    return branch.db_password.get_secret_value() if branch.db_password is not None else None


def _mysql_ssl_context(mode: SslMode) -> ssl.SSLContext | None:
    if mode == SslMode.DISABLE:
        return None
    context = ssl.create_default_context()
    if mode in (SslMode.REQUIRE, SslMode.VERIFY_CA):
        context.check_hostname = False
    if mode == SslMode.REQUIRE:
        context.verify_mode = ssl.CERT_NONE
    return context


__all__ = [
    "BranchContext",
    "ConnectionFactory",
    "mask_connection_string",
    "parse_additional_params",
    "MSSQL_ODBC_DRIVER",
]
