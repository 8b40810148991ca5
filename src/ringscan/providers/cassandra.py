"""Cassandra provider using the DataStax python driver."""

import asyncio
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, ClassVar, Self, final

import structlog
from pydantic import BaseModel

from ringscan.datatypes import Page
from ringscan.errors import ErrorKind, ScanError
from ringscan.params import ConsistencyLevel as Consistency
from ringscan.params import ExecuteOptions, ScanParams
from ringscan.query import Query
from ringscan.retry import AlwaysRetry, FailureKind, RetryDecision, RetryPolicy

if TYPE_CHECKING:
    from cassandra.cluster import Session
    from cassandra.query import PreparedStatement

try:
    from cassandra import (
        ConsistencyLevel,
        CoordinationFailure,
        OperationTimedOut,
        RequestValidationException,
        Timeout,
        Unavailable,
    )
    from cassandra import policies as driver_policies
    from cassandra.auth import PlainTextAuthProvider
    from cassandra.cluster import (
        EXEC_PROFILE_DEFAULT,
        Cluster,
        ExecutionProfile,
        NoHostAvailable,
    )
    from cassandra.connection import ConnectionException
    from cassandra.query import SimpleStatement, dict_factory
except ImportError as e:
    _msg = (
        "cassandra-driver is required for Cassandra support. "
        "Install with: uv add 'ringscan[cassandra]'"
    )
    raise ImportError(_msg) from e

logger = structlog.get_logger(__name__)

_DECISIONS: dict[RetryDecision, int] = {
    RetryDecision.RETRY: driver_policies.RetryPolicy.RETRY,
    RetryDecision.RETRY_NEXT_HOST: driver_policies.RetryPolicy.RETRY_NEXT_HOST,
    RetryDecision.RETHROW: driver_policies.RetryPolicy.RETHROW,
    RetryDecision.IGNORE: driver_policies.RetryPolicy.IGNORE,
}


class CassandraCredentials(BaseModel, frozen=True):
    """Credentials for a Cassandra cluster."""

    host: str
    """Contact point (hostname or IP)."""

    port: int = 9042
    """Native protocol port."""

    username: str | None = None
    password: str | None = None

    connect_timeout: float = 10.0
    """Seconds to wait when opening a connection."""

    @classmethod
    def from_table_config(cls, section: Mapping[str, Any]) -> Self:
        """Build credentials from the table section of a RESTBase config."""
        hosts = section.get("hosts") or []
        if not hosts:
            msg = "Table config has no hosts"
            raise ScanError(msg, kind=ErrorKind.INVALID_INPUT)
        return cls(
            host=str(hosts[0]),
            username=section.get("username"),
            password=section.get("password"),
        )


@final
class DriverRetryPolicy(driver_policies.RetryPolicy):
    """Adapts a `RetryPolicy` to the driver's retry extension point.

    Connection resets requested by the policy are started and not waited on,
    so the retry may race a pool that is still reopening.
    """

    def __init__(self, policy: RetryPolicy, reset: Callable[[], None] | None = None) -> None:
        super().__init__()
        self.policy = policy
        self.reset = reset

    def _decide(
        self, kind: FailureKind, consistency: int | None, retry_num: int
    ) -> tuple[int, int | None]:
        verdict = self.policy.on_failure(kind, retry_num)
        if verdict.reset_connection and self.reset is not None:
            try:
                self.reset()
            except Exception:  # noqa: BLE001
                logger.exception("connection reset failed", failure=kind)
        decision = _DECISIONS[verdict.decision]
        if verdict.decision in (RetryDecision.RETHROW, RetryDecision.IGNORE):
            return decision, None
        return decision, consistency

    def on_read_timeout(  # noqa: PLR0913
        self,
        query: object,
        consistency: int,
        required_responses: int,
        received_responses: int,
        data_retrieved: bool,  # noqa: FBT001
        retry_num: int,
    ) -> tuple[int, int | None]:
        return self._decide(FailureKind.READ_TIMEOUT, consistency, retry_num)

    def on_write_timeout(  # noqa: PLR0913
        self,
        query: object,
        consistency: int,
        write_type: str,
        required_responses: int,
        received_responses: int,
        retry_num: int,
    ) -> tuple[int, int | None]:
        return self._decide(FailureKind.WRITE_TIMEOUT, consistency, retry_num)

    def on_unavailable(  # noqa: PLR0913
        self,
        query: object,
        consistency: int,
        required_replicas: int,
        alive_replicas: int,
        retry_num: int,
    ) -> tuple[int, int | None]:
        return self._decide(FailureKind.UNAVAILABLE, consistency, retry_num)

    def on_request_error(
        self,
        query: object,
        consistency: int,
        error: Exception,
        retry_num: int,
    ) -> tuple[int, int | None]:
        return self._decide(FailureKind.REQUEST_ERROR, consistency, retry_num)


def _consistency(level: Consistency) -> int:
    return getattr(ConsistencyLevel, level.name)


def _simple_cql(query: Query) -> str:
    """Rewrite `?` markers into the `%s` style unprepared statements are bound with."""
    if not query.params:
        return query.cql
    return query.cql.replace("%", "%%").replace("?", "%s")


class CassandraProvider:
    """Cassandra provider implementing `ScanBackend`.

    Implements Provider[CassandraCredentials, ScanParams].
    """

    __slots__: ClassVar[tuple[str, ...]] = ("_cluster", "_params", "_prepared", "_session")

    _cluster: "Cluster"
    _params: ScanParams
    _prepared: dict[str, "PreparedStatement"]
    _session: "Session"

    def __init__(self, cluster: "Cluster", session: "Session", params: ScanParams) -> None:
        self._cluster = cluster
        self._session = session
        self._params = params
        self._prepared = {}

    @property
    def params(self) -> ScanParams:
        return self._params

    @classmethod
    async def connect(
        cls,
        credentials: CassandraCredentials,
        params: ScanParams,
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> Self:
        """Open a session against the cluster."""
        driver_policy = DriverRetryPolicy(retry_policy or AlwaysRetry())
        auth = (
            PlainTextAuthProvider(credentials.username, credentials.password)
            if credentials.username
            else None
        )
        profile = ExecutionProfile(
            retry_policy=driver_policy,
            consistency_level=_consistency(params.consistency),
            row_factory=dict_factory,
        )
        cluster = Cluster(
            contact_points=[credentials.host],
            port=credentials.port,
            auth_provider=auth,
            connect_timeout=credentials.connect_timeout,
            execution_profiles={EXEC_PROFILE_DEFAULT: profile},
        )
        try:
            session = await asyncio.to_thread(cluster.connect)
        except Exception as e:
            cluster.shutdown()
            msg = f"Failed to connect to Cassandra: {e}"
            raise ScanError(msg, kind=ErrorKind.CONNECTION, source=e) from e

        provider = cls(cluster, session, params)
        driver_policy.reset = provider.reset_connection
        return provider

    async def disconnect(self) -> None:
        """Shut down the cluster and its connection pools."""
        await asyncio.to_thread(self._cluster.shutdown)

    def reset_connection(self) -> None:
        """Close and reopen the pool of every known host without waiting.

        The driver does not tell a retry policy which coordinator failed, so
        every pool is renewed. Reads in flight on healthy hosts are dropped
        and go through the retry policy like any other failed request.
        """
        logger.info("resetting connection pools")
        for host in self._cluster.metadata.all_hosts():
            _ = self._session.add_or_renew_pool(host, is_host_addition=False)

    async def _statement(self, query: Query, options: ExecuteOptions) -> Any:
        if not options.prepare:
            return SimpleStatement(
                _simple_cql(query),
                fetch_size=options.fetch_size,
                consistency_level=_consistency(options.consistency),
            )
        prepared = self._prepared.get(query.cql)
        if prepared is None:
            prepared = await asyncio.to_thread(self._session.prepare, query.cql)
            self._prepared[query.cql] = prepared
        bound = prepared.bind(query.params)
        bound.fetch_size = options.fetch_size
        bound.consistency_level = _consistency(options.consistency)
        return bound

    async def execute(self, query: Query, options: ExecuteOptions) -> Page:
        """Run one page read and return its rows and paging state."""
        try:
            statement = await self._statement(query, options)
            params = None if options.prepare else query.params or None
            result = await asyncio.to_thread(
                self._session.execute,
                statement,
                params,
                paging_state=options.page_state,
            )
        except Unavailable as e:
            msg = f"Not enough replicas available: {e}"
            raise ScanError(msg, kind=ErrorKind.UNAVAILABLE, source=e) from e
        except (Timeout, OperationTimedOut) as e:
            msg = f"Read timed out: {e}"
            raise ScanError(msg, kind=ErrorKind.TIMEOUT, source=e) from e
        except CoordinationFailure as e:
            msg = f"Replicas failed the read: {e}"
            raise ScanError(msg, kind=ErrorKind.UNAVAILABLE, source=e) from e
        except (NoHostAvailable, ConnectionException) as e:
            msg = f"No Cassandra host available: {e}"
            raise ScanError(msg, kind=ErrorKind.CONNECTION, source=e) from e
        except RequestValidationException as e:
            msg = f"Invalid query {query.cql!r}: {e}"
            raise ScanError(msg, kind=ErrorKind.INVALID_INPUT, source=e) from e
        except (TypeError, ValueError) as e:
            msg = f"Cannot bind {query.params!r} to {query.cql!r}: {e}"
            raise ScanError(msg, kind=ErrorKind.INVALID_INPUT, source=e) from e
        except Exception as e:
            msg = f"Failed to read from Cassandra: {e}"
            raise ScanError(msg, source=e) from e

        return Page(rows=list(result.current_rows), page_state=result.paging_state)


Provider = CassandraProvider
