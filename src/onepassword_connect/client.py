"""High-level async client for a Connect server."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from types import TracebackType

import httpx

from onepassword_connect.circuit_breaker import (
    AbstractBreakerStorage,
    CircuitBreaker,
    LoggingBreakerListener,
)
from onepassword_connect.logging import (
    StructuredLogger,
    configure_structlog,
    get_logger,
    log_info,
)
from onepassword_connect.pipeline import RequestPipeline
from onepassword_connect.resources import (
    ActivityClient,
    FilesClient,
    HealthClient,
    ItemsClient,
    VaultsClient,
)
from onepassword_connect.retry import Backoff
from onepassword_connect.settings import ConnectSettings
from onepassword_connect.transport import HttpTransport, build_http_client


class ConnectClient:
    """Facade grouping the resource clients over one shared pipeline.

    Use as an async context manager so the connection pool is released::

        async with ConnectClient.from_settings() as client:
            vaults = await client.vaults.list()
    """

    def __init__(
        self,
        pipeline: RequestPipeline,
        *,
        http_client: httpx.AsyncClient | None = None,
        owns_http_client: bool = False,
    ) -> None:
        self._pipeline = pipeline
        self._http_client = http_client
        self._owns_http_client = owns_http_client
        self.vaults = VaultsClient(pipeline)
        self.items = ItemsClient(pipeline)
        self.files = FilesClient(pipeline)
        self.activity = ActivityClient(pipeline)
        self.health = HealthClient(pipeline)

    @classmethod
    def from_settings(
        cls,
        settings: ConnectSettings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        breaker_storage: AbstractBreakerStorage | None = None,
        backoff: Backoff | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        logger: StructuredLogger | None = None,
        configure_logging: bool = False,
    ) -> ConnectClient:
        """Wire transport, retries and the circuit breaker from settings.

        Args:
            settings: Validated settings. Read from ``OP_CONNECT_*`` when omitted.
            http_client: Caller-owned client. It must already point at the
                server's base URL and is never closed here.
            breaker_storage: Shared breaker state. Defaults to in-memory.
            backoff: Override of the retry delay function.
            sleep: Override of the sleep used between attempts.
            logger: Structured logger. Defaults to the library logger.
            configure_logging: Also configure structlog at ``settings.log_level``.
        """
        settings = ConnectSettings() if settings is None else settings
        if configure_logging:
            configure_structlog(log_level=settings.log_level)
        logger = get_logger() if logger is None else logger

        owns_http_client = http_client is None
        if http_client is None:
            http_client = build_http_client(
                base_url=settings.base_url,
                timeout_seconds=settings.timeout_seconds,
            )

        breaker_config = settings.breaker_config()
        breaker = CircuitBreaker(
            settings.base_url,
            config=breaker_config,
            storage=breaker_storage,
            listeners=[
                LoggingBreakerListener(
                    recovery_timeout_seconds=breaker_config.recovery_timeout,
                    logger=logger,
                )
            ],
        )
        pipeline = RequestPipeline(
            transport=HttpTransport(http_client),
            api_token=settings.api_token,
            breaker=breaker,
            retry_policy=settings.retry_policy(),
            is_retryable_status=settings.retryable_status(),
            backoff=backoff,
            sleep=sleep,
            logger=logger,
        )
        log_info(
            logger,
            "client.configured",
            base_url=settings.base_url,
            retry_count=settings.retry_count,
            failure_threshold=breaker_config.failure_threshold,
            break_duration_seconds=breaker_config.recovery_timeout,
        )
        return cls(
            pipeline,
            http_client=http_client,
            owns_http_client=owns_http_client,
        )

    @property
    def pipeline(self) -> RequestPipeline:
        return self._pipeline

    @property
    def http_client(self) -> httpx.AsyncClient | None:
        return self._http_client

    @property
    def breaker(self) -> CircuitBreaker:
        return self._pipeline.breaker

    async def aclose(self) -> None:
        """Close the connection pool if this client created it."""
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()

    async def __aenter__(self) -> ConnectClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
