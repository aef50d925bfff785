"""AWS client factories with dependency injection.

Provides typed client factories that can be injected into components.
Components never build clients themselves; tests swap the factories for
ones yielding AsyncMocks.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

import aioboto3
from injector import Module, provider, singleton

from ec2cli.clock import Clock, SystemClock
from ec2cli.config import Settings
from ec2cli.process import AsyncProcessRunner, ProcessRunner

# =============================================================================
# Client Type
# =============================================================================

type Client[T] = Callable[[], AbstractAsyncContextManager[T]]
"""Factory that returns an async context manager for a client."""

# =============================================================================
# Wrapper Classes for DI (each needs a unique type)
# =============================================================================


class _ClientFactory:
    def __init__(self, factory: Client[Any]) -> None:
        self._factory = factory

    def __call__(self) -> AbstractAsyncContextManager[Any]:
        return self._factory()


class EC2ClientFactory(_ClientFactory):
    """Wrapper for EC2 client factory."""


class IAMClientFactory(_ClientFactory):
    """Wrapper for IAM client factory."""


class SSMClientFactory(_ClientFactory):
    """Wrapper for SSM client factory."""


def _session_factory(
    session: aioboto3.Session, service: str, region: str | None
) -> Client[Any]:
    @asynccontextmanager
    async def factory() -> AsyncIterator[Any]:
        async with session.client(service, region_name=region) as client:
            yield client

    return factory


# =============================================================================
# Module
# =============================================================================


class Ec2CliModule(Module):
    """DI module providing settings, clock, process runner and AWS clients.

    Usage:
        >>> from injector import Injector
        >>> from ec2cli.clients import Ec2CliModule
        >>> from ec2cli.config import Settings
        >>>
        >>> injector = Injector([Ec2CliModule(Settings(region="us-east-1"))])
        >>> lifecycle = injector.get(Lifecycle)
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @singleton
    @provider
    def provide_settings(self) -> Settings:
        return self._settings

    @singleton
    @provider
    def provide_clock(self) -> Clock:
        return SystemClock()

    @singleton
    @provider
    def provide_runner(self) -> ProcessRunner:
        return AsyncProcessRunner()

    @singleton
    @provider
    def provide_session(self) -> aioboto3.Session:
        """Provide singleton aioboto3 session."""
        return aioboto3.Session()

    @singleton
    @provider
    def provide_ec2(self, session: aioboto3.Session, settings: Settings) -> EC2ClientFactory:
        return EC2ClientFactory(_session_factory(session, "ec2", settings.region))

    @singleton
    @provider
    def provide_iam(self, session: aioboto3.Session, settings: Settings) -> IAMClientFactory:
        # IAM is global; the region only selects the endpoint partition.
        return IAMClientFactory(_session_factory(session, "iam", settings.region))

    @singleton
    @provider
    def provide_ssm(self, session: aioboto3.Session, settings: Settings) -> SSMClientFactory:
        return SSMClientFactory(_session_factory(session, "ssm", settings.region))


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "Client",
    "EC2ClientFactory",
    "Ec2CliModule",
    "IAMClientFactory",
    "SSMClientFactory",
]
