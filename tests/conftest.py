from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock

import pytest
from botocore.exceptions import ClientError
from loguru import logger

from ec2cli.clients import EC2ClientFactory, IAMClientFactory, SSMClientFactory
from ec2cli.config import Settings
from ec2cli.process import CommandResult
from ec2cli.state import InstanceRecord

VALID_KEY = (
    "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIHh0ZXN0a2V5bWF0ZXJpYWxmb3JlYzJjbGl0ZXN0cw alice@laptop"
)


def client_error(code: str, message: str = "boom", operation: str = "op") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def _context_factory(client: Any):
    @asynccontextmanager
    async def factory() -> AsyncIterator[Any]:
        yield client

    return factory


class FakeClock:
    """Clock whose sleep only advances virtual time."""

    def __init__(self, start: float = 0.0) -> None:
        self.time = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.time

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.time += seconds


@dataclass
class FakeRunner:
    results: dict[tuple[str, ...], CommandResult] = field(default_factory=dict)
    missing: set[str] = field(default_factory=set)
    calls: list[tuple[list[str], bool]] = field(default_factory=list)

    async def run(
        self,
        command: Sequence[str],
        *,
        env: Any = None,
        capture: bool = True,
        timeout: float | None = None,
    ) -> CommandResult:
        self.calls.append((list(command), capture))
        if command[0] in self.missing:
            raise FileNotFoundError(command[0])
        return self.results.get(tuple(command), CommandResult(0))


class FakeStore:
    def __init__(self, *records: InstanceRecord) -> None:
        self.records = {r.name: r for r in records}

    def get(self, name: str) -> InstanceRecord | None:
        return self.records.get(name)

    def save(self, record: InstanceRecord) -> None:
        self.records[record.name] = record

    def remove(self, name: str) -> None:
        self.records.pop(name, None)


@pytest.fixture
def ec2() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def iam() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def ssm() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def ec2_factory(ec2: AsyncMock) -> EC2ClientFactory:
    return EC2ClientFactory(_context_factory(ec2))


@pytest.fixture
def iam_factory(iam: AsyncMock) -> IAMClientFactory:
    return IAMClientFactory(_context_factory(iam))


@pytest.fixture
def ssm_factory(ssm: AsyncMock) -> SSMClientFactory:
    return SSMClientFactory(_context_factory(ssm))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(region="us-east-1")


@pytest.fixture
def log_messages():
    """Capture ec2cli log records as ``"LEVEL message"`` strings."""
    messages: list[str] = []
    logger.enable("ec2cli")
    hid = logger.add(lambda m: messages.append(f"{m.record['level'].name} {m.record['message']}"))
    yield messages
    logger.remove(hid)
    logger.disable("ec2cli")
