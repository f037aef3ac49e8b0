from __future__ import annotations

from typing import Any, Optional

import pytest
from loguru import logger

from receiver.app.config.settings import Settings
from receiver.app.constants import DEFAULT_QUEUE_NAME, SettlementOutcome
from receiver.app.domain.models import ConnectionProperties, DeliveryInfo, QueueRef
from receiver.app.infrastructure.messaging.inmemory.in_memory_broker import (
    InMemoryBroker,
    InMemoryMessagingService,
)

BROKER_ENV_VARS = (
    "SOLACE_HOST",
    "SOLACE_VPN",
    "SOLACE_USERNAME",
    "SOLACE_PASSWORD",
    "BROKER_HOST",
    "BROKER_VPN",
    "BROKER_USERNAME",
    "BROKER_PASSWORD",
    "BROKER_BACKEND",
    "QUEUE_NAME",
    "SETTLEMENT_OUTCOME",
    "OUTCOME_CONFIGURATION",
    "TERMINATION_GRACE_PERIOD_SECONDS",
    "MAX_CONNECTION_ATTEMPTS",
    "LOG_LEVEL",
)


class _ConnectSettings:
    max_connection_attempts = 1
    initial_backoff_seconds = 0.0
    max_backoff_seconds = 0.0
    backoff_multiplier = 2.0
    delivery_queue_size = 8
    prefetch_count = 4


class FakeMessage:
    """Implements InboundMessage; each extraction path can be switched off independently."""

    def __init__(self, text: Optional[str] = None, raw: Optional[bytes] = None, message_id: str = "m-1") -> None:
        self._text = text
        self._raw = raw
        self.delivery = DeliveryInfo(message_id=message_id)

    def get_payload_as_string(self) -> Optional[str]:
        return self._text

    def get_payload_as_bytes(self) -> Optional[bytes]:
        return self._raw


class FakeReceiver:
    """Records settle calls; optionally fails them."""

    def __init__(self, *, raise_on_settle: Exception | None = None) -> None:
        self.settled: list[tuple[Any, SettlementOutcome]] = []
        self._raise_on_settle = raise_on_settle

    async def settle(self, message: Any, outcome: SettlementOutcome) -> None:
        self.settled.append((message, outcome))
        if self._raise_on_settle is not None:
            raise self._raise_on_settle


@pytest.fixture(autouse=True)
def _clean_broker_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in BROKER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def connect_settings() -> _ConnectSettings:
    return _ConnectSettings()


@pytest.fixture()
def properties() -> ConnectionProperties:
    return ConnectionProperties.from_host_list("tcp://localhost:55555,tcp://localhost:55554")


@pytest.fixture()
def queue() -> QueueRef:
    return QueueRef.durable_exclusive(DEFAULT_QUEUE_NAME)


@pytest.fixture()
def broker() -> InMemoryBroker:
    return InMemoryBroker([DEFAULT_QUEUE_NAME])


@pytest.fixture()
def service(properties: ConnectionProperties, connect_settings: _ConnectSettings, broker: InMemoryBroker) -> InMemoryMessagingService:
    return InMemoryMessagingService(properties, connect_settings, broker=broker)


@pytest.fixture()
def settings() -> Settings:
    return Settings(broker_backend="inmemory", termination_grace_period_seconds=0.2, _env_file=None)


@pytest.fixture()
def log_messages():
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG", format="{message}")
    yield messages
    logger.remove(handler_id)

