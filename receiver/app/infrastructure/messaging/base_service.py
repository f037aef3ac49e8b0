"""
Broker session lifecycle shared by all broker backends.

Lifecycle:
  DISCONNECTED -> connect() (attempts with backoff) -> CONNECTED -> disconnect() -> DISCONNECTED.
  disconnect() terminates every receiver the session built before closing the transport.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol

from loguru import logger

from receiver.app.constants import SessionState, SettlementOutcome
from receiver.app.core import SERVICE_NAME
from receiver.app.core.backoff import exponential_backoff
from receiver.app.domain.errors import BrokerConnectionError, IllegalStateError
from receiver.app.domain.models import ConnectionProperties, QueueRef
from receiver.app.domain.receiver_config import ReceiverConfiguration
from receiver.app.infrastructure.messaging.base_receiver import BasePersistentReceiver
from receiver.app.infrastructure.messaging.builder import PersistentMessageReceiverBuilder


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ConnectSettings(Protocol):
    """The part of Settings a session reads."""

    max_connection_attempts: int
    initial_backoff_seconds: float
    max_backoff_seconds: float
    backoff_multiplier: float
    delivery_queue_size: int


class BaseMessagingService(ABC):
    """MessagingService implementation skeleton"""

    def __init__(self, properties: ConnectionProperties, settings: ConnectSettings) -> None:
        self._properties = properties
        self._settings = settings
        self._state = SessionState.DISCONNECTED
        self._receivers: list[BasePersistentReceiver] = []

    @property
    def properties(self) -> ConnectionProperties:
        return self._properties

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    @property
    def supported_outcomes(self) -> frozenset[SettlementOutcome]:
        return frozenset(SettlementOutcome)

    @abstractmethod
    async def _open(self) -> None:
        """Open the transport. Any exception counts as a failed attempt."""

    @abstractmethod
    async def _close(self) -> None: ...

    @abstractmethod
    def _new_receiver(self, queue: QueueRef, config: ReceiverConfiguration) -> BasePersistentReceiver: ...

    async def connect(self) -> None:
        if self.is_connected:
            return
        _log("broker_connecting", hosts=",".join(self._properties.hosts), vpn=self._properties.vpn_name)
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            attempt += 1
            _log("broker_connect_attempt", attempt=attempt, delay=delay)
            try:
                await self._open()
                break
            except Exception as e:
                logger.warning("broker connect failed: {}", e)
                if attempt >= self._settings.max_connection_attempts:
                    _log("broker_connect_failed", attempt=attempt)
                    raise BrokerConnectionError(
                        f"could not connect to {','.join(self._properties.hosts)}: {e}"
                    ) from e
        self._state = SessionState.CONNECTED
        _log("broker_connected")

    def create_persistent_message_receiver_builder(self) -> PersistentMessageReceiverBuilder:
        if not self.is_connected:
            raise IllegalStateError("messaging service is not connected")
        return PersistentMessageReceiverBuilder(
            self._register_receiver,
            supported_outcomes=self.supported_outcomes,
        )

    def _register_receiver(self, queue: QueueRef, config: ReceiverConfiguration) -> BasePersistentReceiver:
        receiver = self._new_receiver(queue, config)
        self._receivers.append(receiver)
        return receiver

    async def disconnect(self) -> None:
        if not self.is_connected:
            return
        for receiver in self._receivers:
            if not receiver.is_terminated():
                try:
                    await receiver.terminate(0)
                except Exception as e:
                    logger.warning("receiver terminate on disconnect failed: {}", e)
        self._receivers.clear()
        try:
            await self._close()
        except Exception as e:
            logger.warning("broker disconnect failed: {}", e)
        self._state = SessionState.DISCONNECTED
        _log("broker_disconnected")
