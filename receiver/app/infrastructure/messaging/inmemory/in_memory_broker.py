"""In-memory broker for tests and local mode.

Simulates just enough guaranteed messaging to exercise the receiver: named queues that
must exist before a receiver binds, redelivery of FAILED messages up to a limit,
dead-lettering of REJECTED messages, and return of unsettled messages when a flow closes.
Standby consumers on exclusive queues are not modelled.
"""
from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

from loguru import logger

from receiver.app.constants import SettlementOutcome
from receiver.app.core import SERVICE_NAME
from receiver.app.domain.errors import QueueBindError
from receiver.app.domain.models import ConnectionProperties, DeliveryInfo, QueueRef
from receiver.app.domain.receiver_config import ReceiverConfiguration
from receiver.app.infrastructure.messaging.base_receiver import BasePersistentReceiver
from receiver.app.infrastructure.messaging.base_service import BaseMessagingService, ConnectSettings
from receiver.app.ports.inbound_message import InboundMessage

Payload = Union[str, bytes, None]

DEFAULT_MAX_REDELIVERIES = 3


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@dataclass(frozen=True)
class InMemoryInboundMessage:
    """One delivery of a stored message. Redeliveries are new instances."""

    payload: Payload
    delivery: DeliveryInfo = field(default_factory=DeliveryInfo)
    queue_name: str = ""

    def get_payload_as_string(self) -> Optional[str]:
        return self.payload if isinstance(self.payload, str) else None

    def get_payload_as_bytes(self) -> Optional[bytes]:
        return self.payload if isinstance(self.payload, bytes) else None

    def redelivery(self) -> "InMemoryInboundMessage":
        return InMemoryInboundMessage(
            payload=self.payload,
            delivery=DeliveryInfo(
                message_id=self.delivery.message_id,
                redelivered=True,
                delivery_count=(self.delivery.delivery_count or 1) + 1,
            ),
            queue_name=self.queue_name,
        )


class InMemoryBroker:
    def __init__(
        self,
        queues: Iterable[str] = (),
        *,
        supported_outcomes: frozenset[SettlementOutcome] = frozenset(SettlementOutcome),
        max_redeliveries: int = DEFAULT_MAX_REDELIVERIES,
    ) -> None:
        self.supported_outcomes = supported_outcomes
        self.max_redeliveries = max_redeliveries
        self.reachable = True
        self.settle_error: Exception | None = None
        self.settlements: list[tuple[Optional[str], SettlementOutcome]] = []
        self.dead_letters: dict[str, list[InMemoryInboundMessage]] = {}
        self.connections = 0
        self._queues: dict[str, asyncio.Queue[InMemoryInboundMessage]] = {}
        self._ids = itertools.count(1)
        for name in queues:
            self.provision_queue(name)

    def provision_queue(self, name: str) -> None:
        self._queues.setdefault(name, asyncio.Queue())
        self.dead_letters.setdefault(name, [])

    def has_queue(self, name: str) -> bool:
        return name in self._queues

    def depth(self, name: str) -> int:
        return self._queues[name].qsize()

    def publish(self, queue_name: str, payload: Payload, *, message_id: Optional[str] = None) -> str:
        if not self.has_queue(queue_name):
            raise KeyError(f"queue {queue_name!r} does not exist")
        message_id = message_id or f"msg-{next(self._ids)}"
        self._queues[queue_name].put_nowait(
            InMemoryInboundMessage(
                payload=payload,
                delivery=DeliveryInfo(message_id=message_id, delivery_count=1),
                queue_name=queue_name,
            )
        )
        return message_id

    def connect(self, properties: ConnectionProperties) -> None:
        if not self.reachable:
            raise ConnectionRefusedError(f"broker unreachable at {','.join(properties.hosts)}")
        self.connections += 1

    def disconnect(self) -> None:
        self.connections = max(0, self.connections - 1)

    async def next_message(self, queue_name: str) -> InMemoryInboundMessage:
        return await self._queues[queue_name].get()

    def restore(self, message: InMemoryInboundMessage) -> None:
        """Put an unsettled delivery back on its queue as a redelivery."""
        self._queues[message.queue_name].put_nowait(message.redelivery())

    def settle(self, message: InMemoryInboundMessage, outcome: SettlementOutcome) -> None:
        if self.settle_error is not None:
            raise self.settle_error
        self.settlements.append((message.delivery.message_id, outcome))
        if outcome is SettlementOutcome.REJECTED:
            self.dead_letters[message.queue_name].append(message)
        elif outcome is SettlementOutcome.FAILED:
            if (message.delivery.delivery_count or 1) > self.max_redeliveries:
                self.dead_letters[message.queue_name].append(message)
            else:
                self.restore(message)


class InMemoryPersistentReceiver(BasePersistentReceiver):
    def __init__(
        self,
        queue: QueueRef,
        config: ReceiverConfiguration,
        broker: InMemoryBroker,
        **kwargs: Any,
    ) -> None:
        super().__init__(queue, config, **kwargs)
        self._broker = broker
        self._pump_task: asyncio.Task[None] | None = None

    async def _bind(self) -> None:
        if not self._broker.has_queue(self.queue.name):
            raise QueueBindError(self.queue.name)

    async def _start_delivery(self) -> None:
        self._pump_task = asyncio.create_task(self._pump())

    async def _pump(self) -> None:
        while True:
            message = await self._broker.next_message(self.queue.name)
            try:
                accepted = await self._deliver(message)
            except asyncio.CancelledError:
                self._pending.pop(id(message), None)
                self._broker.restore(message)
                raise
            if not accepted:
                self._broker.restore(message)

    async def _stop_delivery(self) -> None:
        task, self._pump_task = self._pump_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _apply_settlement(self, message: InboundMessage, outcome: SettlementOutcome) -> None:
        self._broker.settle(message, outcome)  # type: ignore[arg-type]

    async def _release(self, unsettled: list[InboundMessage]) -> None:
        await self._stop_delivery()
        for message in unsettled:
            self._broker.restore(message)  # type: ignore[arg-type]
        if unsettled:
            _log("unsettled_messages_returned", queue=self.queue.name, count=len(unsettled))


class InMemoryMessagingService(BaseMessagingService):
    def __init__(
        self,
        properties: ConnectionProperties,
        settings: ConnectSettings,
        broker: InMemoryBroker | None = None,
    ) -> None:
        super().__init__(properties, settings)
        self.broker = broker or InMemoryBroker()

    @property
    def supported_outcomes(self) -> frozenset[SettlementOutcome]:
        return self.broker.supported_outcomes

    async def _open(self) -> None:
        self.broker.connect(self._properties)

    async def _close(self) -> None:
        self.broker.disconnect()

    def _new_receiver(self, queue: QueueRef, config: ReceiverConfiguration) -> InMemoryPersistentReceiver:
        return InMemoryPersistentReceiver(
            queue,
            config,
            self.broker,
            delivery_queue_size=self._settings.delivery_queue_size,
        )
