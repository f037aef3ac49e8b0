"""
RabbitMQ persistent receiver: passive queue bind, exclusive consume, settlement mapping.

Settlement:
  ACCEPTED -> basic.ack
  FAILED   -> basic.nack(requeue=True), the broker redelivers
  REJECTED -> basic.reject(requeue=False), the broker drops or dead-letters
Closing the channel hands every unacknowledged delivery back to the broker.
"""
from __future__ import annotations

from typing import Any

from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue, AbstractRobustConnection
from aio_pika.exceptions import ChannelNotFoundEntity
from aiormq.exceptions import ChannelAccessRefused
from loguru import logger

from receiver.app.constants import AckMode, SettlementOutcome
from receiver.app.core import SERVICE_NAME
from receiver.app.domain.errors import QueueBindError
from receiver.app.domain.models import QueueRef
from receiver.app.domain.receiver_config import ReceiverConfiguration
from receiver.app.infrastructure.messaging.base_receiver import BasePersistentReceiver
from receiver.app.infrastructure.messaging.rabbitmq.aio_pika_message_adapter import AioPikaInboundMessage
from receiver.app.ports.inbound_message import InboundMessage


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class RabbitMQPersistentReceiver(BasePersistentReceiver):
    def __init__(
        self,
        queue: QueueRef,
        config: ReceiverConfiguration,
        connection: AbstractRobustConnection,
        *,
        prefetch_count: int,
        **kwargs: Any,
    ) -> None:
        super().__init__(queue, config, **kwargs)
        self._connection = connection
        self._prefetch_count = prefetch_count
        self._channel: AbstractChannel | None = None
        self._amqp_queue: AbstractQueue | None = None
        self._consumer_tag: str | None = None

    async def _bind(self) -> None:
        self._channel = await self._connection.channel()
        await self._channel.set_qos(prefetch_count=self._prefetch_count)
        try:
            # Passive: the queue must already exist, it is never created here.
            self._amqp_queue = await self._channel.declare_queue(
                self.queue.name,
                durable=self.queue.durable,
                passive=True,
            )
        except ChannelNotFoundEntity as e:
            raise QueueBindError(self.queue.name, f"Queue '{self.queue.name}' does not exist on the broker: {e}") from e
        _log("rmq_queue_bound", queue=self.queue.name)

    async def _start_delivery(self) -> None:
        if self._amqp_queue is None:
            raise RuntimeError("receiver not bound")
        try:
            self._consumer_tag = await self._amqp_queue.consume(
                self._on_message,
                no_ack=self.configuration.ack_mode is AckMode.AUTO,
                exclusive=self.queue.exclusive,
            )
        except ChannelAccessRefused as e:
            raise QueueBindError(self.queue.name, f"Queue '{self.queue.name}' is already consumed exclusively: {e}") from e

    async def _on_message(self, message: AbstractIncomingMessage) -> None:
        await self._deliver(AioPikaInboundMessage(message))

    async def _stop_delivery(self) -> None:
        if self._amqp_queue is not None and self._consumer_tag is not None:
            await self._amqp_queue.cancel(self._consumer_tag)
            self._consumer_tag = None

    async def _apply_settlement(self, message: InboundMessage, outcome: SettlementOutcome) -> None:
        raw = message.raw  # type: ignore[attr-defined]
        if self.configuration.ack_mode is AckMode.AUTO:
            return
        if outcome is SettlementOutcome.ACCEPTED:
            await raw.ack()
        elif outcome is SettlementOutcome.FAILED:
            await raw.nack(requeue=True)
        else:
            await raw.reject(requeue=False)

    async def _release(self, unsettled: list[InboundMessage]) -> None:
        self._amqp_queue = None
        self._consumer_tag = None
        if self._channel is not None:
            channel, self._channel = self._channel, None
            await channel.close()
        if unsettled:
            _log("unsettled_messages_returned", queue=self.queue.name, count=len(unsettled))
