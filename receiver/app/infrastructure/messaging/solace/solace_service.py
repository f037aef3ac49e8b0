"""Solace PubSub+ session over the solace-pubsub-plus Python API."""
from __future__ import annotations

import asyncio
from typing import Any

from solace.messaging.errors.pubsubplus_client_error import PubSubPlusClientError
from solace.messaging.messaging_service import MessagingService
from solace.messaging.resources.queue import Queue

from receiver.app.constants import AckMode, SettlementOutcome
from receiver.app.domain.errors import ReceiverBuildError
from receiver.app.domain.models import ConnectionProperties, QueueRef
from receiver.app.domain.receiver_config import ReceiverConfiguration
from receiver.app.infrastructure.messaging.base_service import BaseMessagingService
from receiver.app.infrastructure.messaging.solace.solace_receiver import SolacePersistentReceiver, to_solace_outcome


class SolaceMessagingService(BaseMessagingService):
    """MessagingService implementation"""

    def __init__(self, properties: ConnectionProperties, settings: Any) -> None:
        super().__init__(properties, settings)
        self._service: MessagingService | None = None

    async def _open(self) -> None:
        service = MessagingService.builder().from_properties(self._properties.to_service_properties()).build()
        await asyncio.to_thread(service.connect)
        self._service = service

    async def _close(self) -> None:
        if self._service is not None:
            service, self._service = self._service, None
            await asyncio.to_thread(service.disconnect)

    def _new_receiver(self, queue: QueueRef, config: ReceiverConfiguration) -> SolacePersistentReceiver:
        if self._service is None:
            raise RuntimeError("solace messaging service is not connected")
        builder = self._service.create_persistent_message_receiver_builder()
        if config.ack_mode is AckMode.CLIENT:
            builder = builder.with_message_client_acknowledgement()
        nack_outcomes = sorted(config.required_outcomes - {SettlementOutcome.ACCEPTED}, key=lambda o: o.value)
        if nack_outcomes:
            builder = builder.with_required_message_outcome_support(*(to_solace_outcome(o) for o in nack_outcomes))
        try:
            sdk_receiver = builder.build(Queue.durable_exclusive_queue(queue.name))
        except PubSubPlusClientError as e:
            raise ReceiverBuildError(f"solace receiver build failed: {e}") from e
        return SolacePersistentReceiver(
            queue,
            config,
            sdk_receiver,
            delivery_queue_size=self._settings.delivery_queue_size,
        )
