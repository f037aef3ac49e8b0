"""
Solace PubSub+ persistent receiver.

The Solace API is blocking and delivers on its own thread. Blocking calls run through
asyncio.to_thread; the API's message callback hands each message to the event loop and
waits until the receiver's bounded delivery queue has taken it.
"""
from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger
from solace.messaging.config.message_acknowledgement_configuration import Outcome
from solace.messaging.errors.pubsubplus_client_error import PubSubPlusClientError
from solace.messaging.receiver.message_receiver import InboundMessage as SolaceInboundMessage, MessageHandler
from solace.messaging.receiver.persistent_message_receiver import PersistentMessageReceiver

from receiver.app.constants import AckMode, SettlementOutcome
from receiver.app.domain.errors import HandlerRegistrationError, QueueBindError
from receiver.app.domain.models import QueueRef
from receiver.app.domain.receiver_config import ReceiverConfiguration
from receiver.app.infrastructure.messaging.base_receiver import BasePersistentReceiver
from receiver.app.infrastructure.messaging.solace.solace_message_adapter import SolaceInboundMessageAdapter
from receiver.app.ports.inbound_message import InboundMessage


def to_solace_outcome(outcome: SettlementOutcome) -> Outcome:
    return Outcome[outcome.value]


class _ForwardingMessageHandler(MessageHandler):
    """Runs on the Solace delivery thread."""

    def __init__(self, receiver: "SolacePersistentReceiver", loop: asyncio.AbstractEventLoop) -> None:
        self._receiver = receiver
        self._loop = loop

    def on_message(self, message: SolaceInboundMessage) -> None:
        adapted = SolaceInboundMessageAdapter(message)
        try:
            future = asyncio.run_coroutine_threadsafe(self._receiver._deliver(adapted), self._loop)
            future.result()
        except Exception as e:
            logger.warning("solace delivery hand-off failed, message left to broker redelivery: {}", e)


class SolacePersistentReceiver(BasePersistentReceiver):
    def __init__(
        self,
        queue: QueueRef,
        config: ReceiverConfiguration,
        sdk_receiver: PersistentMessageReceiver,
        **kwargs: Any,
    ) -> None:
        super().__init__(queue, config, **kwargs)
        self._sdk_receiver = sdk_receiver

    async def _bind(self) -> None:
        try:
            await asyncio.to_thread(self._sdk_receiver.start)
        except PubSubPlusClientError as e:
            raise QueueBindError(self.queue.name, f"{e}") from e

    async def _start_delivery(self) -> None:
        handler = _ForwardingMessageHandler(self, asyncio.get_running_loop())
        try:
            await asyncio.to_thread(self._sdk_receiver.receive_async, handler)
        except PubSubPlusClientError as e:
            raise HandlerRegistrationError(f"solace receive_async registration failed: {e}") from e

    async def _stop_delivery(self) -> None:
        await asyncio.to_thread(self._sdk_receiver.pause)

    async def _apply_settlement(self, message: InboundMessage, outcome: SettlementOutcome) -> None:
        if self.configuration.ack_mode is AckMode.AUTO:
            return
        await asyncio.to_thread(
            self._sdk_receiver.settle,
            message.raw,  # type: ignore[attr-defined]
            to_solace_outcome(outcome),
        )

    async def _release(self, unsettled: list[InboundMessage]) -> None:
        # The grace period has already been spent draining the pipeline.
        await asyncio.to_thread(self._sdk_receiver.terminate, 0)
