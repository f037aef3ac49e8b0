"""Port: guaranteed-delivery receiver and its builder. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Protocol, Union

from receiver.app.constants import ReceiverState, SettlementOutcome
from receiver.app.domain.models import QueueRef
from receiver.app.domain.receiver_config import ReceiverConfiguration
from receiver.app.ports.inbound_message import InboundMessage

MessageCallback = Callable[[InboundMessage], Union[Awaitable[None], None]]


class PersistentReceiver(Protocol):
    @property
    def queue(self) -> QueueRef: ...

    @property
    def configuration(self) -> ReceiverConfiguration: ...

    @property
    def state(self) -> ReceiverState: ...

    async def start(self) -> None:
        """Bind to the queue and begin delivery. Raises QueueBindError if the queue is absent."""
        ...

    def is_running(self) -> bool: ...

    def is_terminated(self) -> bool: ...

    async def receive_async(self, handler: MessageCallback) -> None:
        """Register the callback invoked once per inbound message, in delivery order."""
        ...

    async def settle(self, message: InboundMessage, outcome: SettlementOutcome) -> None: ...

    async def terminate(self, grace_period: float) -> None:
        """Stop delivery and reach TERMINATED within roughly grace_period seconds. Never raises."""
        ...


class PersistentReceiverBuilder(Protocol):
    def with_message_client_acknowledgement(self) -> "PersistentReceiverBuilder": ...

    def with_message_auto_acknowledgement(self) -> "PersistentReceiverBuilder": ...

    def with_required_message_outcome_support(
        self,
        *outcomes: SettlementOutcome,
    ) -> "PersistentReceiverBuilder": ...

    def from_properties(self, properties: Mapping[str, Any]) -> "PersistentReceiverBuilder": ...

    def build(self, queue: QueueRef) -> PersistentReceiver:
        """Raises ReceiverBuildError for unsupported outcome configurations."""
        ...
