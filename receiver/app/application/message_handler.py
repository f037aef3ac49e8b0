from __future__ import annotations

from loguru import logger

from receiver.app.constants import SettlementOutcome
from receiver.app.core import SERVICE_NAME
from receiver.app.domain.errors import SettlementError
from receiver.app.domain.payload import extract_payload
from receiver.app.ports.inbound_message import InboundMessage
from receiver.app.ports.persistent_receiver import PersistentReceiver


class SettlingMessageHandler:
    """
    Reads each message body and settles the message with one fixed outcome.

    Exactly one settle call is made per message. A settlement failure is reported and
    dropped: the message's fate is then up to the broker's redelivery policy.
    """

    def __init__(
        self,
        receiver: PersistentReceiver,
        outcome: SettlementOutcome = SettlementOutcome.ACCEPTED,
    ) -> None:
        self._receiver = receiver
        self._outcome = SettlementOutcome(outcome)

    @property
    def outcome(self) -> SettlementOutcome:
        return self._outcome

    async def __call__(self, message: InboundMessage) -> None:
        body = extract_payload(message)
        message_id = message.delivery.message_id
        log = logger.bind(service_name=SERVICE_NAME, message_id=message_id, outcome=self._outcome.value)
        log.bind(event="message_received", body=body).info("Received Message Body {}", body)

        settlement_error: SettlementError | None = None
        try:
            await self._receiver.settle(message, self._outcome)
        except SettlementError as e:
            settlement_error = e
        if settlement_error is None:
            log.bind(event="message_settlement_result").info("Message Settlement Error: {}", None)
        else:
            log.bind(event="message_settlement_failed").warning("Message Settlement Error: {}", settlement_error)


async def handle_message_settlement(
    receiver: PersistentReceiver,
    outcome: SettlementOutcome = SettlementOutcome.ACCEPTED,
) -> SettlingMessageHandler:
    """Register a settling handler on the receiver. HandlerRegistrationError propagates."""
    handler = SettlingMessageHandler(receiver, outcome)
    await receiver.receive_async(handler)
    return handler
