"""Two equivalent ways to build a client-acknowledged receiver with NACK support.

Both declare FAILED and REJECTED settlement on the flow in addition to ACCEPTED:
one through the builder method, one through a receiver property map.
"""
from __future__ import annotations

from typing import Callable

from receiver.app.constants import REQUIRED_OUTCOME_SUPPORT_PROPERTY, SettlementOutcome
from receiver.app.domain.models import QueueRef
from receiver.app.domain.receiver_config import format_outcomes
from receiver.app.ports.messaging_service import MessagingService
from receiver.app.ports.persistent_receiver import PersistentReceiver

NACK_OUTCOMES = (SettlementOutcome.FAILED, SettlementOutcome.REJECTED)


def build_receiver_with_builder_method(service: MessagingService, queue: QueueRef) -> PersistentReceiver:
    return (
        service.create_persistent_message_receiver_builder()
        .with_message_client_acknowledgement()
        .with_required_message_outcome_support(*NACK_OUTCOMES)
        .build(queue)
    )


def build_receiver_with_configuration_provider(service: MessagingService, queue: QueueRef) -> PersistentReceiver:
    return (
        service.create_persistent_message_receiver_builder()
        .with_message_client_acknowledgement()
        .from_properties({REQUIRED_OUTCOME_SUPPORT_PROPERTY: format_outcomes(NACK_OUTCOMES)})
        .build(queue)
    )


RECEIVER_BUILDERS: dict[str, Callable[[MessagingService, QueueRef], PersistentReceiver]] = {
    "builder": build_receiver_with_builder_method,
    "properties": build_receiver_with_configuration_provider,
}


def build_receiver(service: MessagingService, queue: QueueRef, method: str = "builder") -> PersistentReceiver:
    try:
        build = RECEIVER_BUILDERS[method]
    except KeyError:
        raise ValueError(f"Unsupported receiver configuration method: {method}") from None
    return build(service, queue)
