"""Persistent receiver builder shared by all broker backends."""
from __future__ import annotations

from typing import Any, Callable, Mapping

from loguru import logger

from receiver.app.constants import (
    ACK_STRATEGY_PROPERTY,
    REQUIRED_OUTCOME_SUPPORT_PROPERTY,
    AckMode,
    SettlementOutcome,
)
from receiver.app.core import SERVICE_NAME
from receiver.app.domain.errors import ReceiverBuildError
from receiver.app.domain.models import QueueRef
from receiver.app.domain.receiver_config import (
    ReceiverConfiguration,
    coerce_outcome,
    format_outcomes,
    parse_ack_mode,
    parse_outcomes,
)
from receiver.app.ports.persistent_receiver import PersistentReceiver

ReceiverFactory = Callable[[QueueRef, ReceiverConfiguration], PersistentReceiver]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class PersistentMessageReceiverBuilder:
    """Collects receiver settings from builder methods and/or a property map.

    Invalid input is remembered and raised from build(), so a broken configuration
    surfaces at one place regardless of which path supplied it.
    """

    def __init__(
        self,
        factory: ReceiverFactory,
        *,
        supported_outcomes: frozenset[SettlementOutcome],
    ) -> None:
        self._factory = factory
        self._supported_outcomes = supported_outcomes
        self._ack_mode = AckMode.AUTO
        self._required_outcomes: set[SettlementOutcome] = set()
        self._error: ReceiverBuildError | None = None

    def with_message_client_acknowledgement(self) -> "PersistentMessageReceiverBuilder":
        self._ack_mode = AckMode.CLIENT
        return self

    def with_message_auto_acknowledgement(self) -> "PersistentMessageReceiverBuilder":
        self._ack_mode = AckMode.AUTO
        return self

    def with_required_message_outcome_support(
        self,
        *outcomes: SettlementOutcome,
    ) -> "PersistentMessageReceiverBuilder":
        for outcome in outcomes:
            try:
                self._required_outcomes.add(coerce_outcome(outcome))
            except ReceiverBuildError as exc:
                self._error = self._error or exc
        return self

    def from_properties(self, properties: Mapping[str, Any]) -> "PersistentMessageReceiverBuilder":
        try:
            if ACK_STRATEGY_PROPERTY in properties:
                self._ack_mode = parse_ack_mode(properties[ACK_STRATEGY_PROPERTY])
            if REQUIRED_OUTCOME_SUPPORT_PROPERTY in properties:
                self._required_outcomes |= parse_outcomes(str(properties[REQUIRED_OUTCOME_SUPPORT_PROPERTY]))
        except ReceiverBuildError as exc:
            self._error = self._error or exc
        return self

    def build(self, queue: QueueRef) -> PersistentReceiver:
        if self._error is not None:
            raise self._error
        unsupported = self._required_outcomes - self._supported_outcomes
        if unsupported:
            raise ReceiverBuildError(
                f"settlement outcome(s) not supported by the broker flow: {format_outcomes(unsupported)}"
            )
        config = ReceiverConfiguration(
            ack_mode=self._ack_mode,
            required_outcomes=frozenset(self._required_outcomes),
        )
        receiver = self._factory(queue, config)
        _log(
            "receiver_built",
            queue=queue.name,
            ack_mode=config.ack_mode.value,
            required_outcomes=format_outcomes(config.required_outcomes),
        )
        return receiver
