"""
Persistent receiver lifecycle and delivery pipeline shared by all broker backends.

Lifecycle:
  CREATED -> STARTED (bind) -> RUNNING -> TERMINATING (stop delivery, drain within the
  grace period) -> TERMINATED. A failed bind goes straight to TERMINATED.
  TERMINATED is final.

Delivery:
  Backends hand every inbound message to _deliver(), which puts it on a bounded
  asyncio.Queue; a full queue makes the backend's delivery context wait. One dispatch
  task drains the queue and calls the registered handler, so handler order equals
  broker delivery order.

Backends implement _bind, _start_delivery, _stop_delivery, _apply_settlement and _release.
"""
from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any

from loguru import logger

from receiver.app.constants import (
    DEFAULT_DELIVERY_QUEUE_SIZE,
    DEFAULT_GRACE_PERIOD_SECONDS,
    AckMode,
    ReceiverState,
    SettlementOutcome,
)
from receiver.app.core import SERVICE_NAME
from receiver.app.domain.errors import (
    HandlerRegistrationError,
    IllegalStateError,
    SettlementError,
)
from receiver.app.domain.models import QueueRef
from receiver.app.domain.receiver_config import ReceiverConfiguration
from receiver.app.ports.inbound_message import InboundMessage
from receiver.app.ports.persistent_receiver import MessageCallback


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class BasePersistentReceiver(ABC):
    """PersistentReceiver implementation skeleton"""

    def __init__(
        self,
        queue: QueueRef,
        config: ReceiverConfiguration,
        *,
        delivery_queue_size: int = DEFAULT_DELIVERY_QUEUE_SIZE,
    ) -> None:
        self._queue_ref = queue
        self._config = config
        self._state = ReceiverState.CREATED
        self._handler: MessageCallback | None = None
        self._handler_registered = asyncio.Event()
        self._deliveries: asyncio.Queue[InboundMessage] = asyncio.Queue(maxsize=delivery_queue_size)
        self._dispatch_task: asyncio.Task[None] | None = None
        self._dispatching = False
        # Delivered but not yet settled, keyed by id(); holding the reference keeps ids unique.
        self._pending: dict[int, InboundMessage] = {}

    @property
    def queue(self) -> QueueRef:
        return self._queue_ref

    @property
    def configuration(self) -> ReceiverConfiguration:
        return self._config

    @property
    def state(self) -> ReceiverState:
        return self._state

    @property
    def unsettled_count(self) -> int:
        return len(self._pending)

    def is_running(self) -> bool:
        return self._state is ReceiverState.RUNNING

    def is_terminated(self) -> bool:
        return self._state is ReceiverState.TERMINATED

    def _set_state(self, state: ReceiverState) -> None:
        self._state = state

    # Backend hooks.

    @abstractmethod
    async def _bind(self) -> None:
        """Attach to the queue on the broker; raise QueueBindError if it cannot be found."""

    @abstractmethod
    async def _start_delivery(self) -> None:
        """Begin feeding inbound messages to _deliver()."""

    @abstractmethod
    async def _stop_delivery(self) -> None:
        """Stop the broker from delivering further messages."""

    @abstractmethod
    async def _apply_settlement(self, message: InboundMessage, outcome: SettlementOutcome) -> None:
        """Communicate the outcome to the broker."""

    @abstractmethod
    async def _release(self, unsettled: list[InboundMessage]) -> None:
        """Close the flow. Unsettled messages are left to broker redelivery."""

    # Lifecycle.

    async def start(self) -> None:
        if self._state is not ReceiverState.CREATED:
            raise IllegalStateError(f"receiver cannot start from state {self._state.value}")
        self._set_state(ReceiverState.STARTED)
        _log("receiver_starting", queue=self._queue_ref.name)
        try:
            await self._bind()
            await self._start_delivery()
        except BaseException:
            await self._release_quietly([])
            self._set_state(ReceiverState.TERMINATED)
            raise
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        self._set_state(ReceiverState.RUNNING)
        _log("receiver_running", queue=self._queue_ref.name)

    async def receive_async(self, handler: MessageCallback) -> None:
        if self._state in (ReceiverState.TERMINATING, ReceiverState.TERMINATED):
            raise HandlerRegistrationError(
                f"cannot register a message handler on a receiver in state {self._state.value}"
            )
        if not callable(handler):
            raise HandlerRegistrationError("message handler must be callable")
        if self._handler is not None:
            raise HandlerRegistrationError("a message handler is already registered on this receiver")
        self._handler = handler
        self._handler_registered.set()
        _log("handler_registered", queue=self._queue_ref.name)

    async def settle(self, message: InboundMessage, outcome: SettlementOutcome) -> None:
        try:
            outcome = SettlementOutcome(outcome)
        except ValueError:
            raise SettlementError(f"unknown settlement outcome: {outcome!r}") from None
        if self._state not in (ReceiverState.RUNNING, ReceiverState.TERMINATING):
            raise SettlementError(f"cannot settle while receiver is {self._state.value}")
        if self._config.ack_mode is AckMode.AUTO:
            raise SettlementError("receiver acknowledges automatically; messages cannot be settled explicitly")
        if outcome not in self._config.supported_outcomes:
            raise SettlementError(f"settlement outcome {outcome.value} was not enabled on this receiver")
        if id(message) not in self._pending:
            raise SettlementError("message is not awaiting settlement on this receiver")
        # Tracked until the broker has taken the outcome.
        try:
            await self._apply_settlement(message, outcome)
        except SettlementError:
            raise
        except Exception as exc:
            raise SettlementError(f"failed to settle message with outcome {outcome.value}: {exc}") from exc
        self._pending.pop(id(message), None)
        _log(
            "message_settled",
            queue=self._queue_ref.name,
            outcome=outcome.value,
            message_id=message.delivery.message_id,
        )

    async def terminate(self, grace_period: float = DEFAULT_GRACE_PERIOD_SECONDS) -> None:
        if self._state in (ReceiverState.TERMINATING, ReceiverState.TERMINATED):
            return
        if self._state is ReceiverState.CREATED:
            self._set_state(ReceiverState.TERMINATED)
            return
        self._set_state(ReceiverState.TERMINATING)
        _log("receiver_terminating", queue=self._queue_ref.name, grace_period=grace_period)
        try:
            await self._stop_delivery()
        except Exception as e:
            logger.warning("stopping delivery failed (continuing termination): {}", e)

        if not await self._drain(grace_period):
            _log(
                "receiver_grace_period_expired",
                queue=self._queue_ref.name,
                grace_period=grace_period,
                unsettled=len(self._pending),
            )
        await self._cancel_dispatch()
        self._discard_undispatched()

        unsettled = list(self._pending.values())
        self._pending.clear()
        await self._release_quietly(unsettled)
        self._set_state(ReceiverState.TERMINATED)
        _log("receiver_terminated", queue=self._queue_ref.name, unsettled=len(unsettled))

    # Delivery pipeline.

    async def _deliver(self, message: InboundMessage) -> bool:
        """Queue a message for the handler. Returns False if the receiver no longer accepts deliveries."""
        if self._state not in (ReceiverState.STARTED, ReceiverState.RUNNING):
            _log(
                "delivery_refused",
                queue=self._queue_ref.name,
                state=self._state.value,
                message_id=message.delivery.message_id,
            )
            return False
        self._pending[id(message)] = message
        await self._deliveries.put(message)
        return True

    async def _dispatch_loop(self) -> None:
        await self._handler_registered.wait()
        while True:
            message = await self._deliveries.get()
            self._dispatching = True
            try:
                result = self._handler(message)  # type: ignore[misc]
                if inspect.isawaitable(result):
                    await result
                if self._config.ack_mode is AckMode.AUTO and id(message) in self._pending:
                    await self._apply_settlement(message, SettlementOutcome.ACCEPTED)
                    self._pending.pop(id(message), None)
            except Exception as e:
                logger.exception("message handler failed: {}", e)
            finally:
                self._dispatching = False
                self._deliveries.task_done()

    async def _drain(self, grace_period: float) -> bool:
        if self._deliveries.empty() and not self._dispatching:
            return True
        if self._handler is None or grace_period <= 0:
            return False
        try:
            await asyncio.wait_for(self._deliveries.join(), timeout=grace_period)
        except asyncio.TimeoutError:
            return False
        return True

    async def _cancel_dispatch(self) -> None:
        task, self._dispatch_task = self._dispatch_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _discard_undispatched(self) -> None:
        discarded = 0
        while not self._deliveries.empty():
            self._deliveries.get_nowait()
            self._deliveries.task_done()
            discarded += 1
        if discarded:
            _log("undispatched_messages_left_to_broker", queue=self._queue_ref.name, count=discarded)

    async def _release_quietly(self, unsettled: list[InboundMessage]) -> None:
        try:
            await self._release(unsettled)
        except Exception as e:
            logger.warning("releasing receiver flow failed: {}", e)
