"""Receiver composition root: build the session and receiver once and hand them around.

ReceiverContext replaces process-wide globals: it is created in one place, passed to the
shutdown coordinator, and owns teardown.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from receiver.app.application.message_handler import SettlingMessageHandler, handle_message_settlement
from receiver.app.application.receiver_builder import build_receiver
from receiver.app.config.settings import Settings
from receiver.app.core import SERVICE_NAME
from receiver.app.domain.models import QueueRef
from receiver.app.infrastructure.messaging.factory import create_messaging_service
from receiver.app.ports.messaging_service import MessagingService
from receiver.app.ports.persistent_receiver import PersistentReceiver


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ReceiverContext:
    """Holds the session and the persistent receiver for one process run."""

    def __init__(self, *, settings: Settings, service: MessagingService, queue: QueueRef) -> None:
        self._settings = settings
        self._service = service
        self._queue = queue
        self._receiver: PersistentReceiver | None = None
        self._handler: SettlingMessageHandler | None = None

    @property
    def service(self) -> MessagingService:
        return self._service

    @property
    def queue(self) -> QueueRef:
        return self._queue

    @property
    def receiver_or_none(self) -> PersistentReceiver | None:
        return self._receiver

    async def connect(self) -> None:
        await self._service.connect()
        logger.bind(service_name=SERVICE_NAME, event="broker_connectivity").info(
            "Connected to the broker? {}", self._service.is_connected
        )

    async def start(self) -> None:
        """Build, start and register the handler. Build, bind and registration errors propagate."""
        self._receiver = build_receiver(self._service, self._queue, self._settings.outcome_configuration)
        await self._receiver.start()
        logger.bind(service_name=SERVICE_NAME, event="receiver_status").info(
            "Persistent Receiver running? {}", self._receiver.is_running()
        )
        self._handler = await handle_message_settlement(self._receiver, self._settings.settlement_outcome)
        _log(
            "receiver_bound",
            queue=self._queue.name,
            outcome=self._handler.outcome.value,
            outcome_configuration=self._settings.outcome_configuration,
        )

    async def close(self) -> None:
        if self._receiver is not None and not self._receiver.is_terminated():
            try:
                await self._receiver.terminate(self._settings.termination_grace_period_seconds)
            except Exception as exc:
                logger.warning("receiver terminate failed: {}", exc)
        try:
            await self._service.disconnect()
        except Exception as exc:
            logger.warning("messaging service disconnect failed: {}", exc)


def create_receiver_context(settings: Settings | None = None) -> ReceiverContext:
    settings = settings or Settings()
    return ReceiverContext(
        settings=settings,
        service=create_messaging_service(settings),
        queue=QueueRef.durable_exclusive(settings.queue_name),
    )
