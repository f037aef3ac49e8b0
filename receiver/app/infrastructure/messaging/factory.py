"""Messaging service factory: selects implementation from config. Only place that imports concrete backends."""
from __future__ import annotations

from receiver.app.config.settings import Settings
from receiver.app.ports.messaging_service import MessagingService


def create_messaging_service(settings: Settings) -> MessagingService:
    """Raises BrokerConnectionError when the configured host list is empty."""
    properties = settings.connection_properties()
    backend = settings.broker_backend.strip().lower()

    if backend == "solace":
        from receiver.app.infrastructure.messaging.solace.solace_service import SolaceMessagingService

        return SolaceMessagingService(properties, settings)

    if backend == "rabbitmq":
        from receiver.app.infrastructure.messaging.rabbitmq.rabbitmq_service import RabbitMQMessagingService

        return RabbitMQMessagingService(properties, settings)

    if backend == "inmemory":
        from receiver.app.infrastructure.messaging.inmemory.in_memory_broker import (
            InMemoryBroker,
            InMemoryMessagingService,
        )

        return InMemoryMessagingService(properties, settings, broker=InMemoryBroker([settings.queue_name]))

    raise ValueError(f"Unsupported broker backend: {backend}")
