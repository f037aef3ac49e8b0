from __future__ import annotations

import pytest

from receiver.app.config.settings import Settings
from receiver.app.domain.errors import BrokerConnectionError
from receiver.app.infrastructure.messaging.factory import create_messaging_service
from receiver.app.infrastructure.messaging.inmemory.in_memory_broker import InMemoryMessagingService
from receiver.app.infrastructure.messaging.rabbitmq.rabbitmq_service import RabbitMQMessagingService


def test_inmemory_backend_provisions_configured_queue():
    settings = Settings(broker_backend="inmemory", queue_name="orders", _env_file=None)

    service = create_messaging_service(settings)

    assert isinstance(service, InMemoryMessagingService)
    assert service.broker.has_queue("orders")
    assert service.is_connected is False


def test_rabbitmq_backend_is_selected():
    service = create_messaging_service(Settings(broker_backend="rabbitmq", _env_file=None))

    assert isinstance(service, RabbitMQMessagingService)
    assert service.properties.hosts == ("tcp://localhost:55555", "tcp://localhost:55554")


def test_solace_backend_is_selected():
    pytest.importorskip("solace.messaging")
    from receiver.app.infrastructure.messaging.solace.solace_service import SolaceMessagingService

    service = create_messaging_service(Settings(_env_file=None))

    assert isinstance(service, SolaceMessagingService)


def test_unknown_backend_raises():
    settings = Settings(broker_backend="inmemory", _env_file=None)
    settings.broker_backend = "kafka"

    with pytest.raises(ValueError):
        create_messaging_service(settings)


def test_empty_host_list_fails_before_any_backend_is_built():
    settings = Settings(broker_backend="inmemory", broker_host="", _env_file=None)

    with pytest.raises(BrokerConnectionError):
        create_messaging_service(settings)
