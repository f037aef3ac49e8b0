"""
RabbitMQ session over aio_pika.

Each configured host is tried in order on every connect attempt. The message VPN is used
as the AMQP virtual host, with "default" meaning the broker's default vhost "/".
"""
from __future__ import annotations

from typing import Any
from urllib.parse import quote, urlsplit

import aio_pika
from aio_pika.abc import AbstractRobustConnection
from loguru import logger

from receiver.app.core import SERVICE_NAME
from receiver.app.domain.models import ConnectionProperties, QueueRef
from receiver.app.domain.receiver_config import ReceiverConfiguration
from receiver.app.infrastructure.messaging.base_service import BaseMessagingService
from receiver.app.infrastructure.messaging.rabbitmq.rabbitmq_receiver import RabbitMQPersistentReceiver

DEFAULT_AMQP_PORT = 5672


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def build_amqp_urls(properties: ConnectionProperties) -> list[str]:
    vhost = "/" if properties.vpn_name == "default" else properties.vpn_name
    user = quote(properties.username, safe="")
    password = quote(properties.password, safe="")
    urls = []
    for host in properties.hosts:
        parts = urlsplit(host if "://" in host else f"//{host}")
        hostname = parts.hostname or "localhost"
        port = parts.port or DEFAULT_AMQP_PORT
        urls.append(f"amqp://{user}:{password}@{hostname}:{port}/{quote(vhost, safe='')}")
    return urls


class RabbitMQMessagingService(BaseMessagingService):
    """MessagingService implementation"""

    def __init__(self, properties: ConnectionProperties, settings: Any) -> None:
        super().__init__(properties, settings)
        self._connection: AbstractRobustConnection | None = None

    async def _open(self) -> None:
        last_error: Exception | None = None
        for url in build_amqp_urls(self._properties):
            try:
                self._connection = await aio_pika.connect_robust(url)
            except Exception as e:
                logger.warning("rmq host unavailable: {}", e)
                last_error = e
                continue
            self._register_close_callback(self._connection)
            return
        raise last_error or ConnectionError("no broker hosts configured")

    def _register_close_callback(self, connection: AbstractRobustConnection) -> None:
        conn = getattr(connection, "connection", connection)
        if callable(getattr(conn, "add_close_callback", None)):
            conn.add_close_callback(self._on_connection_closed)

    def _on_connection_closed(self, *args: Any, **kwargs: Any) -> None:
        if self.is_connected:
            _log("broker_disconnect_detected")

    async def _close(self) -> None:
        if self._connection is not None:
            connection, self._connection = self._connection, None
            await connection.close()

    def _new_receiver(self, queue: QueueRef, config: ReceiverConfiguration) -> RabbitMQPersistentReceiver:
        if self._connection is None:
            raise RuntimeError("rmq connection is not open")
        return RabbitMQPersistentReceiver(
            queue,
            config,
            self._connection,
            prefetch_count=self._settings.prefetch_count,
            delivery_queue_size=self._settings.delivery_queue_size,
        )
