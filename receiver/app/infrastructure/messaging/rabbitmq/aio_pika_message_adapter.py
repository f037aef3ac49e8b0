"""Adapter: wrap aio_pika.IncomingMessage to implement ports.InboundMessage."""
from __future__ import annotations

from typing import Optional

from aio_pika.abc import AbstractIncomingMessage

from receiver.app.domain.models import DeliveryInfo

DELIVERY_COUNT_HEADER = "x-delivery-count"


class AioPikaInboundMessage:
    """Implements receiver.app.ports.inbound_message.InboundMessage for aio_pika.

    AMQP bodies are always bytes; they count as a string payload only when the
    publisher marked them as text and they decode with the declared encoding.
    """

    def __init__(self, message: AbstractIncomingMessage) -> None:
        self._message = message

    @property
    def raw(self) -> AbstractIncomingMessage:
        return self._message

    @property
    def delivery(self) -> DeliveryInfo:
        message_id = self._message.message_id
        if message_id is None and self._message.delivery_tag is not None:
            message_id = str(self._message.delivery_tag)
        redelivered = bool(self._message.redelivered)
        return DeliveryInfo(
            message_id=message_id,
            redelivered=redelivered,
            delivery_count=self._delivery_count(redelivered),
        )

    def _delivery_count(self, redelivered: bool) -> Optional[int]:
        # Quorum queues count earlier failed deliveries in x-delivery-count.
        previous = (self._message.headers or {}).get(DELIVERY_COUNT_HEADER)
        if previous is not None:
            try:
                return int(previous) + 1
            except (TypeError, ValueError):
                return None
        return None if redelivered else 1

    def get_payload_as_string(self) -> Optional[str]:
        content_type = self._message.content_type or ""
        if not content_type.startswith("text/"):
            return None
        try:
            return self._message.body.decode(self._message.content_encoding or "utf-8")
        except (LookupError, UnicodeDecodeError):
            return None

    def get_payload_as_bytes(self) -> Optional[bytes]:
        return self._message.body
