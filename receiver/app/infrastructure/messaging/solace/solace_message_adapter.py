"""Adapter: wrap a Solace PubSub+ InboundMessage to implement ports.InboundMessage."""
from __future__ import annotations

from typing import Optional

from solace.messaging.errors.pubsubplus_client_error import PubSubPlusClientError
from solace.messaging.receiver.message_receiver import InboundMessage

from receiver.app.domain.models import DeliveryInfo


class SolaceInboundMessageAdapter:
    """Implements receiver.app.ports.inbound_message.InboundMessage for the Solace API."""

    def __init__(self, message: InboundMessage) -> None:
        self._message = message

    @property
    def raw(self) -> InboundMessage:
        return self._message

    @property
    def delivery(self) -> DeliveryInfo:
        return DeliveryInfo(
            message_id=self._message.get_application_message_id(),
            redelivered=bool(self._message.is_redelivered()),
            delivery_count=self._delivery_count(),
        )

    def _delivery_count(self) -> Optional[int]:
        # Only reported when the broker has delivery-count support enabled.
        try:
            return self._message.get_delivery_count()
        except PubSubPlusClientError:
            return None

    def get_payload_as_string(self) -> Optional[str]:
        return self._message.get_payload_as_string()

    def get_payload_as_bytes(self) -> Optional[bytes]:
        return self._message.get_payload_as_bytes()
