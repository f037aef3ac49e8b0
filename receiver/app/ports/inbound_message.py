"""Port: abstraction for an inbound guaranteed message. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Optional, Protocol

from receiver.app.domain.models import DeliveryInfo


class InboundMessage(Protocol):
    """Broker-agnostic inbound message. Application uses this; broker adapters implement it."""

    @property
    def delivery(self) -> DeliveryInfo: ...

    def get_payload_as_string(self) -> Optional[str]:
        """Payload when the broker carried it as text, else None."""
        ...

    def get_payload_as_bytes(self) -> Optional[bytes]:
        """Payload when the broker carried it as raw bytes, else None."""
        ...
