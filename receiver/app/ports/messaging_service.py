"""Port: broker session. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Protocol

from receiver.app.ports.persistent_receiver import PersistentReceiverBuilder


class MessagingService(Protocol):
    async def connect(self) -> None:
        """Open the session. Raises BrokerConnectionError when the broker cannot be reached."""
        ...

    @property
    def is_connected(self) -> bool: ...

    def create_persistent_message_receiver_builder(self) -> PersistentReceiverBuilder: ...

    async def disconnect(self) -> None:
        """Terminate owned receivers and close the transport. Safe to call twice."""
        ...
