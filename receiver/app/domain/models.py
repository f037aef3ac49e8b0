"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from receiver.app.constants import (
    HOST_PROPERTY,
    PASSWORD_PROPERTY,
    USERNAME_PROPERTY,
    VPN_NAME_PROPERTY,
)
from receiver.app.domain.errors import BrokerConnectionError


@dataclass(frozen=True)
class ConnectionProperties:
    """Where and as whom to connect. Immutable once a session is built from it."""

    hosts: tuple[str, ...]
    vpn_name: str = "default"
    username: str = "default"
    password: str = field(default="default", repr=False)

    def __post_init__(self) -> None:
        if not self.hosts:
            raise BrokerConnectionError("connection properties must name at least one broker host")

    @staticmethod
    def from_host_list(
        host_list: str,
        *,
        vpn_name: str = "default",
        username: str = "default",
        password: str = "default",
    ) -> "ConnectionProperties":
        hosts = tuple(host.strip() for host in host_list.split(",") if host.strip())
        return ConnectionProperties(
            hosts=hosts,
            vpn_name=vpn_name,
            username=username,
            password=password,
        )

    def to_service_properties(self) -> dict[str, str]:
        """Broker client property map; the host list stays comma-separated for failover."""
        return {
            HOST_PROPERTY: ",".join(self.hosts),
            VPN_NAME_PROPERTY: self.vpn_name,
            USERNAME_PROPERTY: self.username,
            PASSWORD_PROPERTY: self.password,
        }


@dataclass(frozen=True)
class QueueRef:
    """A named queue on the broker. Existence is only checked when a receiver starts."""

    name: str
    durable: bool = True
    exclusive: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("queue name must be a non-empty str")

    @staticmethod
    def durable_exclusive(name: str) -> "QueueRef":
        return QueueRef(name=name, durable=True, exclusive=True)


@dataclass(frozen=True)
class DeliveryInfo:
    """Broker-assigned delivery metadata. delivery_count is None when the broker does not report it."""

    message_id: Optional[str] = None
    redelivered: bool = False
    delivery_count: Optional[int] = None
