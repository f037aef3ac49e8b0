"""Payload extraction for inbound messages."""
from __future__ import annotations

from receiver.app.ports.inbound_message import InboundMessage


def extract_payload(message: InboundMessage) -> str:
    """Return the message body as text.

    The string payload wins; otherwise the byte payload is decoded as UTF-8 with
    undecodable sequences replaced. A message carrying neither yields "".
    """
    payload = message.get_payload_as_string()
    if payload is not None:
        return payload
    raw = message.get_payload_as_bytes()
    if raw is not None:
        return bytes(raw).decode("utf-8", errors="replace")
    return ""
