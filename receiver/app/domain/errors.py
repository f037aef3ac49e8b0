"""Receiver error taxonomy. Each fatal category carries the process exit code it maps to."""
from __future__ import annotations

from typing import Optional

from receiver.app.constants import ExitCode


class ReceiverError(Exception):
    """Base class for every error raised by the receiver service."""

    exit_code = ExitCode.UNEXPECTED


class BrokerConnectionError(ReceiverError):
    """Connection properties are unusable or the broker cannot be reached."""

    exit_code = ExitCode.CONNECTION


class ReceiverBuildError(ReceiverError):
    """The receiver configuration asks for something the flow cannot provide."""

    exit_code = ExitCode.BUILD


class QueueBindError(ReceiverError):
    """Raised by start() when the bound queue cannot be attached on the broker."""

    exit_code = ExitCode.QUEUE_BIND

    def __init__(self, queue_name: str, message: Optional[str] = None):
        self.queue_name = queue_name
        self.message = message or f"Queue '{queue_name}' does not exist on the broker"
        super().__init__(self.message)


class HandlerRegistrationError(ReceiverError):
    exit_code = ExitCode.REGISTRATION


class SettlementError(ReceiverError):
    """An outcome could not be applied to a message. Logged by callers, never fatal."""


class IllegalStateError(ReceiverError):
    """Lifecycle operation called from a state that does not allow it."""
