"""Receiver-level constants shared across modules."""
from __future__ import annotations

from enum import Enum, IntEnum

DEFAULT_BROKER_HOST = "tcp://localhost:55555,tcp://localhost:55554"
DEFAULT_QUEUE_NAME = "durable-queue"
DEFAULT_GRACE_PERIOD_SECONDS = 1.0
DEFAULT_DELIVERY_QUEUE_SIZE = 64

# Broker client property keys.
HOST_PROPERTY = "solace.messaging.transport.host"
VPN_NAME_PROPERTY = "solace.messaging.service.vpn-name"
USERNAME_PROPERTY = "solace.messaging.authentication.scheme.basic.username"
PASSWORD_PROPERTY = "solace.messaging.authentication.scheme.basic.password"
ACK_STRATEGY_PROPERTY = "solace.messaging.receiver.persistent.ack-strategy"
REQUIRED_OUTCOME_SUPPORT_PROPERTY = "solace.messaging.receiver.persistent.required-message-outcome-support"


class SettlementOutcome(str, Enum):
    ACCEPTED = "ACCEPTED"
    FAILED = "FAILED"
    REJECTED = "REJECTED"


class AckMode(str, Enum):
    AUTO = "auto"
    CLIENT = "client"


class SessionState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTED = "CONNECTED"


class ReceiverState(str, Enum):
    CREATED = "CREATED"
    STARTED = "STARTED"
    RUNNING = "RUNNING"
    TERMINATING = "TERMINATING"
    TERMINATED = "TERMINATED"


class ExitCode(IntEnum):
    OK = 0
    UNEXPECTED = 1
    CONNECTION = 2
    BUILD = 3
    QUEUE_BIND = 4
    REGISTRATION = 5
    CONFIGURATION = 6
    INTERRUPTED = 130
