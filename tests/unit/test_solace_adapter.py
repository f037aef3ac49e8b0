"""Unit tests for the Solace backend. The PubSub+ MessagingService is monkeypatched; no broker is needed."""
from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

pytest.importorskip("solace.messaging")

from solace.messaging.config.message_acknowledgement_configuration import Outcome  # noqa: E402
from solace.messaging.errors.pubsubplus_client_error import PubSubPlusClientError  # noqa: E402

import receiver.app.infrastructure.messaging.solace.solace_service as solace_service  # noqa: E402
from receiver.app.application.message_handler import handle_message_settlement  # noqa: E402
from receiver.app.application.receiver_builder import build_receiver_with_builder_method  # noqa: E402
from receiver.app.constants import HOST_PROPERTY, SettlementOutcome  # noqa: E402
from receiver.app.domain.errors import QueueBindError  # noqa: E402
from receiver.app.infrastructure.messaging.solace.solace_message_adapter import SolaceInboundMessageAdapter  # noqa: E402
from receiver.app.infrastructure.messaging.solace.solace_receiver import to_solace_outcome  # noqa: E402
from receiver.app.infrastructure.messaging.solace.solace_service import SolaceMessagingService  # noqa: E402
from tests.support import wait_until  # noqa: E402


class FakeSolaceMessage:
    def __init__(
        self,
        text: Optional[str] = None,
        raw: Optional[bytes] = None,
        delivery_count: Optional[int] = None,
    ) -> None:
        self._text = text
        self._raw = raw
        self._delivery_count = delivery_count

    def get_payload_as_string(self) -> Optional[str]:
        return self._text

    def get_payload_as_bytes(self) -> Optional[bytes]:
        return self._raw

    def get_application_message_id(self) -> Optional[str]:
        return "app-1"

    def is_redelivered(self) -> bool:
        return self._delivery_count is not None and self._delivery_count > 1

    def get_delivery_count(self) -> int:
        if self._delivery_count is None:
            raise PubSubPlusClientError("delivery count not supported")
        return self._delivery_count


class FakeSdkReceiver:
    def __init__(self, start_error: Optional[Exception] = None) -> None:
        self.start_error = start_error
        self.handler = None
        self.calls: list[str] = []
        self.settled: list[tuple[Any, Outcome]] = []

    def start(self) -> None:
        self.calls.append("start")
        if self.start_error is not None:
            raise self.start_error

    def receive_async(self, handler) -> None:
        self.calls.append("receive_async")
        self.handler = handler

    def pause(self) -> None:
        self.calls.append("pause")

    def settle(self, message, outcome: Outcome) -> None:
        self.settled.append((message, outcome))

    def terminate(self, grace_period: int = 0) -> None:
        self.calls.append("terminate")


class FakeSdkBuilder:
    def __init__(self, sdk_receiver: FakeSdkReceiver) -> None:
        self._sdk_receiver = sdk_receiver
        self.client_ack = False
        self.outcomes: tuple[Outcome, ...] = ()
        self.queue = None

    def with_message_client_acknowledgement(self) -> "FakeSdkBuilder":
        self.client_ack = True
        return self

    def with_required_message_outcome_support(self, *outcomes: Outcome) -> "FakeSdkBuilder":
        self.outcomes = outcomes
        return self

    def build(self, queue) -> FakeSdkReceiver:
        self.queue = queue
        return self._sdk_receiver


class FakeSdkService:
    def __init__(self, properties: dict[str, str], sdk_receiver: FakeSdkReceiver) -> None:
        self.properties = properties
        self.receiver_builder = FakeSdkBuilder(sdk_receiver)
        self.connected = False

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def create_persistent_message_receiver_builder(self) -> FakeSdkBuilder:
        return self.receiver_builder


class FakeServiceBuilder:
    def __init__(self, sdk_receiver: FakeSdkReceiver, created: list[FakeSdkService]) -> None:
        self._sdk_receiver = sdk_receiver
        self._created = created
        self._properties: dict[str, str] = {}

    def from_properties(self, properties: dict[str, str]) -> "FakeServiceBuilder":
        self._properties = dict(properties)
        return self

    def build(self) -> FakeSdkService:
        service = FakeSdkService(self._properties, self._sdk_receiver)
        self._created.append(service)
        return service


@pytest.fixture()
def sdk_receiver() -> FakeSdkReceiver:
    return FakeSdkReceiver()


@pytest.fixture()
def sdk_services(monkeypatch, sdk_receiver) -> list[FakeSdkService]:
    created: list[FakeSdkService] = []

    class FakeMessagingService:
        @staticmethod
        def builder() -> FakeServiceBuilder:
            return FakeServiceBuilder(sdk_receiver, created)

    monkeypatch.setattr(solace_service, "MessagingService", FakeMessagingService)
    return created


@pytest.fixture()
def solace(properties, connect_settings) -> SolaceMessagingService:
    return SolaceMessagingService(properties, connect_settings)


def test_outcomes_map_by_name():
    assert to_solace_outcome(SettlementOutcome.ACCEPTED) is Outcome.ACCEPTED
    assert to_solace_outcome(SettlementOutcome.FAILED) is Outcome.FAILED
    assert to_solace_outcome(SettlementOutcome.REJECTED) is Outcome.REJECTED


@pytest.mark.asyncio
async def test_connect_passes_failover_host_list(sdk_services, solace):
    await solace.connect()

    assert solace.is_connected is True
    assert sdk_services[0].connected is True
    assert sdk_services[0].properties[HOST_PROPERTY] == "tcp://localhost:55555,tcp://localhost:55554"

    await solace.disconnect()
    assert sdk_services[0].connected is False


@pytest.mark.asyncio
async def test_builder_declares_client_ack_and_nack_outcomes(sdk_services, solace, queue):
    await solace.connect()

    build_receiver_with_builder_method(solace, queue)

    sdk_builder = sdk_services[0].receiver_builder
    assert sdk_builder.client_ack is True
    assert sdk_builder.outcomes == (Outcome.FAILED, Outcome.REJECTED)
    assert sdk_builder.queue.get_name() == queue.name
    await solace.disconnect()


@pytest.mark.asyncio
async def test_bind_failure_becomes_queue_bind_error(sdk_services, solace, sdk_receiver, queue):
    sdk_receiver.start_error = PubSubPlusClientError("Unknown Queue")
    await solace.connect()
    receiver = build_receiver_with_builder_method(solace, queue)

    with pytest.raises(QueueBindError) as excinfo:
        await receiver.start()

    assert excinfo.value.queue_name == queue.name
    assert "terminate" in sdk_receiver.calls
    await solace.disconnect()


@pytest.mark.asyncio
async def test_messages_from_the_sdk_thread_are_settled(sdk_services, solace, sdk_receiver, queue):
    await solace.connect()
    receiver = build_receiver_with_builder_method(solace, queue)
    await receiver.start()
    await handle_message_settlement(receiver, SettlementOutcome.REJECTED)
    raw = FakeSolaceMessage(raw=b"hello")

    # The SDK calls on_message from its own thread.
    await asyncio.to_thread(sdk_receiver.handler.on_message, raw)
    await wait_until(lambda: len(sdk_receiver.settled) == 1)

    assert sdk_receiver.settled == [(raw, Outcome.REJECTED)]
    await solace.disconnect()
    assert sdk_receiver.calls == ["start", "receive_async", "pause", "terminate"]


def test_adapter_reports_delivery_metadata():
    counted = SolaceInboundMessageAdapter(FakeSolaceMessage(text="hello", delivery_count=2))
    uncounted = SolaceInboundMessageAdapter(FakeSolaceMessage(text="hello"))

    assert counted.delivery.message_id == "app-1"
    assert counted.delivery.redelivered is True
    assert counted.delivery.delivery_count == 2
    assert uncounted.delivery.redelivered is False
    assert uncounted.delivery.delivery_count is None
