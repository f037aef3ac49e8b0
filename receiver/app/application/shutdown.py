"""Interrupt-driven shutdown: terminate the receiver, then disconnect the session."""
from __future__ import annotations

import asyncio
import signal
from dataclasses import dataclass
from typing import Any

from loguru import logger

from receiver.app.composition import ReceiverContext
from receiver.app.constants import DEFAULT_GRACE_PERIOD_SECONDS
from receiver.app.core import SERVICE_NAME


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@dataclass(frozen=True)
class ShutdownReport:
    terminated: bool
    disconnected: bool


class ShutdownCoordinator:
    """Blocks until SIGINT, then tears down the receiver context in order.

    Only SIGINT triggers shutdown. Where the loop cannot install signal handlers the
    interrupt surfaces as KeyboardInterrupt instead.
    """

    def __init__(self, context: ReceiverContext, grace_period: float = DEFAULT_GRACE_PERIOD_SECONDS) -> None:
        self._context = context
        self._grace_period = grace_period
        self._requested = asyncio.Event()

    @property
    def requested(self) -> bool:
        return self._requested.is_set()

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.request_shutdown)
        except (NotImplementedError, RuntimeError):
            pass

    def request_shutdown(self) -> None:
        if not self._requested.is_set():
            _log("shutdown_signal")
            self._requested.set()

    async def wait(self) -> None:
        await self._requested.wait()

    async def shutdown(self) -> ShutdownReport:
        receiver = self._context.receiver_or_none
        if receiver is not None:
            try:
                await receiver.terminate(self._grace_period)
            except Exception as e:
                logger.exception("receiver termination failed: {}", e)
        terminated = receiver is None or receiver.is_terminated()
        logger.bind(service_name=SERVICE_NAME, event="receiver_final_state").info(
            "Persistent Receiver Terminated? {}", terminated
        )

        service = self._context.service
        try:
            await service.disconnect()
        except Exception as e:
            logger.exception("messaging service disconnect failed: {}", e)
        disconnected = not service.is_connected
        logger.bind(service_name=SERVICE_NAME, event="service_final_state").info(
            "Messaging Service Disconnected? {}", disconnected
        )
        return ShutdownReport(terminated=terminated, disconnected=disconnected)

    async def run(self) -> ShutdownReport:
        await self.wait()
        return await self.shutdown()
