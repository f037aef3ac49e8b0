import asyncio
import sys

from loguru import logger
from pydantic import ValidationError

from receiver.app.application.shutdown import ShutdownCoordinator
from receiver.app.composition import ReceiverContext, create_receiver_context
from receiver.app.config.settings import Settings
from receiver.app.constants import ExitCode
from receiver.app.core import SERVICE_NAME
from receiver.app.core.logging import configure_logging
from receiver.app.domain.errors import QueueBindError, ReceiverError


def _log(event: str, **kwargs) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def run_receiver(settings: Settings, context: ReceiverContext | None = None) -> ExitCode:
    """Connect, start and block until interrupted. Every fatal error maps to an exit code here."""
    try:
        context = context or create_receiver_context(settings)
    except ReceiverError as e:
        logger.error("receiver setup failed: {}", e)
        return e.exit_code

    try:
        await context.connect()
        await context.start()
    except QueueBindError as e:
        logger.bind(service_name=SERVICE_NAME, event="queue_bind_failed", queue=e.queue_name).error(
            "Make sure queue name '{}' exists on the broker.\n"
            "The following error occurred when attempting to start the persistent message receiver:\n{}",
            e.queue_name,
            e,
        )
        await context.close()
        return e.exit_code
    except ReceiverError as e:
        logger.bind(service_name=SERVICE_NAME, event="receiver_setup_failed").error(
            "receiver setup failed: {}", e
        )
        await context.close()
        return e.exit_code
    except Exception as e:
        logger.exception("receiver setup failed unexpectedly: {}", e)
        await context.close()
        return ExitCode.UNEXPECTED

    coordinator = ShutdownCoordinator(context, grace_period=settings.termination_grace_period_seconds)
    coordinator.install()
    logger.bind(service_name=SERVICE_NAME, event="receiver_waiting").info(
        "Bound to queue: {}. Interrupt (CTRL+C) to handle graceful termination of the receiver",
        context.queue.name,
    )
    report = await coordinator.run()
    if report.terminated and report.disconnected:
        return ExitCode.OK
    return ExitCode.UNEXPECTED


def main() -> None:
    try:
        settings = Settings()
    except ValidationError as e:
        configure_logging()
        logger.error("invalid receiver configuration: {}", e)
        sys.exit(ExitCode.CONFIGURATION)

    configure_logging(settings.log_level)
    try:
        exit_code = asyncio.run(run_receiver(settings))
    except KeyboardInterrupt:
        _log("receiver_interrupted")
        exit_code = ExitCode.INTERRUPTED
    except Exception as e:
        logger.exception("receiver failed: {}", e)
        exit_code = ExitCode.UNEXPECTED
    sys.exit(int(exit_code))


if __name__ == "__main__":
    main()
