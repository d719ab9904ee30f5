"""Archive runner: drain one queue into a text file through QueueGateway.read_safe."""
from __future__ import annotations

import signal
import threading
from typing import Any

from loguru import logger

from mq_gateway.app.composition import GatewayDependencies, create_gateway_dependencies
from mq_gateway.app.config.settings import Settings
from mq_gateway.app.core import SERVICE_NAME


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def run_archiver(deps: GatewayDependencies, stop: threading.Event) -> int:
    """Archive messages until stop is set. Returns the number of archived messages."""
    settings = deps.settings
    gateway = deps.connect(stop)
    archived = 0
    _log("archiver_started", queue=settings.queue_name, path=settings.archive_path)

    while not stop.is_set():
        if not gateway.is_connected and not gateway.try_reconnect():
            logger.warning("reconnect failed: {}", gateway.error_message)
            gateway.clear_error()
            stop.wait(settings.poll_interval_seconds)
            continue

        gateway.clear_error()
        depth = gateway.get_depth(settings.queue_name)
        if depth > 0:
            message = gateway.read_safe(
                settings.queue_name,
                settings.archive_path,
                settings.archive_encoding,
                keep_alive=settings.keep_alive,
            )
            if gateway.has_error:
                logger.warning("archive step failed: {}", gateway.error_message)
                stop.wait(settings.poll_interval_seconds)
            elif message:
                archived += 1
                _log("message_archived", queue=settings.queue_name, archived=archived)
            continue

        if gateway.has_error:
            logger.warning("depth inspection failed: {}", gateway.error_message)
        stop.wait(settings.poll_interval_seconds)

    _log("archiver_stopped", archived=archived)
    return archived


def main() -> None:
    deps = create_gateway_dependencies(Settings())
    stop = threading.Event()

    def request_shutdown(signum: int, frame: Any) -> None:
        if not stop.is_set():
            _log("shutdown_signal", signal=signum)
            stop.set()
            deps.cancel_pending()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, request_shutdown)

    try:
        run_archiver(deps, stop)
    except KeyboardInterrupt:
        _log("archiver_interrupted")
    except Exception as e:
        logger.exception("archiver failed: {}", e)
        raise
    finally:
        deps.close()


if __name__ == "__main__":
    main()
