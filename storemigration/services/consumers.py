"""
Consumer coordination around the migration copy window.
Pauses whatever reads from or writes to the new store while tables are copied.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Protocol

from ..loggers import get_logger

logger = get_logger(__name__)


class ConsumerCoordinator(Protocol):
    """Something that can stop and restart the consumers of the new store."""

    def pause(self) -> None:
        ...

    def resume(self) -> None:
        ...


class NullConsumerCoordinator:
    """Coordinator for hosts without consumers to pause."""

    def __init__(self):
        self.paused = False

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False


class ListenerRegistryCoordinator:
    """
    Adapts a listener registry exposing ``stop()``/``start()``.
    """

    def __init__(self, registry: Any):
        self.registry = registry
        self.paused = False

    def pause(self) -> None:
        logger.info("Stopping all listeners")
        self.registry.stop()
        self.paused = True

    def resume(self) -> None:
        logger.info("Starting all listeners")
        self.registry.start()
        self.paused = False


class CompositeConsumerCoordinator:
    """
    Pauses a group of consumers, each exposing ``stop()``/``start()``.

    Consumers are resumed in reverse order. A consumer that fails to restart is
    logged and the others are still restarted; the first failure is re-raised
    once every consumer has been tried.
    """

    def __init__(self, consumers: Iterable[Any]):
        self.consumers: List[Any] = list(consumers)
        self._stopped: List[Any] = []

    @property
    def paused(self) -> bool:
        return bool(self._stopped)

    def pause(self) -> None:
        for consumer in self.consumers:
            logger.info(f"Stopping consumer {_consumer_name(consumer)}")
            consumer.stop()
            self._stopped.append(consumer)

    def resume(self) -> None:
        first_error = None
        while self._stopped:
            consumer = self._stopped.pop()
            try:
                logger.info(f"Starting consumer {_consumer_name(consumer)}")
                consumer.start()
            except Exception as e:
                logger.error(f"Failed to restart consumer {_consumer_name(consumer)}: {e}", exc_info=True)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error


def _consumer_name(consumer: Any) -> str:
    return getattr(consumer, "name", None) or type(consumer).__name__
