"""Trace spans and point events around top-level operations."""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from procscope.logs import get_logger


class Tracer(Protocol):
    """Injected tracing capability."""

    def step(self, name: str) -> Any:
        """Return a context manager spanning the operation ``name``."""
        ...

    def trace(self, event: str, **fields: Any) -> None:
        """Record a point event."""
        ...


class StructlogTracer:
    """Tracer that writes spans and events through structlog."""

    def __init__(self, logger: Any = None) -> None:
        self._logger = logger if logger is not None else get_logger("procscope.trace")

    @contextmanager
    def step(self, name: str) -> Iterator[None]:
        started = time.perf_counter()
        self._logger.debug("step.start", step=name)
        try:
            yield
        except Exception as exc:
            self._logger.info(
                "step.failed",
                step=name,
                error=type(exc).__name__,
                elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise
        self._logger.debug(
            "step.end",
            step=name,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )

    def trace(self, event: str, **fields: Any) -> None:
        self._logger.info(event, **fields)
