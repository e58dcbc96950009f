"""Per-metric failure containment."""

from collections.abc import Callable
from typing import TypeVar

from procscope.logs import get_logger

T = TypeVar("T")

logger = get_logger(__name__)


def probe(read: Callable[[], T | None], label: str = "") -> T | None:
    """
    Run a single read against a live process and absorb any failure.

    A read can fail because access is denied, the process exited
    mid-read, or the platform does not expose the metric. All of these
    yield ``None`` so that one failing metric never prevents the others
    from being collected.

    Args:
        read: Zero-argument callable performing the read.
        label: Metric name, used only for debug logging.

    Returns:
        The value read, or None if it is unavailable.
    """
    try:
        return read()
    except Exception as exc:
        logger.debug("probe.unavailable", metric=label, error=type(exc).__name__)
        return None
