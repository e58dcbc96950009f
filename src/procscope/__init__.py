"""procscope - point-in-time process introspection and dump capture."""

from procscope.errors import (
    CaptureFailedError,
    ProcessAccessDeniedError,
    ProcessNotFoundError,
    ProcscopeError,
)
from procscope.models import DumpArtifact, ProcessRecord, TerminationReport
from procscope.service import ProcessService

__all__ = [
    "CaptureFailedError",
    "DumpArtifact",
    "ProcessAccessDeniedError",
    "ProcessNotFoundError",
    "ProcessRecord",
    "ProcessService",
    "ProcscopeError",
    "TerminationReport",
]
