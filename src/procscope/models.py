"""Data models for procscope."""

from collections.abc import Iterator
from dataclasses import dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO

DUMP_CONTENT_TYPE = "application/octet-stream"


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """
    Point-in-time view of one process.

    Only ``id``, ``name`` and ``href`` are always set. Every other field
    is None when the value could not be read, never a substituted zero.
    """

    id: int
    name: str
    href: str
    handle_count: int | None = None
    thread_count: int | None = None
    module_count: int | None = None
    file_name: str | None = None
    start_time: datetime | None = None  # UTC
    total_cpu_time: float | None = None  # seconds
    user_cpu_time: float | None = None
    privileged_cpu_time: float | None = None
    paged_system_memory: int | None = None  # bytes
    nonpaged_system_memory: int | None = None
    paged_memory: int | None = None
    peak_paged_memory: int | None = None
    working_set: int | None = None
    peak_working_set: int | None = None
    virtual_memory: int | None = None
    peak_virtual_memory: int | None = None
    private_memory: int | None = None
    private_working_set: int | None = None
    dump_href: str | None = None
    parent_href: str | None = None
    children_hrefs: tuple[str, ...] | None = None

    def as_dict(self) -> dict[str, Any]:
        """JSON-ready mapping; absent fields are omitted."""
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, datetime):
                value = value.isoformat()
            elif isinstance(value, tuple):
                value = list(value)
            result[f.name] = value
        return result


@dataclass(slots=True)
class TerminationReport:
    """Outcome of a kill request over a process and its descendants."""

    root: int
    killed: list[int] = field(default_factory=list)
    already_gone: list[int] = field(default_factory=list)
    refused: list[int] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.refused


@dataclass(slots=True)
class DumpArtifact:
    """
    A dump file written to scratch storage, opened for sequential read.

    The stream is owned by the caller, who must close it once the
    contents have been transmitted. Using the artifact as a context
    manager does that.
    """

    stream: BinaryIO
    filename: str
    path: Path
    size: int
    content_type: str = DUMP_CONTENT_TYPE

    def iter_chunks(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        """Yield the artifact contents in chunks of at most ``chunk_size`` bytes."""
        while True:
            chunk = self.stream.read(chunk_size)
            if not chunk:
                return
            yield chunk

    def close(self) -> None:
        self.stream.close()

    def __enter__(self) -> "DumpArtifact":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
