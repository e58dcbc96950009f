"""Assemble process records from live psutil processes."""

from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any

import psutil

from procscope.links import build_link, normalize, sibling_link
from procscope.models import ProcessRecord
from procscope.probe import probe
from procscope.tree import ProcessTreeResolver

# memory_info() attribute behind each record field; most are Windows-only
_MEMORY_FIELDS = {
    "paged_system_memory": "paged_pool",
    "nonpaged_system_memory": "nonpaged_pool",
    "paged_memory": "pagefile",
    "peak_paged_memory": "peak_pagefile",
    "working_set": "rss",
    "virtual_memory": "vms",
}


def _handle_count(process: psutil.Process) -> int:
    if hasattr(process, "num_handles"):
        return process.num_handles()
    return process.num_fds()


def _module_count(process: psutil.Process) -> int:
    maps = process.memory_maps(grouped=True)
    return len({m.path for m in maps if m.path and not m.path.startswith("[")})


def _file_name(process: psutil.Process) -> str | None:
    return process.exe() or None


def _start_time(process: psutil.Process) -> datetime:
    return datetime.fromtimestamp(process.create_time(), tz=timezone.utc)


def _unique_set_size(process: psutil.Process) -> int:
    return process.memory_full_info().uss


def _procfs_status_bytes(pid: int, key: str) -> int:
    """Read a ``kB`` line such as ``VmHWM`` from ``/proc/<pid>/status``."""
    text = Path(f"/proc/{pid}/status").read_text(encoding="utf-8", errors="replace")
    for line in text.splitlines():
        if line.startswith(f"{key}:"):
            return int(line.split(":", 1)[1].split()[0]) * 1024
    raise LookupError(f"{key} not in status of {pid}")


_SCALAR_READERS = (
    ("handle_count", _handle_count),
    ("thread_count", lambda p: p.num_threads()),
    ("module_count", _module_count),
    ("file_name", _file_name),
    ("start_time", _start_time),
    ("private_working_set", _unique_set_size),
)


def _first_available(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


class ProcessSnapshotBuilder:
    """
    Build summary or detailed ProcessRecords.

    Every optional field is read through ``probe`` so a failing read only
    leaves that field absent. Reading the identity (pid and name) is the
    one step allowed to raise; psutil's NoSuchProcess / AccessDenied are
    left for the caller to translate.
    """

    def __init__(self, resolver: ProcessTreeResolver | None = None) -> None:
        self._resolver = resolver if resolver is not None else ProcessTreeResolver()

    def build(self, process: psutil.Process, href: str, detailed: bool = False) -> ProcessRecord:
        if detailed:
            return self.detailed(process, href)
        return self.summary(process, href)

    def summary(self, process: psutil.Process, href: str) -> ProcessRecord:
        """Record with id, name and self locator only."""
        return ProcessRecord(id=process.pid, name=process.name(), href=normalize(href))

    def detailed(self, process: psutil.Process, href: str) -> ProcessRecord:
        """Record with every readable metric, the dump link and relationship links."""
        self_link = normalize(href)
        pid = process.pid

        with process.oneshot():
            name = process.name()
            values: dict[str, Any] = {
                field: probe(partial(read, process), field) for field, read in _SCALAR_READERS
            }
            times = probe(process.cpu_times, "cpu_times")
            mem = probe(process.memory_info, "memory_info")

        if times is not None:
            values["user_cpu_time"] = times.user
            values["privileged_cpu_time"] = times.system
            values["total_cpu_time"] = times.user + times.system

        for field, attr in _MEMORY_FIELDS.items():
            values[field] = getattr(mem, attr, None)
        values["peak_working_set"] = _first_available(
            getattr(mem, "peak_wset", None),
            probe(partial(_procfs_status_bytes, pid, "VmHWM"), "peak_working_set"),
        )
        values["peak_virtual_memory"] = probe(
            partial(_procfs_status_bytes, pid, "VmPeak"), "peak_virtual_memory"
        )
        values["private_memory"] = _first_available(
            getattr(mem, "private", None), values["private_working_set"]
        )

        links = probe(partial(self._resolver.resolve, pid), "links")
        if links is not None:
            if links.parent_id is not None:
                values["parent_href"] = sibling_link(self_link, links.parent_id)
            values["children_hrefs"] = tuple(sibling_link(self_link, c) for c in links.children)

        return ProcessRecord(
            id=pid,
            name=name,
            href=self_link,
            dump_href=build_link(self_link, "dump"),
            **values,
        )
