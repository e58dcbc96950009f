"""Parent/child relationships derived from the OS process table."""

import os
import sys
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import psutil

from procscope.errors import ProcessNotFoundError

_PROC_ROOT = Path("/proc")


class ParentLookup(Protocol):
    """Per-OS capability returning the current pid -> parent pid table."""

    def parent_table(self) -> dict[int, int]:
        ...


class PsutilParentLookup:
    """Parent table from a single psutil sweep of the process list."""

    def parent_table(self) -> dict[int, int]:
        table: dict[int, int] = {}
        for proc in psutil.process_iter(attrs=["ppid"]):
            ppid = proc.info.get("ppid")
            if ppid is not None:
                table[proc.pid] = ppid
        return table


class ProcfsParentLookup:
    """Parent table read straight from ``/proc/<pid>/status`` (Linux)."""

    def __init__(self, root: Path = _PROC_ROOT) -> None:
        self._root = root

    def parent_table(self) -> dict[int, int]:
        table: dict[int, int] = {}
        try:
            names = os.listdir(self._root)
        except OSError:
            return table
        for name in names:
            if not name.isdigit():
                continue
            ppid = self._read_ppid(self._root / name / "status")
            if ppid is not None:
                table[int(name)] = ppid
        return table

    @staticmethod
    def _read_ppid(status: Path) -> int | None:
        try:
            text = status.read_text(encoding="utf-8", errors="replace")
        except OSError:
            # exited between listdir and read
            return None
        for line in text.splitlines():
            if line.startswith("PPid:"):
                try:
                    return int(line.split(":", 1)[1].strip())
                except ValueError:
                    return None
        return None


def default_parent_lookup() -> ParentLookup:
    """Pick the parent lookup for the running OS family."""
    if sys.platform.startswith("linux") and _PROC_ROOT.is_dir():
        return ProcfsParentLookup()
    return PsutilParentLookup()


def children_of(pid: int, table: dict[int, int]) -> list[int]:
    """Return the direct children of ``pid`` in ``table``, sorted."""
    return sorted(child for child, parent in table.items() if parent == pid and child != pid)


def descendants_of(pid: int, table: dict[int, int]) -> list[int]:
    """
    Return the transitive descendants of ``pid``, breadth-first.

    The root itself is excluded. Each pid is visited once, so a cyclic
    table (pid reuse can produce one) terminates.
    """
    by_parent: dict[int, list[int]] = {}
    for child, parent in table.items():
        if child != parent:
            by_parent.setdefault(parent, []).append(child)

    seen = {pid}
    order: list[int] = []
    queue = deque([pid])
    while queue:
        current = queue.popleft()
        for child in sorted(by_parent.get(current, [])):
            if child not in seen:
                seen.add(child)
                order.append(child)
                queue.append(child)
    return order


@dataclass(slots=True, frozen=True)
class ProcessLinks:
    """Relationship ids of one process."""

    parent_id: int | None
    children: list[int] = field(default_factory=list)


class ProcessTreeResolver:
    """
    Compute parent and children ids from a fresh process table.

    Nothing is cached: the table is re-read on every call because the
    tree can change at any moment.
    """

    def __init__(self, lookup: ParentLookup | None = None) -> None:
        self._lookup = lookup if lookup is not None else default_parent_lookup()

    def resolve(self, pid: int) -> ProcessLinks:
        """
        Return the parent id and direct children of ``pid``.

        Raises:
            ProcessNotFoundError: ``pid`` is not in the current table.
        """
        table = self._lookup.parent_table()
        if pid not in table:
            raise ProcessNotFoundError(pid)
        return ProcessLinks(parent_id=table[pid], children=children_of(pid, table))

    def parent_id(self, pid: int) -> int | None:
        return self.resolve(pid).parent_id

    def children(self, pid: int, recursive: bool = False) -> list[int]:
        """Return direct children of ``pid``, or every descendant if ``recursive``."""
        table = self._lookup.parent_table()
        if recursive:
            return descendants_of(pid, table)
        return children_of(pid, table)
