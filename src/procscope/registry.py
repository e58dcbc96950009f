"""Enumerate, look up and terminate OS processes."""

from collections.abc import Callable

import psutil

from procscope.errors import ProcessAccessDeniedError, ProcessNotFoundError
from procscope.logs import get_logger
from procscope.models import TerminationReport
from procscope.tree import ProcessTreeResolver

logger = get_logger(__name__)


class ProcessRegistry:
    """
    Access to the live OS process list through psutil.

    psutil's NoSuchProcess (which includes ZombieProcess) and AccessDenied
    are translated into ProcessNotFoundError and ProcessAccessDeniedError.
    """

    def __init__(
        self,
        resolver: ProcessTreeResolver | None = None,
        process_factory: Callable[[int], psutil.Process] = psutil.Process,
    ) -> None:
        """
        Initialize the ProcessRegistry.

        Args:
            resolver: Tree resolver used to find descendants on terminate.
            process_factory: Builds a process handle from a pid.
        """
        self._resolver = resolver if resolver is not None else ProcessTreeResolver()
        self._process_factory = process_factory

    @property
    def resolver(self) -> ProcessTreeResolver:
        return self._resolver

    def enumerate_all(self) -> list[psutil.Process]:
        """Return every process visible to the caller, in no particular order."""
        return list(psutil.process_iter())

    def lookup(self, pid: int) -> psutil.Process:
        """
        Resolve one process by id.

        Raises:
            ProcessNotFoundError: The process exited or never existed.
        """
        try:
            process = self._process_factory(pid)
        except (psutil.NoSuchProcess, ValueError) as exc:
            raise ProcessNotFoundError(pid) from exc
        if not process.is_running():
            raise ProcessNotFoundError(pid)
        return process

    def terminate(self, pid: int, include_descendants: bool = False) -> TerminationReport:
        """
        Kill a process, optionally with its whole descendant closure.

        Descendants are collected before anything is killed and then killed
        first, the root last. A descendant that has already exited counts
        as done; one the OS refuses is logged and recorded in the report.
        The same holds for a root that exits on its own after the lookup.

        Args:
            pid: Root process id.
            include_descendants: Also kill every transitive child.

        Raises:
            ProcessNotFoundError: The root process is already gone.
            ProcessAccessDeniedError: The root process could not be killed.
        """
        root = self.lookup(pid)
        report = TerminationReport(root=pid)

        if include_descendants:
            for child_pid in self._resolver.children(pid, recursive=True):
                self._kill_descendant(child_pid, report)

        try:
            root.kill()
        except psutil.NoSuchProcess:
            # exited after lookup, e.g. once its children were killed
            report.already_gone.append(pid)
        except psutil.AccessDenied as exc:
            raise ProcessAccessDeniedError(pid, "terminate") from exc
        else:
            report.killed.append(pid)

        logger.info(
            "process.terminated",
            pid=pid,
            killed=len(report.killed),
            already_gone=len(report.already_gone),
            refused=report.refused,
        )
        return report

    def _kill_descendant(self, pid: int, report: TerminationReport) -> None:
        try:
            self._process_factory(pid).kill()
        except psutil.NoSuchProcess:
            report.already_gone.append(pid)
        except psutil.AccessDenied:
            logger.warning("process.terminate_refused", pid=pid)
            report.refused.append(pid)
        else:
            report.killed.append(pid)
