"""The four inbound operations: list, get, kill and dump."""

import psutil

from procscope.config import ProcscopeSettings, TempStorage
from procscope.dump import DumpCapture
from procscope.errors import ProcessAccessDeniedError, ProcessNotFoundError
from procscope.links import build_link
from procscope.models import DumpArtifact, ProcessRecord, TerminationReport
from procscope.registry import ProcessRegistry
from procscope.snapshot import ProcessSnapshotBuilder
from procscope.tracing import StructlogTracer, Tracer

# name shown for a live process whose image name cannot be read
UNKNOWN_NAME = "?"


class ProcessService:
    """
    Stateless facade over registry, snapshot builder and dump capture.

    Each call reads the OS afresh; concurrent calls share nothing
    mutable.
    """

    def __init__(
        self,
        registry: ProcessRegistry | None = None,
        builder: ProcessSnapshotBuilder | None = None,
        dump: DumpCapture | None = None,
        tracer: Tracer | None = None,
        settings: ProcscopeSettings | None = None,
    ) -> None:
        self._settings = settings if settings is not None else ProcscopeSettings()
        self._tracer = tracer if tracer is not None else StructlogTracer()
        self._registry = registry if registry is not None else ProcessRegistry()
        self._builder = (
            builder if builder is not None else ProcessSnapshotBuilder(self._registry.resolver)
        )
        self._dump = (
            dump
            if dump is not None
            else DumpCapture(TempStorage(self._settings.temp_dir), tracer=self._tracer)
        )

    @property
    def settings(self) -> ProcscopeSettings:
        return self._settings

    def list_processes(self, base: str) -> list[ProcessRecord]:
        """Summary records for every live process, sorted by name (case-insensitive)."""
        with self._tracer.step("ProcessService.ListProcesses"):
            records = []
            for process in self._registry.enumerate_all():
                href = build_link(base, str(process.pid))
                try:
                    records.append(self._builder.summary(process, href))
                except psutil.NoSuchProcess:
                    # exited since enumeration
                    continue
                except psutil.AccessDenied:
                    records.append(ProcessRecord(id=process.pid, name=UNKNOWN_NAME, href=href))
            return sorted(records, key=lambda r: (r.name.lower(), r.id))

    def get_process(self, pid: int, href: str) -> ProcessRecord:
        """
        Detailed record for one process.

        Raises:
            ProcessNotFoundError: No live process has this id.
        """
        with self._tracer.step("ProcessService.GetProcess"):
            process = self._registry.lookup(pid)
            try:
                return self._builder.detailed(process, href)
            except psutil.NoSuchProcess as exc:
                raise ProcessNotFoundError(pid) from exc
            except psutil.AccessDenied as exc:
                raise ProcessAccessDeniedError(pid, "inspect") from exc

    def kill_process(self, pid: int, include_descendants: bool | None = None) -> TerminationReport:
        """Terminate ``pid``; descendants too unless disabled (default from settings)."""
        if include_descendants is None:
            include_descendants = self._settings.kill_descendants
        with self._tracer.step("ProcessService.KillProcess"):
            return self._registry.terminate(pid, include_descendants=include_descendants)

    def capture_dump(self, pid: int, flags: int | None = None) -> DumpArtifact:
        """Dump ``pid`` into scratch storage; the caller closes the returned stream."""
        if flags is None:
            flags = self._settings.dump_flags
        with self._tracer.step("ProcessService.CaptureDump"):
            process = self._registry.lookup(pid)
            return self._dump.capture(process, flags)
