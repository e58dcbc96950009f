"""Out-of-process memory dumps through the OS dump facility."""

import errno
import os
import subprocess
import sys
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import psutil

from procscope.config import TempStorage
from procscope.errors import CaptureFailedError, ProcessAccessDeniedError, ProcessNotFoundError
from procscope.logs import get_logger
from procscope.models import DumpArtifact
from procscope.tracing import StructlogTracer, Tracer

logger = get_logger(__name__)

# Win32 status codes
ERROR_ACCESS_DENIED = 5
ERROR_INVALID_PARAMETER = 87
E_ACCESSDENIED = 0x80070005

PROCESS_QUERY_INFORMATION = 0x0400
PROCESS_VM_READ = 0x0010
PROCESS_DUP_HANDLE = 0x0040


class DumpWriter(Protocol):
    """Writes a dump of ``pid`` to ``destination`` or raises a procscope error."""

    def write(self, pid: int, flags: int, destination: Path) -> None:
        ...


def native_error(pid: int, code: int, call: str) -> Exception:
    """Map a Win32 error code from ``call`` onto the procscope taxonomy."""
    code &= 0xFFFFFFFF
    if code in (ERROR_ACCESS_DENIED, E_ACCESSDENIED):
        return ProcessAccessDeniedError(pid, "dump")
    if code == ERROR_INVALID_PARAMETER and call == "OpenProcess":
        # OpenProcess reports an unknown pid as an invalid parameter
        return ProcessNotFoundError(pid)
    return CaptureFailedError(pid, code, call)


class MiniDumpWriter:
    """Windows writer calling ``dbghelp!MiniDumpWriteDump`` through ctypes."""

    ACCESS = PROCESS_QUERY_INFORMATION | PROCESS_VM_READ | PROCESS_DUP_HANDLE

    def write(self, pid: int, flags: int, destination: Path) -> None:
        import ctypes
        import msvcrt
        from ctypes import wintypes

        kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
        dbghelp = ctypes.WinDLL("dbghelp", use_last_error=True)
        kernel32.OpenProcess.argtypes = [wintypes.DWORD, wintypes.BOOL, wintypes.DWORD]
        kernel32.OpenProcess.restype = wintypes.HANDLE
        kernel32.CloseHandle.argtypes = [wintypes.HANDLE]
        kernel32.CloseHandle.restype = wintypes.BOOL
        dbghelp.MiniDumpWriteDump.argtypes = [
            wintypes.HANDLE,
            wintypes.DWORD,
            wintypes.HANDLE,
            wintypes.DWORD,
            ctypes.c_void_p,
            ctypes.c_void_p,
            ctypes.c_void_p,
        ]
        dbghelp.MiniDumpWriteDump.restype = wintypes.BOOL

        handle = kernel32.OpenProcess(self.ACCESS, False, pid)
        if not handle:
            raise native_error(pid, ctypes.get_last_error(), "OpenProcess")
        try:
            with open(destination, "wb") as fh:
                ok = dbghelp.MiniDumpWriteDump(
                    handle, pid, msvcrt.get_osfhandle(fh.fileno()), flags, None, None, None
                )
                if not ok:
                    raise native_error(pid, ctypes.get_last_error(), "MiniDumpWriteDump")
        finally:
            kernel32.CloseHandle(handle)


class GcoreDumpWriter:
    """
    POSIX writer running gdb's ``gcore``.

    gcore names its output ``<prefix>.<pid>``; the file is moved to the
    requested destination afterwards. gcore has no dump-breadth argument,
    so ``flags`` is only logged.
    """

    def __init__(
        self,
        executable: str = "gcore",
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self._executable = executable
        self._runner = runner

    def write(self, pid: int, flags: int, destination: Path) -> None:
        prefix = destination.with_name(f"{destination.stem}.gcore")
        produced = Path(f"{prefix}.{pid}")
        if flags:
            logger.debug("dump.flags_ignored", pid=pid, flags=flags, writer="gcore")

        try:
            result = self._runner(
                [self._executable, "-o", str(prefix), str(pid)],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise CaptureFailedError(pid, errno.ENOENT, f"{self._executable} not found") from exc

        if result.returncode != 0 or not produced.exists():
            output = f"{result.stderr or ''}{result.stdout or ''}"
            if not psutil.pid_exists(pid):
                raise ProcessNotFoundError(pid)
            if "Operation not permitted" in output:
                raise ProcessAccessDeniedError(pid, "dump")
            raise CaptureFailedError(pid, result.returncode, output.strip()[-500:])

        os.replace(produced, destination)


def default_dump_writer() -> DumpWriter:
    """Pick the dump writer for the running OS family."""
    if sys.platform == "win32":
        return MiniDumpWriter()
    return GcoreDumpWriter()


def suggested_filename(process_name: str, when: datetime) -> str:
    """Download name for a dump, e.g. ``python-03-07-14:05:09.dmp`` (UTC)."""
    return f"{process_name}-{when:%m-%d-%H:%M:%S}.dmp"


def staging_filename(pid: int, when: datetime) -> str:
    """Scratch file name for a dump of ``pid`` taken at ``when``."""
    return f"{pid}-{when:%Y%m%d%H%M%S}.dmp"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DumpCapture:
    """
    Write a dump of a live process and hand it back as an open stream.

    The write is synchronous and can take seconds for a large process;
    there is no timeout or cancellation.
    """

    def __init__(
        self,
        storage: TempStorage,
        writer: DumpWriter | None = None,
        tracer: Tracer | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._writer = writer if writer is not None else default_dump_writer()
        self._tracer = tracer if tracer is not None else StructlogTracer()
        self._clock = clock

    def capture(
        self,
        process: psutil.Process,
        flags: int = 0,
        destination: Path | None = None,
    ) -> DumpArtifact:
        """
        Dump ``process`` to ``destination`` and open the result for reading.

        Args:
            process: Target process.
            flags: Dump-type bitmask, passed to the writer unchanged.
            destination: Where to write; defaults to a timestamped file in
                scratch storage. An existing file there is removed first.

        Returns:
            The artifact; the caller must close its stream.

        Raises:
            ProcessNotFoundError: The process exited before or during the write.
            ProcessAccessDeniedError: Insufficient privilege.
            CaptureFailedError: The OS facility refused for any other reason.
        """
        pid = process.pid
        try:
            name = process.name()
        except psutil.NoSuchProcess as exc:
            raise ProcessNotFoundError(pid) from exc
        except psutil.AccessDenied as exc:
            raise ProcessAccessDeniedError(pid, "dump") from exc

        if destination is None:
            destination = self._storage.path_for(staging_filename(pid, self._clock()))
        self._storage.delete_file_safe(destination)

        self._tracer.trace("dump.start", pid=pid, name=name, path=str(destination))
        if not process.is_running():
            raise ProcessNotFoundError(pid)
        try:
            self._writer.write(pid, flags, destination)
        except CaptureFailedError as exc:
            self._storage.delete_file_safe(destination)
            if not process.is_running():
                raise ProcessNotFoundError(pid) from exc
            raise
        except (ProcessNotFoundError, ProcessAccessDeniedError):
            self._storage.delete_file_safe(destination)
            raise
        except OSError as exc:
            # destination not writable
            self._storage.delete_file_safe(destination)
            raise CaptureFailedError(pid, exc.errno, str(exc)) from exc

        try:
            stream = open(destination, "rb")
        except FileNotFoundError as exc:
            raise CaptureFailedError(pid, errno.ENOENT, "dump file missing after write") from exc
        try:
            size = os.fstat(stream.fileno()).st_size
        except OSError as exc:
            stream.close()
            raise CaptureFailedError(pid, exc.errno, str(exc)) from exc
        self._tracer.trace("dump.written", pid=pid, path=str(destination), size=size)

        return DumpArtifact(
            stream=stream,
            filename=suggested_filename(name, self._clock()),
            path=destination,
            size=size,
        )
