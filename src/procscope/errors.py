"""Exception hierarchy for procscope."""


class ProcscopeError(Exception):
    """Base for all procscope errors."""


class ProcessNotFoundError(ProcscopeError):
    """The process id does not correspond to a live process."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"process {pid} not found")
        self.pid = pid


class ProcessAccessDeniedError(ProcscopeError):
    """The caller lacks the privilege for the requested operation."""

    def __init__(self, pid: int, operation: str) -> None:
        super().__init__(f"access denied: cannot {operation} process {pid}")
        self.pid = pid
        self.operation = operation


class CaptureFailedError(ProcscopeError):
    """The dump-writing facility refused the request.

    ``code`` is the facility's native status (a Win32 error / HRESULT for
    MiniDumpWriteDump, the exit status or errno for gcore).
    """

    def __init__(self, pid: int, code: int | None, detail: str = "") -> None:
        message = f"dump of process {pid} failed (code={code})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.pid = pid
        self.code = code
        self.detail = detail
