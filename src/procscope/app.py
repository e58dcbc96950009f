"""procscope - Textual front-end."""

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from procscope.config import ProcscopeSettings
from procscope.errors import ProcscopeError
from procscope.logs import configure_logging
from procscope.models import ProcessRecord
from procscope.service import ProcessService

BASE_ADDRESS = "/processes"


def format_bytes(size: int | None) -> str:
    """Format bytes as human-readable string; absent values render as '-'."""
    if size is None:
        return "-"
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:.1f}{unit}" if unit != "B" else f"{size}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_record(record: ProcessRecord) -> str:
    """Render a detailed record as text lines, skipping absent fields."""
    lines = [f"[b]{record.name}[/b]  pid {record.id}", record.href]
    data = record.as_dict()
    for key in ("file_name", "start_time", "handle_count", "thread_count", "module_count"):
        if key in data:
            lines.append(f"{key}: {data[key]}")
    for key in ("total_cpu_time", "user_cpu_time", "privileged_cpu_time"):
        if key in data:
            lines.append(f"{key}: {data[key]:.2f}s")
    for key in (
        "working_set",
        "peak_working_set",
        "private_working_set",
        "private_memory",
        "virtual_memory",
        "peak_virtual_memory",
        "paged_memory",
        "peak_paged_memory",
        "paged_system_memory",
        "nonpaged_system_memory",
    ):
        if key in data:
            lines.append(f"{key}: {format_bytes(data[key])}")
    if record.parent_href is not None:
        lines.append(f"parent: {record.parent_href}")
    if record.children_hrefs:
        lines.append(f"children: {len(record.children_hrefs)}")
    return "\n".join(lines)


class ProcessTable(Container):
    """Container for the process list, sorted by name."""

    DEFAULT_CSS = """
    ProcessTable {
        width: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._current_pids: list[int] = []

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("PID", key="pid", width=8)
        table.add_column("Name", key="name")

    def update_records(self, records: list[ProcessRecord]) -> None:
        """Replace the rows with ``records``, keeping their order."""
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for record in records:
            table.add_row(str(record.id), record.name, key=str(record.id))
        self._current_pids = [record.id for record in records]

    @property
    def selected_pid(self) -> int | None:
        table = self.query_one("#process-table", DataTable)
        if not self._current_pids or table.cursor_row < 0:
            return None
        if table.cursor_row >= len(self._current_pids):
            return None
        return self._current_pids[table.cursor_row]


class DetailPanel(Static):
    """Detailed record of the highlighted process."""

    DEFAULT_CSS = """
    DetailPanel {
        width: 1fr;
        padding: 1;
        background: $surface;
    }
    """

    def show_record(self, record: ProcessRecord | None) -> None:
        self.update(format_record(record) if record is not None else "Process not found")


class ProcscopeApp(App):
    """Main procscope application."""

    TITLE = "procscope"
    SUB_TITLE = "Process inspector"

    CSS = """
    Screen {
        layout: vertical;
    }

    Horizontal {
        height: 1fr;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
        ("k", "kill", "Kill tree"),
        ("d", "dump", "Dump"),
    ]

    def __init__(self, service: ProcessService | None = None) -> None:
        super().__init__()
        self._service = service if service is not None else ProcessService()

    def compose(self) -> ComposeResult:
        yield Horizontal(
            ProcessTable(),
            DetailPanel("Select a process", id="detail"),
        )
        yield Footer()

    def on_mount(self) -> None:
        self.action_refresh()

    def action_refresh(self) -> None:
        """Re-read the process list on demand."""
        records = self._service.list_processes(BASE_ADDRESS)
        self.query_one(ProcessTable).update_records(records)

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is None or event.row_key.value is None:
            return
        self.show_process(int(event.row_key.value))

    def show_process(self, pid: int) -> None:
        """Load the detailed record off the UI thread; a newer selection supersedes it."""
        self.run_worker(
            lambda: self._load_detail(pid),
            thread=True,
            group="detail",
            exclusive=True,
            exit_on_error=False,
        )

    def _load_detail(self, pid: int) -> None:
        try:
            record = self._service.get_process(pid, f"{BASE_ADDRESS}/{pid}")
        except ProcscopeError:
            record = None
        self.call_from_thread(self._show_detail, record)

    def _show_detail(self, record: ProcessRecord | None) -> None:
        self.query_one("#detail", DetailPanel).show_record(record)

    def action_kill(self) -> None:
        pid = self.query_one(ProcessTable).selected_pid
        if pid is None:
            return
        try:
            report = self._service.kill_process(pid)
        except ProcscopeError as exc:
            self.notify(str(exc), severity="error")
            return
        self.notify(f"Killed {len(report.killed)} process(es)")
        self.action_refresh()

    def action_dump(self) -> None:
        pid = self.query_one(ProcessTable).selected_pid
        if pid is None:
            return
        self.notify(f"Dumping {pid}...")
        self.run_worker(lambda: self._capture_dump(pid), thread=True)

    def _capture_dump(self, pid: int) -> None:
        """Worker-thread body; the dump write blocks until the OS facility finishes."""
        try:
            with self._service.capture_dump(pid) as artifact:
                message = f"Dump written: {artifact.path} ({format_bytes(artifact.size)})"
        except ProcscopeError as exc:
            self.call_from_thread(self.notify, str(exc), severity="error")
            return
        self.call_from_thread(self.notify, message)


def main() -> None:
    """Entry point for procscope application."""
    settings = ProcscopeSettings()
    configure_logging(settings.log_level)
    app = ProcscopeApp(ProcessService(settings=settings))
    app.run()


if __name__ == "__main__":
    main()
