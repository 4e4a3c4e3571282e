"""TUI Dashboard for fleetwork."""

from __future__ import annotations

from dataclasses import dataclass

from textual.app import App, ComposeResult
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import Footer, Header, Label, RichLog, Static
from textual.worker import Worker

from .cancellation import CancellationController
from .config import Config, Operation
from .orchestrator import Orchestrator
from .session import RunResult, SessionStatus

STATUS_ICONS = {
    SessionStatus.PENDING: ("…", "dim"),
    SessionStatus.TRANSFERRING: ("⇅", "yellow"),
    SessionStatus.RUNNING: ("▶", "yellow"),
    SessionStatus.SUCCESS: ("✔", "green"),
    SessionStatus.FAILED: ("✘", "red"),
    SessionStatus.INTERRUPTED: ("■", "magenta"),
}

FINAL_STATUSES = (SessionStatus.SUCCESS, SessionStatus.FAILED, SessionStatus.INTERRUPTED)


def _widget_id(host: str) -> str:
    """Hosts like user@10.0.0.1 are not valid widget ids."""
    return "".join(c if c.isalnum() or c in "-_" else "_" for c in host)


class WorkerPanel(Static):
    """A panel displaying output for a single worker."""

    status: reactive[SessionStatus] = reactive(SessionStatus.PENDING)

    def __init__(self, host: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.host = host
        self.key = _widget_id(host)

    def compose(self) -> ComposeResult:
        yield Label(self._get_header(), id=f"header-{self.key}")
        yield RichLog(
            id=f"log-{self.key}",
            highlight=True,
            markup=False,
            wrap=True,
            auto_scroll=True,
        )

    def _get_header(self) -> str:
        icon, color = STATUS_ICONS.get(self.status, ("?", "white"))
        return f"[{color}]{icon}[/] [{color}][bold]{self.host}[/bold] {self.status.value}[/]"

    def watch_status(self, status: SessionStatus) -> None:
        """Update header when status changes."""
        if not self.is_mounted:
            return
        header = self.query_one(f"#header-{self.key}", Label)
        header.update(self._get_header())

    def append_output(self, line: str) -> None:
        """Append a line of output to this panel."""
        self.query_one(f"#log-{self.key}", RichLog).write(line)


class StatusBar(Static):
    """Bottom status bar showing overall progress."""

    completed: reactive[int] = reactive(0)
    total: reactive[int] = reactive(0)
    running: reactive[bool] = reactive(True)
    stopping: reactive[bool] = reactive(False)

    def render(self) -> str:
        if not self.running:
            status = "Complete"
        elif self.stopping:
            status = "Stopping... press 'q' again to force quit"
        else:
            status = "Running..."
        return f"Progress: {self.completed}/{self.total} workers done | {status} | Press 'q' to quit"


@dataclass
class WorkerOutput(Message):
    """Message for worker output."""
    host: str
    line: str


@dataclass
class WorkerStatusChange(Message):
    """Message for worker status change."""
    host: str
    status: SessionStatus


class Dashboard(App):
    """Runs one operation and shows every worker's output side by side."""

    CSS = """
    Screen {
        layout: grid;
        grid-size: 2;
        grid-gutter: 1;
    }

    WorkerPanel {
        border: solid $primary;
        height: 100%;
        min-height: 10;
    }

    WorkerPanel Label {
        dock: top;
        padding: 0 1;
        background: $surface;
    }

    WorkerPanel RichLog {
        height: 1fr;
        padding: 0 1;
    }

    StatusBar {
        dock: bottom;
        height: 1;
        background: $surface;
        padding: 0 1;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("escape", "quit", "Quit"),
    ]

    def __init__(
        self,
        config: Config,
        operation: Operation,
        host_filter: str = "",
        silent: bool = False,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.config = config
        self.operation = operation
        self.host_filter = host_filter
        self.silent = silent
        self.workers = config.select(host_filter)
        self.panels: dict[str, WorkerPanel] = {}
        self.controller = CancellationController(exit_func=self.exit)
        self.results: list[RunResult] = []
        self.finished = False
        self._worker: Worker | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)

        # Create panels for each worker
        for worker in self.workers:
            panel = WorkerPanel(worker.host, id=f"panel-{_widget_id(worker.host)}")
            self.panels[worker.host] = panel
            yield panel

        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start execution when the app mounts."""
        self.title = f"fleetwork: {self.operation.name}"
        status_bar = self.query_one("#status-bar", StatusBar)
        status_bar.total = len(self.workers)

        # Sessions run on a worker thread; callbacks post messages back.
        self._worker = self.run_worker(self._run_execution(), exclusive=True, thread=True)

    async def _run_execution(self) -> None:
        """Run the operation and record the results."""
        orchestrator = Orchestrator(
            self.config,
            self.controller,
            on_output=self._on_output,
            on_status=self._on_status,
            silent=self.silent,
        )
        self.results = await orchestrator.run_operation(self.operation, self.host_filter)
        self.finished = True

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        """Handle worker completion."""
        if event.worker == self._worker and event.state == event.worker.state.SUCCESS:
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.running = False

    def _on_output(self, host: str, line: str) -> None:
        """Handle output from a worker - posts message to main thread."""
        self.post_message(WorkerOutput(host, line))

    def _on_status(self, host: str, status: SessionStatus) -> None:
        """Handle status change for a worker - posts message to main thread."""
        self.post_message(WorkerStatusChange(host, status))

    def on_worker_output(self, message: WorkerOutput) -> None:
        """Handle WorkerOutput message in main thread."""
        if message.host in self.panels:
            self.panels[message.host].append_output(message.line)

    def on_worker_status_change(self, message: WorkerStatusChange) -> None:
        """Handle WorkerStatusChange message in main thread."""
        if message.host in self.panels:
            self.panels[message.host].status = message.status

        # Update completed count
        if message.status in FINAL_STATUSES:
            status_bar = self.query_one("#status-bar", StatusBar)
            status_bar.completed += 1

    async def action_quit(self) -> None:
        """First quit while running stops the sessions, the next one exits."""
        if self.finished or not (self._worker and self._worker.is_running):
            self.exit()
            return
        if not self.controller.is_cancelled():
            self.query_one("#status-bar", StatusBar).stopping = True
        self.controller.interrupt()
