"""taskman - Main Textual application."""

import platform
from pathlib import Path

import structlog
from rich.markup import escape
from rich.text import Text
from textual import work
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import (
    ContentSwitcher,
    DataTable,
    Footer,
    Input,
    Static,
    Tab,
    Tabs,
)
from textual.widgets.data_table import CellDoesNotExist

from taskman import logging as taskman_logging
from taskman.actions import ActionGateway, ActionResult
from taskman.config import Config
from taskman.formatting import format_load
from taskman.models import AppViewState, Snapshot, SortKey, Window
from taskman.persistence import load_view_state, save_view_state
from taskman.provider import MetricsProvider, PsutilProvider
from taskman.ranking import ProcessRow, build_rows
from taskman.scheduler import RefreshScheduler

log = structlog.get_logger()

WINDOW_LABELS = {
    Window.PROCESSES: "Processes",
    Window.PERFORMANCE: "Performance",
    Window.APP_HISTORY: "App history",
    Window.STARTUP_APPS: "Startup apps",
    Window.USERS: "Users",
    Window.DETAILS: "Details",
    Window.SERVICES: "Services",
    Window.SETTINGS: "Settings",
}

# Column key -> sort key selected by clicking the column header
COLUMN_SORT = {
    "name": SortKey.NAME,
    "user": SortKey.USER,
    "cpu": SortKey.CPU,
    "memory": SortKey.MEMORY,
    "disk": SortKey.DISK,
    "network": SortKey.NETWORK,
}


def tab_id(window: Window) -> str:
    return window.name.lower()


class HeaderStats(Static):
    """Header widget showing global CPU and memory usage."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__("Loading...", *args, **kwargs)
        self._cpu_usage: float = 0.0
        self._memory_percent: float = 0.0
        self._shown: int = 0
        self._total: int = 0
        self._sort_key: SortKey = SortKey.CPU
        self._error: str | None = None

    def update_stats(
        self,
        snapshot: Snapshot,
        sort_key: SortKey,
        shown: int,
        error: str | None = None,
    ) -> None:
        """Update the statistics from a snapshot."""
        self._cpu_usage = snapshot.global_cpu_usage
        self._memory_percent = snapshot.memory_percent
        self._shown = shown
        self._total = len(snapshot.processes)
        self._sort_key = sort_key
        self._error = error
        self.update(self._stats_text())

    def _stats_text(self) -> str:
        text = (
            f"CPU [bold]{format_load(self._cpu_usage)}[/bold]   "
            f"Memory [bold]{format_load(self._memory_percent)}[/bold]   "
            f"Processes {self._shown}/{self._total}   "
            f"Sort: [cyan]{self._sort_key.value}[/cyan]"
        )
        if self._error:
            text += f"\n[red]Provider unavailable: {escape(self._error)} (showing last data)[/red]"
        return text


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._current_pids: set[int] = set()

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("Name", key="name", width=28)
        table.add_column("User", key="user", width=12)
        table.add_column("CPU", key="cpu", width=9)
        table.add_column("Memory", key="memory", width=12)
        table.add_column("Disk", key="disk", width=12)
        table.add_column("Network", key="network", width=9)

    @property
    def selected_pid(self) -> int | None:
        """PID of the row under the cursor."""
        table = self.query_one("#process-table", DataTable)
        if table.row_count == 0:
            return None
        try:
            row_key, _ = table.coordinate_to_cell_key(table.cursor_coordinate)
        except CellDoesNotExist:
            return None
        return int(row_key.value)

    def update_rows(self, rows: list[ProcessRow]) -> None:
        """
        Replace the table contents with rows, in order.

        The cursor stays on the same PID if that process is still listed.
        """
        table = self.query_one("#process-table", DataTable)
        selected = self.selected_pid

        table.clear()
        for row in rows:
            name, user, *metrics = row.cells()
            # Process and user names come from the OS and are never markup
            table.add_row(Text(name), Text(user), *metrics, key=str(row.pid))
        self._current_pids = {row.pid for row in rows}

        if selected in self._current_pids:
            table.move_cursor(row=table.get_row_index(str(selected)))


class TaskmanApp(App):
    """Main taskman application."""

    TITLE = "taskman"
    SUB_TITLE = "Task Manager"

    CSS = """
    Screen {
        layout: vertical;
    }

    #search {
        dock: top;
    }

    #host-info {
        height: 1;
        padding: 0 1;
        color: $text-muted;
    }

    #placeholder {
        padding: 1 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("n", "sort('Name')", "Name"),
        ("u", "sort('User')", "User"),
        ("c", "sort('Cpu')", "CPU"),
        ("m", "sort('Memory')", "Memory"),
        ("d", "sort('Disk')", "Disk"),
        ("w", "sort('Network')", "Network"),
        ("k", "kill", "Kill"),
        ("slash", "search", "Search"),
        ("escape", "focus_table", "Table"),
    ]

    def __init__(
        self,
        provider: MetricsProvider | None = None,
        config: Config | None = None,
        view_state_path: Path | None = None,
    ) -> None:
        """Initialize the TaskmanApp."""
        super().__init__()
        self._config = config or Config()
        self._view_state_path = view_state_path or self._config.view_state_path
        provider = provider if provider is not None else PsutilProvider()
        self._scheduler = RefreshScheduler(
            provider, interval=self._config.sampling.refresh_interval
        )
        self._gateway = ActionGateway(provider)
        self._view_state = load_view_state(self._view_state_path)
        self._search = ""

    @property
    def view_state(self) -> AppViewState:
        return self._view_state

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield Input(placeholder="Type a name or PID to search", id="search")
        yield Tabs(
            *(Tab(label, id=tab_id(window)) for window, label in WINDOW_LABELS.items()),
            active=tab_id(self._view_state.current_window),
            id="windows",
        )
        with ContentSwitcher(initial="processes", id="views"):
            with Container(id="processes"):
                yield HeaderStats(id="header-stats")
                yield ProcessTable()
            yield Static("", id="placeholder")
        yield Static(self._host_info(), id="host-info")
        yield Footer()

    @staticmethod
    def _host_info() -> str:
        return (
            f"Host: {platform.node() or '?'}   "
            f"OS: {platform.system() or '?'}   "
            f"Kernel: {platform.release() or '?'}"
        )

    def on_mount(self) -> None:
        """Take the first snapshot and start ticking."""
        self.query_one("#process-table", DataTable).focus()

        self._scheduler.tick()
        self._redraw_rows()
        self.set_interval(self._config.sampling.tick_interval, self._tick)

    def _tick(self) -> None:
        """Refresh the snapshot when due and redraw."""
        if self._scheduler.tick():
            self._redraw_rows()
        elif self._scheduler.last_error is not None:
            # Keep the last rows on screen, just show the banner
            self._redraw_header(self.query_one("#process-table", DataTable).row_count)

    def _redraw_rows(self) -> None:
        """Rank and format the current snapshot into the table."""
        scheduler = self._scheduler
        rows = build_rows(
            scheduler.snapshot,
            self._view_state.processes_sort,
            previous=scheduler.previous,
            elapsed=scheduler.elapsed,
            search=self._search,
            tie_break_pid=self._config.sampling.tie_break_pid,
        )
        self.query_one(ProcessTable).update_rows(rows)
        self._redraw_header(len(rows))

    def _redraw_header(self, shown: int) -> None:
        error = self._scheduler.last_error
        self.query_one("#header-stats", HeaderStats).update_stats(
            self._scheduler.snapshot,
            self._view_state.processes_sort,
            shown,
            error=str(error) if error is not None else None,
        )

    def select_sort(self, sort_key: SortKey) -> None:
        """Change the sort key and re-rank the current snapshot."""
        self._view_state.processes_sort = sort_key
        self._redraw_rows()

    def on_tabs_tab_activated(self, event: Tabs.TabActivated) -> None:
        """Switch the visible window."""
        if event.tab is None or event.tab.id is None:
            return
        window = Window[event.tab.id.upper()]
        self._view_state.current_window = window

        switcher = self.query_one("#views", ContentSwitcher)
        if window is Window.PROCESSES:
            switcher.current = "processes"
        else:
            self.query_one("#placeholder", Static).update(
                f"{WINDOW_LABELS[window]} is not available yet."
            )
            switcher.current = "placeholder"

    def on_input_changed(self, event: Input.Changed) -> None:
        """Filter the table as the search text changes."""
        if event.value == self._search:
            return
        self._search = event.value
        self._redraw_rows()

    def on_data_table_header_selected(self, event: DataTable.HeaderSelected) -> None:
        """Clicking a column header sorts by that column."""
        sort_key = COLUMN_SORT.get(str(event.column_key.value))
        if sort_key is not None:
            self.select_sort(sort_key)

    def action_sort(self, key: str) -> None:
        """Handle sort action."""
        self.select_sort(SortKey(key))
        self.notify(f"Sort: {key}")

    def action_search(self) -> None:
        self.query_one("#search", Input).focus()

    def action_focus_table(self) -> None:
        self.query_one("#process-table", DataTable).focus()

    def action_kill(self) -> None:
        """Kill the selected process without blocking the refresh tick."""
        pid = self.query_one(ProcessTable).selected_pid
        if pid is None:
            self.notify("No process selected", severity="warning")
            return
        self._terminate(pid)

    @work(thread=True, group="actions")
    def _terminate(self, pid: int) -> None:
        result = self._gateway.terminate(pid)
        self.call_from_thread(self._report_action, result)

    def _report_action(self, result: ActionResult) -> None:
        """Show the outcome of a process action as a transient notice."""
        if result.ok:
            self.notify(result.message)
        else:
            self.notify(result.message, severity="error")

    def on_unmount(self) -> None:
        """Save the view state however the app shuts down."""
        try:
            save_view_state(self._view_state_path, self._view_state)
        except OSError as e:
            log.warning("view_state_save_failed", path=str(self._view_state_path), error=str(e))


def main() -> None:
    """Entry point for taskman application."""
    config = Config.load()
    taskman_logging.configure(config)
    app = TaskmanApp(config=config)
    app.run()


if __name__ == "__main__":
    main()
