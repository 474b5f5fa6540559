"""Console output for nfmini, built on Rich.

Status lines go to stdout. Problems (warnings, errors, hints) and
interactive prompts go to stderr, so ``nfmini status`` output can be
piped cleanly. Message text is always printed literally; only the
level prefixes are markup.
"""

from enum import IntEnum
from typing import Any, Optional

from rich import box
from rich.console import Console as RichConsole
from rich.markup import escape
from rich.table import Table


class Verbosity(IntEnum):
    """Output verbosity levels."""
    QUIET = 0    # Errors and warnings only
    NORMAL = 1   # Per-spec summaries
    VERBOSE = 2  # Every rule applied
    DEBUG = 3    # Every iptables invocation


# level -> (minimum verbosity, prefix markup, stderr)
_LEVELS: dict[str, tuple[Verbosity, str, bool]] = {
    "info": (Verbosity.NORMAL, "[green]\\[INFO][/green] ", False),
    "success": (Verbosity.NORMAL, "[green]\\[OK][/green] ", False),
    "step": (Verbosity.NORMAL, "[blue]->[/blue] ", False),
    "verbose": (Verbosity.VERBOSE, "", False),
    "debug": (Verbosity.DEBUG, "[cyan]\\[DEBUG][/cyan] ", False),
    "warn": (Verbosity.QUIET, "[yellow]\\[WARN][/yellow] ", True),
    "error": (Verbosity.QUIET, "[red]\\[ERROR][/red] ", True),
}


class Console:
    """Leveled console output shared by every command."""

    def __init__(self) -> None:
        self.verbosity = Verbosity.NORMAL
        self.dry_run = False
        self.no_color = False
        self._build(no_color=False)

    def _build(self, no_color: bool) -> None:
        self._console = RichConsole(highlight=False, no_color=no_color)
        self._err_console = RichConsole(stderr=True, highlight=False, no_color=no_color)

    def configure(
        self,
        verbosity: int = 1,
        dry_run: bool = False,
        no_color: bool = False,
    ) -> None:
        self.verbosity = Verbosity(max(Verbosity.QUIET, min(verbosity, Verbosity.DEBUG)))
        self.dry_run = dry_run
        if no_color != self.no_color:
            self._build(no_color)
        self.no_color = no_color

    def _emit(self, level: str, message: str) -> None:
        """Print ``message`` literally after the level's markup prefix."""
        threshold, prefix, to_stderr = _LEVELS[level]
        if self.verbosity < threshold:
            return
        target = self._err_console if to_stderr else self._console
        message = escape(message)
        if level == "verbose":
            target.print(f"[dim]{message}[/dim]")
        else:
            target.print(f"{prefix}{message}")

    def info(self, message: str) -> None:
        self._emit("info", message)

    def success(self, message: str) -> None:
        self._emit("success", message)

    def step(self, message: str) -> None:
        self._emit("step", message)

    def verbose(self, message: str) -> None:
        """Dimmed detail, shown with -v."""
        self._emit("verbose", message)

    def debug(self, message: str) -> None:
        """Shown with -vv."""
        self._emit("debug", message)

    def warn(self, message: str) -> None:
        self._emit("warn", message)

    def error(self, message: str) -> None:
        self._emit("error", message)

    def dry_run_msg(self, message: str) -> None:
        """Announce a mutation that --dry-run suppressed."""
        if self.dry_run:
            self._console.print(f"[blue]\\[DRY-RUN][/blue] Would: {escape(message)}")

    def hint(self, message: str) -> None:
        self._err_console.print(f"[cyan]Hint:[/cyan] {escape(message)}")

    def print(self, message: Any = "", **kwargs: Any) -> None:
        """Print raw text or a Rich renderable, regardless of verbosity."""
        self._console.print(message, **kwargs)

    def table(
        self,
        title: str,
        columns: list[str],
        rows: list[list[str]],
        empty: str = "empty",
        caption: Optional[str] = None,
        box_style: box.Box = box.ROUNDED,
    ) -> None:
        """Print ``rows`` as a table, or a one-line ``title: empty`` note when there are none.

        Cell text is escaped so iptables arguments such as ``[0:0]`` counters
        are printed literally.
        """
        if not rows:
            suffix = f" ({escape(caption)})" if caption else ""
            self._console.print(f"[bold]{escape(title)}[/bold]: [dim]{escape(empty)}[/dim]{suffix}")
            return

        table = Table(title=escape(title), box=box_style, caption=escape(caption) if caption else None)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*(escape(cell) for cell in row))
        self._console.print(table)

    def input(self, prompt: str) -> str:
        """Read one line from the user, prompting on stderr.

        Raises:
            EOFError: stdin is closed
            KeyboardInterrupt: the user pressed Ctrl+C
        """
        return self._err_console.input(prompt)

    def confirm(
        self,
        message: str,
        default: bool = False,
        skip_confirm: bool = False,
    ) -> bool:
        """Ask a yes/no question; a closed stdin counts as "no"."""
        if skip_confirm:
            return True

        suffix = escape("[Y/n]" if default else "[y/N]")
        try:
            response = self.input(f"{message} {suffix}: ").strip().lower()
        except (EOFError, KeyboardInterrupt):
            return False

        if not response:
            return default
        return response in ("y", "yes")


# Global console instance
console = Console()
