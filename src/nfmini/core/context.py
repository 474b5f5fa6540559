"""Per-invocation state shared by commands and services."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from nfmini.core.config import AppConfig, DEFAULT_CONFIG_PATH
from nfmini.core.output import Console, console, Verbosity


@dataclass
class ExecutionContext:
    """Flags for one nfmini invocation plus its lazily loaded configuration.

    Attributes:
        dry_run: Print mutations instead of running them
        yes: Answer "yes" to confirmation prompts
        verbosity: A ``Verbosity`` level
        no_color: Plain console output
        config_path: YAML file read on first access to ``config``
    """

    dry_run: bool = False
    yes: bool = False
    verbosity: int = Verbosity.NORMAL
    no_color: bool = False
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG_PATH)

    _config: Optional[AppConfig] = field(default=None, repr=False)
    _console: Console = field(default_factory=lambda: console, repr=False)

    def __post_init__(self) -> None:
        self._console.configure(
            verbosity=self.verbosity,
            dry_run=self.dry_run,
            no_color=self.no_color,
        )

    @classmethod
    def from_flags(
        cls,
        dry_run: bool = False,
        yes: bool = False,
        verbose: int = 0,
        quiet: bool = False,
        no_color: bool = False,
        config: Optional[Path] = None,
    ) -> "ExecutionContext":
        """Build a context from the global CLI flags.

        ``--quiet`` wins over any number of ``-v``; each ``-v`` raises the
        level by one up to DEBUG.
        """
        if quiet:
            verbosity = Verbosity.QUIET
        else:
            verbosity = min(Verbosity.NORMAL + verbose, Verbosity.DEBUG)
        return cls(
            dry_run=dry_run,
            yes=yes,
            verbosity=verbosity,
            no_color=no_color,
            config_path=config or DEFAULT_CONFIG_PATH,
        )

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = AppConfig(config_path=self.config_path)
        return self._config

    @property
    def console(self) -> Console:
        return self._console

    @property
    def is_verbose(self) -> bool:
        return self.verbosity >= Verbosity.VERBOSE

    @property
    def is_quiet(self) -> bool:
        return self.verbosity <= Verbosity.QUIET

    @property
    def should_confirm(self) -> bool:
        """Destructive actions prompt unless --yes or --dry-run was given."""
        return not (self.yes or self.dry_run)
