"""Shared plumbing for nfmini commands.

Provides:
- Common CLI option types
- Service wiring from an ExecutionContext
- Precondition, lock, persistence and audit helpers
- Uniform error reporting
"""

import re
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, Generator, Optional

import typer
from rich.markup import escape

from nfmini.core import (
    NFError,
    ConfigurationError,
    ValidationError,
    console,
    ExecutionContext,
    CommandExecutor,
    run_preflight_checks,
    advisory_lock,
    AuditEventType,
    AuditLogger,
    AuditResult,
)
from nfmini.core.config import DEFAULT_CONFIG_PATH
from nfmini.services.baseline import BaselineInitializer
from nfmini.services.filter import FilterController, IptablesController, Stack
from nfmini.services.hop import PortHopManager
from nfmini.services.inspector import ChainStateInspector
from nfmini.services.persistence import PersistenceService
from nfmini.services.reconciler import RuleReconciler


_SPEC_SEPARATORS_RE = re.compile(r"[,\s]+")

# Brackets escaped for Typer's rich help rendering
SPEC_FORMAT_HELP = escape("PORT[-PORT][/tcp|udp][/4|6]")


# Type aliases for common options
DryRunOption = Annotated[
    bool,
    typer.Option(
        "--dry-run",
        help="Preview changes without executing. Queries still run.",
        is_flag=True,
    ),
]

YesOption = Annotated[
    bool,
    typer.Option(
        "--yes",
        "-y",
        help="Skip confirmation prompts.",
        is_flag=True,
    ),
]

VerboseOption = Annotated[
    int,
    typer.Option(
        "--verbose",
        "-v",
        count=True,
        help="Increase output verbosity. Can be repeated (-v, -vv).",
    ),
]

QuietOption = Annotated[
    bool,
    typer.Option(
        "--quiet",
        "-q",
        help="Suppress non-essential output. Only show errors.",
        is_flag=True,
    ),
]

NoColorOption = Annotated[
    bool,
    typer.Option(
        "--no-color",
        help="Disable colored output.",
        is_flag=True,
    ),
]

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help=f"Path to configuration file. Default: {DEFAULT_CONFIG_PATH}",
        exists=False,
        file_okay=True,
        dir_okay=False,
    ),
]


@dataclass
class Services:
    """Everything a command needs, wired to one ExecutionContext."""
    ctx: ExecutionContext
    executor: CommandExecutor
    controllers: dict[Stack, FilterController]
    inspector: ChainStateInspector
    baseline: BaselineInitializer
    reconciler: RuleReconciler
    hops: PortHopManager
    persistence: PersistenceService


def build_context(
    dry_run: bool = False,
    yes: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    config: Optional[Path] = None,
) -> ExecutionContext:
    """Create execution context from CLI options."""
    return ExecutionContext.from_flags(
        dry_run=dry_run,
        yes=yes,
        verbose=verbose,
        quiet=quiet,
        no_color=no_color,
        config=config,
    )


def create_controllers(
    ctx: ExecutionContext,
    executor: CommandExecutor,
) -> dict[Stack, FilterController]:
    """One iptables-backed controller per stack."""
    settings = ctx.config.iptables
    return {
        Stack.V4: IptablesController(
            ctx, executor, Stack.V4, settings.ipv4_command, wait=settings.wait
        ),
        Stack.V6: IptablesController(
            ctx, executor, Stack.V6, settings.ipv6_command, wait=settings.wait
        ),
    }


def get_services(ctx: ExecutionContext) -> Services:
    """Wire the engine for ``ctx``.

    Raises:
        ConfigurationError: If the configuration file is invalid
    """
    config = ctx.config

    executor = CommandExecutor(ctx)
    controllers = create_controllers(ctx, executor)
    inspector = ChainStateInspector(controllers)
    baseline = BaselineInitializer(ctx, controllers, inspector, config.baseline)

    return Services(
        ctx=ctx,
        executor=executor,
        controllers=controllers,
        inspector=inspector,
        baseline=baseline,
        reconciler=RuleReconciler(ctx, controllers, inspector, baseline),
        hops=PortHopManager(
            ctx,
            controllers,
            inspector,
            iface_override=config.iface_override,
            fallback_interface=config.hop.fallback_interface,
        ),
        persistence=PersistenceService(ctx, executor, config.persistence),
    )


def check_preconditions(ctx: ExecutionContext) -> None:
    """Root (unless dry-run) and both iptables binaries.

    Raises:
        ConfigurationError: If the configuration file is invalid
        PrivilegeError: If not running as root
        ToolingMissingError: If iptables or ip6tables is missing
    """
    settings = ctx.config.iptables
    run_preflight_checks(
        [settings.ipv4_command, settings.ipv6_command],
        dry_run=ctx.dry_run,
    )


@contextmanager
def mutation_lock(ctx: ExecutionContext) -> Generator[None, None, None]:
    """Serialize mutating commands; skipped in dry-run or when disabled."""
    lock = ctx.config.lock
    if ctx.dry_run or not lock.enabled:
        yield
        return

    with advisory_lock(lock.path):
        yield


def prompt_specs(ctx: ExecutionContext) -> list[str]:
    """Ask for specs interactively; commas and whitespace both separate.

    Raises:
        ValidationError: If nothing was entered
    """
    try:
        line = ctx.console.input("Enter port spec(s) (comma or space separated): ")
    except (EOFError, KeyboardInterrupt):
        line = ""

    specs = [s for s in _SPEC_SEPARATORS_RE.split(line) if s]
    if not specs:
        raise ValidationError(
            "No specs provided.",
            hint="Example: nfmini add 22/tcp 51010-51111/udp/4",
        )
    return specs


def confirm(ctx: ExecutionContext, message: str) -> bool:
    """Confirm a destructive action; --yes and --dry-run skip the prompt."""
    return ctx.console.confirm(message, skip_confirm=not ctx.should_confirm)


def persist(services: Services) -> None:
    """Save rules after a successful mutation batch (best-effort)."""
    services.persistence.save()


def record(
    ctx: ExecutionContext,
    event_type: AuditEventType,
    target: str,
    parameters: Optional[dict[str, Any]] = None,
    error: Optional[NFError] = None,
) -> None:
    """Write one audit event for a mutation batch.

    The logger is built from ``ctx.config.audit`` here, so failures raised
    before ``get_services`` honor the audit settings too. Nothing is
    recorded when the configuration itself is unreadable.
    """
    try:
        settings = ctx.config.audit
    except ConfigurationError as e:
        console.debug(f"Audit skipped, configuration unreadable: {e.message}")
        return

    if error is not None:
        result = AuditResult.FAILURE
    elif ctx.dry_run:
        result = AuditResult.DRY_RUN
    else:
        result = AuditResult.SUCCESS

    logger = AuditLogger(log_path=settings.log_path, enabled=settings.enabled)
    logger.log_operation(
        event_type,
        result,
        target,
        parameters=parameters,
        error=error.message if error is not None else None,
    )


def handle_error(error: NFError, command: str) -> None:
    """Print a formatted error for ``command`` and exit with its code."""
    console.error(f"{command}: {error.message}")

    if error.details:
        for detail in error.details:
            console.print(f"  [dim]{escape(detail)}[/dim]")

    if error.hint:
        console.hint(error.hint)

    raise typer.Exit(error.exit_code)
