"""Subprocess runner for the packet filter and persistence tools.

Every command is echoed at DEBUG level. The executor itself never
consults ``--dry-run``: read-only queries (``-C``, ``-S``) must run even
in dry-run, so mutating callers decide whether to run or announce.
"""

import shlex
import subprocess
from dataclasses import dataclass
from typing import Optional

from nfmini.core.context import ExecutionContext
from nfmini.core.exceptions import ExecutionError


# iptables -w may queue behind another xtables user
DEFAULT_TIMEOUT = 30


@dataclass
class CommandResult:
    command: list[str]
    return_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.return_code == 0

    @property
    def lines(self) -> list[str]:
        return self.stdout.splitlines()


class CommandExecutor:
    """Runs external commands with captured text output."""

    def __init__(self, ctx: ExecutionContext, timeout: Optional[int] = DEFAULT_TIMEOUT) -> None:
        self.ctx = ctx
        self.timeout = timeout

    def run(self, command: list[str], *, check: bool = True) -> CommandResult:
        """Run ``command`` and return its result.

        A non-zero exit is returned as-is when ``check`` is False, which is
        how existence checks (``iptables -C``) report "absent".

        Raises:
            ExecutionError: The command could not be started, timed out,
                or exited non-zero with ``check`` set
        """
        display = shlex.join(command)
        self.ctx.console.debug(f"$ {display}")

        try:
            proc = subprocess.run(command, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise ExecutionError(f"{command[0]} timed out after {self.timeout}s", command=display)
        except OSError as e:
            raise ExecutionError(f"Cannot run {command[0]}: {e.strerror or e}", command=display) from e

        result = CommandResult(command, proc.returncode, proc.stdout, proc.stderr)
        if not result.success:
            self.ctx.console.debug(f"  exit {result.return_code}: {result.stderr.strip()}")
            if check:
                raise ExecutionError(
                    f"{command[0]} exited with status {result.return_code}",
                    command=display,
                    return_code=result.return_code,
                    stderr=result.stderr,
                )
        return result
