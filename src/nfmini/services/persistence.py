"""Save live rules so they survive a reboot.

Debian-family hosts use netfilter-persistent when it is installed and
otherwise get iptables-save output written to the configured rule
files. Alpine hosts use the OpenRC iptables/ip6tables save actions.
Any other OS is left alone.

Saving is best-effort: failures are warnings and never undo the
change that was just made.
"""

import shutil
from enum import Enum
from pathlib import Path
from typing import Optional

from nfmini.core.config import PersistenceConfig
from nfmini.core.context import ExecutionContext
from nfmini.core.exceptions import ExecutionError
from nfmini.core.executor import CommandExecutor


DEBIAN_VERSION_PATH = Path("/etc/debian_version")
ALPINE_RELEASE_PATH = Path("/etc/alpine-release")
OPENRC_INIT_DIR = Path("/etc/init.d")


class OSFamily(str, Enum):
    DEBIAN = "debian"
    ALPINE = "alpine"
    OTHER = "other"


def detect_os_family() -> OSFamily:
    if DEBIAN_VERSION_PATH.exists():
        return OSFamily.DEBIAN
    if ALPINE_RELEASE_PATH.exists():
        return OSFamily.ALPINE
    return OSFamily.OTHER


class PersistenceService:
    """Persists iptables and ip6tables rules with the host's native tooling."""

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        config: Optional[PersistenceConfig] = None,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.config = config or PersistenceConfig()

    def save(self) -> bool:
        """Save current rules.

        Returns:
            True if rules were saved, False if skipped or failed
        """
        if not self.config.enabled:
            self.ctx.console.debug("Persistence disabled in configuration")
            return False

        family = detect_os_family()
        if family == OSFamily.OTHER:
            self.ctx.console.debug("Unknown OS; rules not persisted")
            return False

        try:
            if family == OSFamily.DEBIAN:
                self._save_debian()
            else:
                self._save_alpine()
        except (ExecutionError, OSError) as e:
            self.ctx.console.warn(f"Could not persist rules: {e}")
            return False

        return not self.ctx.dry_run

    def _save_debian(self) -> None:
        if shutil.which("netfilter-persistent"):
            self._run(["netfilter-persistent", "save"])
            return

        for command, path in (
            ("iptables-save", self.config.rules_v4),
            ("ip6tables-save", self.config.rules_v6),
        ):
            if self.ctx.dry_run:
                self.ctx.console.dry_run_msg(f"{command} > {path}")
                continue
            result = self.executor.run([command])
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(result.stdout)
            self.ctx.console.verbose(f"Saved rules to {path}")

    def _save_alpine(self) -> None:
        for service in ("iptables", "ip6tables"):
            if not (OPENRC_INIT_DIR / service).exists():
                self.ctx.console.debug(f"No {service} init script; skipping save")
                continue
            self._run(["rc-service", service, "save"])

    def _run(self, command: list[str]) -> None:
        if self.ctx.dry_run:
            self.ctx.console.dry_run_msg(" ".join(command))
            return
        self.executor.run(command)
        self.ctx.console.verbose(f"Persisted rules: {' '.join(command)}")
