"""Pre-flight checks: root privileges and iptables/ip6tables on PATH.

They run before any spec is parsed, so a non-root user with a typo
hears about the missing privileges first.
"""

import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from nfmini.core.exceptions import NFError, PrivilegeError, ToolingMissingError
from nfmini.core.output import console


class CheckResult(Enum):
    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True)
class PreflightResult:
    check_name: str
    result: CheckResult
    message: str
    details: Optional[dict[str, Any]] = None
    remediation: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.result == CheckResult.FAIL


class PreflightCheck(ABC):
    name: str

    @abstractmethod
    def run(self) -> PreflightResult:
        ...

    @abstractmethod
    def error(self, result: PreflightResult) -> NFError:
        """Typed error raised when ``result`` failed."""
        ...

    def _result(self, ok: bool, message: str, **extra: Any) -> PreflightResult:
        return PreflightResult(
            check_name=self.name,
            result=CheckResult.PASS if ok else CheckResult.FAIL,
            message=message,
            **extra,
        )


class RootCheck(PreflightCheck):
    name = "root"

    def run(self) -> PreflightResult:
        if os.geteuid() == 0:
            return self._result(True, "running as root")
        return self._result(
            False,
            "must be run as root",
            remediation="Run with: sudo nfmini <command>, or preview with --dry-run",
        )

    def error(self, result: PreflightResult) -> NFError:
        return PrivilegeError(hint=result.remediation)


class ToolingCheck(PreflightCheck):
    name = "tooling"

    def __init__(self, binaries: Sequence[str]) -> None:
        self.binaries = list(binaries)

    def run(self) -> PreflightResult:
        missing = [b for b in self.binaries if shutil.which(b) is None]
        if missing:
            return self._result(False, f"not found: {', '.join(missing)}", details={"missing": missing})
        return self._result(True, f"found: {', '.join(self.binaries)}")

    def error(self, result: PreflightResult) -> NFError:
        missing = (result.details or {}).get("missing", [])
        return ToolingMissingError(
            f"Required packet filter tools missing: {', '.join(missing)}",
            missing=missing,
        )


class PreflightRunner:
    """Runs checks in order, stopping at the first failure."""

    def __init__(self, checks: list[PreflightCheck]) -> None:
        self.checks = checks

    def run_all(self) -> list[PreflightResult]:
        results = []
        for check in self.checks:
            result = check.run()
            console.debug(f"preflight {check.name}: {result.result.value} ({result.message})")
            results.append(result)
            if result.failed:
                break
        return results

    def enforce(self) -> None:
        """Raise the first failing check's error."""
        for check, result in zip(self.checks, self.run_all()):
            if result.failed:
                raise check.error(result)


def run_preflight_checks(binaries: Sequence[str], *, dry_run: bool = False) -> None:
    """Verify root privileges (skipped for --dry-run) and that ``binaries`` exist.

    Raises:
        PrivilegeError: Not running as root
        ToolingMissingError: A binary is not on PATH
    """
    checks: list[PreflightCheck] = [] if dry_run else [RootCheck()]
    checks.append(ToolingCheck(binaries))
    PreflightRunner(checks).enforce()
