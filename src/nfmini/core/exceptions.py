"""Exception hierarchy for nfmini.

Every error carries a message, an optional hint and optional detail
lines, and maps to the process exit code the CLI returns:

    2   ConfigurationError   bad config file or environment
    3   ValidationError      bad arguments, unparseable port specs
    5   ExecutionError       a helper tool failed or could not start
    6   PrerequisiteError    not root, iptables/ip6tables missing
    8   LockError            another nfmini is running
    15  MutationError        the kernel rejected a rule change
"""

from typing import Optional


class NFError(Exception):
    """Base exception for all nfmini errors."""

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = list(details or [])

    def __str__(self) -> str:
        return self.message


class ConfigurationError(NFError):
    exit_code = 2


class ValidationError(NFError):
    exit_code = 3


class SpecParseError(ValidationError):
    """A PORT[-PORT][/tcp|udp][/4|6] argument was rejected.

    ``spec`` holds the argument verbatim so the message can quote it.
    """

    def __init__(
        self,
        message: str,
        *,
        spec: Optional[str] = None,
        hint: Optional[str] = "Use PORT[-PORT][/tcp|udp][/4|6], e.g. 51010-51111/udp/4",
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.spec = spec


class _CommandFailure(NFError):
    """Failure of one external command; stderr becomes a detail line."""

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        stderr: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        details = list(details or [])
        if stderr and stderr.strip():
            details.append(stderr.strip())
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.stderr = stderr


class ExecutionError(_CommandFailure):
    """A helper command (iptables-save, netfilter-persistent, ...) failed."""
    exit_code = 5

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        stderr: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, command=command, stderr=stderr, hint=hint, details=details)
        self.return_code = return_code


class MutationError(_CommandFailure):
    """iptables/ip6tables refused an insert, delete, policy or flush.

    Also raised when removing duplicates of a rule does not converge.
    """
    exit_code = 15

    def __init__(
        self,
        message: str,
        *,
        stack: Optional[str] = None,
        command: Optional[str] = None,
        stderr: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, command=command, stderr=stderr, hint=hint, details=details)
        self.stack = stack


class PrerequisiteError(NFError):
    exit_code = 6


class PrivilegeError(PrerequisiteError):
    def __init__(
        self,
        message: str = "This operation requires root privileges",
        *,
        hint: Optional[str] = "Run with: sudo nfmini ...",
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)


class ToolingMissingError(PrerequisiteError):
    """iptables/ip6tables binaries are not on PATH."""

    def __init__(
        self,
        message: str,
        *,
        missing: Optional[list[str]] = None,
        hint: Optional[str] = "Install iptables (Debian: apt-get install iptables, Alpine: apk add iptables)",
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.missing = missing or []


class LockError(NFError):
    exit_code = 8
