"""Core framework components for nfmini."""

from nfmini.core.exceptions import (
    NFError,
    ConfigurationError,
    ValidationError,
    SpecParseError,
    ExecutionError,
    PrerequisiteError,
    PrivilegeError,
    ToolingMissingError,
    LockError,
    MutationError,
)

from nfmini.core.context import ExecutionContext
from nfmini.core.output import console, Console, Verbosity
from nfmini.core.config import AppConfig, NfminiConfig
from nfmini.core.safety import run_preflight_checks
from nfmini.core.lock import advisory_lock
from nfmini.core.audit import AuditLogger, AuditEvent, AuditEventType, AuditResult
from nfmini.core.executor import CommandExecutor, CommandResult

__all__ = [
    # Exceptions
    "NFError",
    "ConfigurationError",
    "ValidationError",
    "SpecParseError",
    "ExecutionError",
    "PrerequisiteError",
    "PrivilegeError",
    "ToolingMissingError",
    "LockError",
    "MutationError",
    # Context
    "ExecutionContext",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "NfminiConfig",
    # Safety
    "run_preflight_checks",
    "advisory_lock",
    # Audit
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "AuditResult",
    # Executor
    "CommandExecutor",
    "CommandResult",
]
