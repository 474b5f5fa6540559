"""Configuration management using Pydantic.

Provides:
- Typed configuration models with validation
- YAML file loading with defaults
- Environment variable overrides (IFACE)
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nfmini.core.exceptions import ConfigurationError


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/nfmini/config.yaml")
DEFAULT_LOCK_PATH = Path("/run/nfmini.lock")
DEFAULT_AUDIT_LOG_PATH = Path("/var/log/nfmini/audit.log")
DEFAULT_RULES_V4_PATH = Path("/etc/iptables/rules.v4")
DEFAULT_RULES_V6_PATH = Path("/etc/iptables/rules.v6")
DEFAULT_FALLBACK_INTERFACE = "eth0"


class IptablesConfig(BaseModel):
    """Packet filter binaries."""

    ipv4_command: str = "iptables"
    ipv6_command: str = "ip6tables"
    wait: bool = True  # pass -w so concurrent xtables users queue up

    @field_validator("ipv4_command", "ipv6_command")
    @classmethod
    def validate_command(cls, v: str) -> str:
        if not v or any(c.isspace() for c in v):
            raise ValueError("command must be a single executable name or path")
        return v


class BaselineConfig(BaseModel):
    """Optional always-allow exceptions added with the default-deny baseline."""

    allow_dhcp_client: bool = False
    allow_dhcp_server: bool = False


class HopConfig(BaseModel):
    """NAT redirection settings."""

    fallback_interface: str = DEFAULT_FALLBACK_INTERFACE

    @field_validator("fallback_interface")
    @classmethod
    def validate_interface(cls, v: str) -> str:
        if not v or "/" in v or any(c.isspace() for c in v) or len(v) > 15:
            raise ValueError("fallback_interface must be a valid interface name")
        return v


class PersistenceConfig(BaseModel):
    """Where rules are saved after each change."""

    enabled: bool = True
    rules_v4: Path = DEFAULT_RULES_V4_PATH
    rules_v6: Path = DEFAULT_RULES_V6_PATH


class LockConfig(BaseModel):
    """Advisory lock serializing concurrent invocations."""

    enabled: bool = True
    path: Path = DEFAULT_LOCK_PATH


class AuditConfig(BaseModel):
    """JSON audit log settings."""

    enabled: bool = True
    log_path: Path = DEFAULT_AUDIT_LOG_PATH


class NfminiConfig(BaseModel):
    """Root configuration model loaded from /etc/nfmini/config.yaml."""

    iptables: IptablesConfig = Field(default_factory=IptablesConfig)
    baseline: BaselineConfig = Field(default_factory=BaselineConfig)
    hop: HopConfig = Field(default_factory=HopConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    @classmethod
    def load(cls, path: Path) -> "NfminiConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {path}",
                details=[str(e)],
            ) from e
        except PermissionError:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                hint="Check file permissions or run with sudo",
            )

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Invalid configuration: {path} must contain a mapping",
            )

        try:
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(
                f"Invalid configuration: {path}",
                details=[str(e)],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "NfminiConfig":
        """Load configuration, falling back to defaults if file doesn't exist."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            return cls.load(path)
        return cls()

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        data = self.model_dump(mode="json", exclude_none=True)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


CONFIG_HEADER = """\
# nfmini configuration
# Every key is optional; removed keys fall back to the values shown here.
# IFACE in the environment picks the hop interface before any detection.

"""


def init_config(path: Path, force: bool = False) -> None:
    """Write the default configuration to ``path``.

    Raises:
        ConfigurationError: If ``path`` exists and ``force`` is False, or
            cannot be written
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(CONFIG_HEADER + NfminiConfig().to_yaml())
        os.chmod(path, 0o600)
    except OSError as e:
        raise ConfigurationError(
            f"Cannot write configuration file: {path}",
            details=[str(e)],
        ) from e


class EnvOverrides(BaseSettings):
    """Overrides read from the process environment."""

    model_config = SettingsConfigDict(extra="ignore")

    # Interface for hop commands, takes precedence over default-route detection
    iface: Optional[str] = Field(None, alias="IFACE")


class AppConfig:
    """Application configuration combining config file and environment.

    This is the main interface for accessing configuration throughout the app.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[NfminiConfig] = None,
        env: Optional[EnvOverrides] = None,
    ) -> None:
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = config or NfminiConfig.load_or_default(self.config_path)
        self._env = env or EnvOverrides()

    @property
    def config(self) -> NfminiConfig:
        """Get the file configuration."""
        return self._config

    @property
    def env(self) -> EnvOverrides:
        """Get the environment overrides."""
        return self._env

    @property
    def iptables(self) -> IptablesConfig:
        return self._config.iptables

    @property
    def baseline(self) -> BaselineConfig:
        return self._config.baseline

    @property
    def hop(self) -> HopConfig:
        return self._config.hop

    @property
    def persistence(self) -> PersistenceConfig:
        return self._config.persistence

    @property
    def lock(self) -> LockConfig:
        return self._config.lock

    @property
    def audit(self) -> AuditConfig:
        return self._config.audit

    @property
    def iface_override(self) -> Optional[str]:
        """Interface override from the environment, if set and non-empty."""
        value = (self._env.iface or "").strip()
        return value or None
