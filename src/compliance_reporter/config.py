"""
Configuration management for the compliance reporter.

Settings are layered: an optional YAML file first, then environment
variables, then command-line flags (applied by the CLI). Directory and
WinRM credentials never need to appear on the command line.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .utils import ConfigError

logger = logging.getLogger(__name__)

WINRM_TRANSPORTS = ('ntlm', 'kerberos', 'credssp', 'basic', 'ssl', 'certificate', 'plaintext')


class ReporterConfig(BaseModel):
    """Compliance reporter configuration."""

    # ========================================================================
    # Directory (LDAP)
    # ========================================================================

    ad_server: Optional[str] = Field(
        default=None,
        description="Domain controller hostname or IP for LDAP queries"
    )
    ad_base_dn: Optional[str] = Field(
        default=None,
        description="Default search base (falls back to defaultNamingContext)"
    )
    ad_bind_dn: Optional[str] = Field(
        default=None,
        description="Bind user (DN or UPN); anonymous bind when unset"
    )
    ad_bind_password: Optional[str] = Field(
        default=None,
        description="Password for ad_bind_dn"
    )
    ad_use_ssl: bool = Field(
        default=False,
        description="Use LDAPS (636) instead of LDAP (389)"
    )
    ad_port: Optional[int] = Field(
        default=None,
        ge=1,
        le=65535,
        description="Override default LDAP port"
    )
    ad_page_size: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="LDAP paged search page size"
    )
    prefer_fqdn: bool = Field(
        default=False,
        description="Report dNSHostName instead of the short computer name"
    )
    machine_age_days: int = Field(
        default=30,
        description="Only report computers that logged on within N days"
    )

    # ========================================================================
    # WinRM
    # ========================================================================

    winrm_username: Optional[str] = Field(
        default=None,
        description="WinRM username (DOMAIN\\user or user@domain)"
    )
    winrm_password: Optional[str] = Field(
        default=None,
        description="WinRM password"
    )
    winrm_transport: str = Field(
        default="ntlm",
        description="pywinrm transport"
    )
    winrm_use_ssl: bool = Field(
        default=False,
        description="Use HTTPS (5986) instead of HTTP (5985)"
    )
    winrm_port: Optional[int] = Field(
        default=None,
        ge=1,
        le=65535,
        description="Override default WinRM port"
    )
    winrm_verify_ssl: bool = Field(
        default=True,
        description="Validate WinRM server certificates"
    )
    winrm_operation_timeout: int = Field(
        default=20,
        ge=1,
        description="WS-Man operation timeout in seconds"
    )
    winrm_read_timeout: int = Field(
        default=30,
        ge=1,
        description="HTTP read timeout in seconds (must exceed operation timeout)"
    )
    legacy_wmi_gateway: Optional[str] = Field(
        default=None,
        description="Host that runs legacy Get-WmiObject queries against targets over DCOM"
    )

    # ========================================================================
    # Logging
    # ========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level"
    )

    # ========================================================================
    # Validators
    # ========================================================================

    @field_validator('winrm_transport')
    @classmethod
    def validate_winrm_transport(cls, v):
        if v not in WINRM_TRANSPORTS:
            raise ValueError(f"winrm_transport must be one of: {', '.join(WINRM_TRANSPORTS)}")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in ['DEBUG', 'INFO', 'WARNING', 'ERROR']:
            raise ValueError('log_level must be DEBUG, INFO, WARNING, or ERROR')
        return v

    @model_validator(mode='after')
    def validate_timeouts(self):
        if self.winrm_read_timeout <= self.winrm_operation_timeout:
            raise ValueError('winrm_read_timeout must be greater than winrm_operation_timeout')
        return self

    # ========================================================================
    # Parsed Properties
    # ========================================================================

    @property
    def ldap_port(self) -> int:
        """Effective LDAP port."""
        return self.ad_port or (636 if self.ad_use_ssl else 389)

    @property
    def winrm_effective_port(self) -> int:
        """Effective WinRM port."""
        return self.winrm_port or (5986 if self.winrm_use_ssl else 5985)

    model_config = ConfigDict(
        validate_assignment=True,
        extra='forbid'
    )


def _yaml_settings(path: Path) -> Dict[str, Any]:
    """Flatten the sectioned YAML layout into config field names."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    settings: Dict[str, Any] = {}

    if "ad" in data:
        a = data["ad"] or {}
        for key in ("server", "base_dn", "bind_dn", "bind_password", "use_ssl", "port", "page_size"):
            if key in a:
                settings[f"ad_{key}"] = a[key]

    if "winrm" in data:
        w = data["winrm"] or {}
        for key in ("username", "password", "transport", "use_ssl", "port",
                    "verify_ssl", "operation_timeout", "read_timeout"):
            if key in w:
                settings[f"winrm_{key}"] = w[key]
        if "legacy_gateway" in w:
            settings["legacy_wmi_gateway"] = w["legacy_gateway"]

    if "report" in data:
        r = data["report"] or {}
        if "machine_age_days" in r:
            settings["machine_age_days"] = r["machine_age_days"]
        if "prefer_fqdn" in r:
            settings["prefer_fqdn"] = r["prefer_fqdn"]

    if "log_level" in data:
        settings["log_level"] = data["log_level"]

    return settings


def _env_bool(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_settings() -> Dict[str, Any]:
    """Collect settings from environment variables that are actually set."""
    settings: Dict[str, Any] = {}

    string_vars = {
        'AD_SERVER': 'ad_server',
        'AD_BASE_DN': 'ad_base_dn',
        'AD_BIND_DN': 'ad_bind_dn',
        'AD_BIND_PASSWORD': 'ad_bind_password',
        'WINRM_USERNAME': 'winrm_username',
        'WINRM_PASSWORD': 'winrm_password',
        'WINRM_TRANSPORT': 'winrm_transport',
        'LEGACY_WMI_GATEWAY': 'legacy_wmi_gateway',
        'LOG_LEVEL': 'log_level',
    }
    for env_name, field_name in string_vars.items():
        value = os.environ.get(env_name)
        if value:
            settings[field_name] = value

    int_vars = {
        'AD_PORT': 'ad_port',
        'WINRM_PORT': 'winrm_port',
        'MACHINE_AGE_DAYS': 'machine_age_days',
    }
    for env_name, field_name in int_vars.items():
        value = os.environ.get(env_name)
        if value:
            settings[field_name] = int(value)

    bool_vars = {
        'AD_USE_SSL': 'ad_use_ssl',
        'PREFER_FQDN': 'prefer_fqdn',
        'WINRM_USE_SSL': 'winrm_use_ssl',
        'WINRM_VERIFY_SSL': 'winrm_verify_ssl',
    }
    for env_name, field_name in bool_vars.items():
        value = _env_bool(env_name)
        if value is not None:
            settings[field_name] = value

    return settings


def load_config(path: Optional[Path] = None, **overrides: Any) -> ReporterConfig:
    """
    Load configuration from YAML file, environment and explicit overrides.

    Args:
        path: Optional YAML config file
        **overrides: Field values that take precedence (None values are ignored)

    Returns:
        ReporterConfig: Validated configuration

    Raises:
        ConfigError: If the file cannot be read or settings are invalid
    """
    settings: Dict[str, Any] = {}

    if path is not None:
        if not Path(path).exists():
            raise ConfigError(f"Config file not found: {path}")
        settings.update(_yaml_settings(Path(path)))
        logger.debug(f"Loaded config file {path}")

    try:
        settings.update(_env_settings())
    except ValueError as e:
        raise ConfigError(f"Invalid environment setting: {e}") from e

    settings.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return ReporterConfig(**settings)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
