"""
Environment configuration.

Purpose
Turn ADBOOT_* environment variables into one frozen BootstrapConfig.

Only the domain admin account is required. Everything else has the same
default as the dataclass it feeds: BootstrapSettings for names and
RetryPolicy for polling.

Variables
ADBOOT_DOMAIN_ADMIN_USER      required
ADBOOT_SITE_NAME              site the default site is renamed to
ADBOOT_DEFAULT_SITE_NAME      name of the site a fresh forest starts with
ADBOOT_ORG_ROOT               OU path every default OU is nested under
ADBOOT_CATALOG_PATH           JSON catalog replacing the built in tables
ADBOOT_AUDIT_PATH             JSON lines audit file
ADBOOT_POLL_ATTEMPTS          visibility checks per created entry
ADBOOT_POLL_INTERVAL_SECONDS  wait between visibility checks
"""

from __future__ import annotations

import os
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from directory_bootstrap.catalog.bootstrap import BootstrapSettings
from directory_bootstrap.core.errors import ConfigurationError, MissingConfigurationError
from directory_bootstrap.reconcile.retry import RetryPolicy

ENV_PREFIX = "ADBOOT_"


def require_env_vars(names: Sequence[str], environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return the given environment variables or raise if any are missing or blank."""

    env = os.environ if environ is None else environ
    missing: list[str] = []
    values: dict[str, str] = {}
    for name in names:
        value = env.get(name)
        if value is None or not value.strip():
            missing.append(name)
            continue
        values[name] = value.strip()

    if missing:
        missing_list = ", ".join(sorted(missing))
        raise MissingConfigurationError(f"Missing configuration for: {missing_list}")

    return values


def _optional(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _optional(env, name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _optional(env, name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class BootstrapConfig:
    """
    Bootstrap configuration.

    catalog_path
    Optional JSON catalog. None keeps the built in OU and group tables.

    audit_path
    Optional JSON lines audit file. None disables the audit trail.
    """

    domain_admin_user: str
    site_name: str = "Primary-Site"
    default_site_name: str = "Default-First-Site-Name"
    org_root: str = ""
    catalog_path: Path | None = None
    audit_path: Path | None = None
    poll_attempts: int = 60
    poll_interval_seconds: float = 10.0

    def __post_init__(self) -> None:
        if not self.domain_admin_user.strip():
            raise MissingConfigurationError("domain_admin_user must not be empty")
        if self.poll_attempts < 1:
            raise ConfigurationError("poll_attempts must be at least 1")
        if self.poll_interval_seconds < 0:
            raise ConfigurationError("poll_interval_seconds must not be negative")

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] | None = None) -> BootstrapConfig:
        env = os.environ if environ is None else environ
        required = require_env_vars([f"{ENV_PREFIX}DOMAIN_ADMIN_USER"], env)

        defaults = cls(domain_admin_user=required[f"{ENV_PREFIX}DOMAIN_ADMIN_USER"])
        catalog = _optional(env, f"{ENV_PREFIX}CATALOG_PATH")
        audit = _optional(env, f"{ENV_PREFIX}AUDIT_PATH")

        return cls(
            domain_admin_user=defaults.domain_admin_user,
            site_name=_optional(env, f"{ENV_PREFIX}SITE_NAME") or defaults.site_name,
            default_site_name=_optional(env, f"{ENV_PREFIX}DEFAULT_SITE_NAME") or defaults.default_site_name,
            org_root=_optional(env, f"{ENV_PREFIX}ORG_ROOT") or defaults.org_root,
            catalog_path=Path(catalog) if catalog else None,
            audit_path=Path(audit) if audit else None,
            poll_attempts=_int(env, f"{ENV_PREFIX}POLL_ATTEMPTS", defaults.poll_attempts),
            poll_interval_seconds=_float(
                env,
                f"{ENV_PREFIX}POLL_INTERVAL_SECONDS",
                defaults.poll_interval_seconds,
            ),
        )

    def settings(self) -> BootstrapSettings:
        return BootstrapSettings(
            domain_admin_user=self.domain_admin_user,
            site_name=self.site_name,
            default_site_name=self.default_site_name,
            org_root=self.org_root,
        )

    def retry_policy(self, cancel: threading.Event | None = None) -> RetryPolicy:
        if cancel is None:
            return RetryPolicy(max_attempts=self.poll_attempts, interval_seconds=self.poll_interval_seconds)
        return RetryPolicy(
            max_attempts=self.poll_attempts,
            interval_seconds=self.poll_interval_seconds,
            cancel=cancel,
        )
