"""
Command line entry point.

Exit codes
0  every entry converged (or would, in a dry run)
2  one or more entries failed, timed out, or were skipped
3  configuration, catalog, or precondition error, nothing was changed

Flags override the matching ADBOOT_* environment variables.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
from collections.abc import Sequence
from typing import Any

from directory_bootstrap.config import ENV_PREFIX, BootstrapConfig
from directory_bootstrap.core.errors import (
    CatalogInvalid,
    ConfigurationError,
    LookupFailed,
    PreconditionNotMet,
)
from directory_bootstrap.core.serialization import results_to_json
from directory_bootstrap.directory.base import (
    DirectoryFactsProvider,
    DirectoryMutationClient,
    HostFactsProvider,
)
from directory_bootstrap.directory.powershell import (
    PowerShellDirectory,
    PowerShellHostFacts,
    SubprocessPowerShellRunner,
)
from directory_bootstrap.logging import configure_logging
from directory_bootstrap.reconcile.bootstrap import BootstrapReport
from directory_bootstrap.reconcile.execution_mode import ExecutionMode
from directory_bootstrap.reconcile.guard import GuardConfig
from directory_bootstrap.runner import BootstrapRunner, RunnerConfig

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 2
EXIT_ERROR = 3

# flag dest to environment variable suffix
_FLAG_ENV = {
    "domain_admin_user": "DOMAIN_ADMIN_USER",
    "site_name": "SITE_NAME",
    "default_site_name": "DEFAULT_SITE_NAME",
    "org_root": "ORG_ROOT",
    "catalog": "CATALOG_PATH",
    "audit_log": "AUDIT_PATH",
    "poll_attempts": "POLL_ATTEMPTS",
    "poll_interval": "POLL_INTERVAL_SECONDS",
}


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Bootstrap and reconcile Active Directory objects")
    parser.add_argument("--domain-admin-user", type=str, help="Account added to the admin groups")
    parser.add_argument("--site-name", type=str, help="Name the default site is renamed to")
    parser.add_argument("--default-site-name", type=str, help="Name of the site a fresh forest starts with")
    parser.add_argument("--org-root", type=str, help="OU path the default OUs are nested under, e.g. Corp/IT")
    parser.add_argument("--catalog", type=str, help="JSON catalog replacing the built in OU and group tables")
    parser.add_argument("--audit-log", type=str, help="JSON lines file results are appended to")
    parser.add_argument("--poll-attempts", type=int, help="Visibility checks per created entry")
    parser.add_argument("--poll-interval", type=float, help="Seconds between visibility checks")
    parser.add_argument("--server", type=str, help="Domain controller every AD cmdlet is pinned to")
    parser.add_argument("--dry-run", action="store_true", help="Report what would change without changing it")
    parser.add_argument("--json", action="store_true", help="Print results as JSON on stdout")
    parser.add_argument("--skip-domain-member-check", action="store_true", help="Do not require a domain joined host")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log poll attempts and other debug detail")
    return parser.parse_args(list(argv))


def _environment(args: argparse.Namespace, environ: dict[str, str]) -> dict[str, str]:
    env = dict(environ)
    for dest, suffix in _FLAG_ENV.items():
        value = getattr(args, dest)
        if value is not None:
            env[ENV_PREFIX + suffix] = str(value)
    return env


def _report_json(report: BootstrapReport) -> dict[str, Any]:
    payload = results_to_json(report.results)
    payload["ok"] = report.ok
    payload["domain_root"] = report.domain_root.dn
    payload["mode"] = report.mode.value
    payload["subnet"] = report.subnet
    payload["subnet_error"] = report.subnet_error
    return payload


def main(
    argv: Sequence[str] | None = None,
    *,
    directory: Any = None,
    host: HostFactsProvider | None = None,
) -> int:
    """
    Main application entry point.

    directory must implement both DirectoryFactsProvider and
    DirectoryMutationClient. When omitted the PowerShell backend is used.
    """

    args = _parse_args(list(argv) if argv is not None else sys.argv[1:])
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = BootstrapConfig.from_environment(_environment(args, dict(os.environ)))
    except ConfigurationError:
        log.exception("configuration error")
        return EXIT_ERROR

    if directory is None:
        directory = PowerShellDirectory(runner=SubprocessPowerShellRunner(server=args.server))
    if host is None:
        host = PowerShellHostFacts()

    facts: DirectoryFactsProvider = directory
    mutator: DirectoryMutationClient = directory

    runner_config = RunnerConfig(mode=ExecutionMode.dry_run if args.dry_run else ExecutionMode.apply)
    if args.skip_domain_member_check:
        runner_config = RunnerConfig(
            mode=runner_config.mode,
            guard=GuardConfig(require_domain_member=False),
        )
    runner = BootstrapRunner(facts, mutator, host, config, runner_config)

    previous = signal.signal(signal.SIGINT, lambda _signum, _frame: runner.cancel())
    try:
        report = runner.run()
    except (PreconditionNotMet, CatalogInvalid, LookupFailed) as exc:
        log.error("bootstrap did not start: %s", exc)
        return EXIT_ERROR
    finally:
        signal.signal(signal.SIGINT, previous)

    if args.json:
        print(json.dumps(_report_json(report), indent=2, sort_keys=True))

    return EXIT_OK if report.ok else EXIT_FAILURES


if __name__ == "__main__":
    sys.exit(main())
