"""
Bootstrap runner.

Purpose
One bootstrap run:
- Load the catalog tables
- Run the forest and site bootstrap
- Log and audit the results

This is the composition layer of the system.
It wires configuration, directory backend, retry policy, and audit trail.

Core reconciliation remains free of configuration.
Runner handles environment configuration.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from directory_bootstrap.audit import AuditLogger
from directory_bootstrap.catalog.bootstrap import CatalogTables
from directory_bootstrap.catalog.static_source import StaticCatalogSource
from directory_bootstrap.config import BootstrapConfig
from directory_bootstrap.directory.base import (
    DirectoryFactsProvider,
    DirectoryMutationClient,
    HostFactsProvider,
)
from directory_bootstrap.reconcile.bootstrap import BootstrapReport, run_bootstrap
from directory_bootstrap.reconcile.execution_mode import ExecutionMode
from directory_bootstrap.reconcile.guard import GuardConfig, PreconditionGuard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunnerConfig:
    """
    Runner configuration.

    mode
    apply changes the directory, dry_run only reports what would change.

    guard
    Precondition checks run before the first mutation.
    """

    mode: ExecutionMode = ExecutionMode.apply
    guard: GuardConfig = GuardConfig()


class BootstrapRunner:
    """
    Top level bootstrap run.

    This is not the reconciler.
    This is the wiring around it.
    """

    def __init__(
        self,
        facts: DirectoryFactsProvider,
        mutator: DirectoryMutationClient,
        host: HostFactsProvider,
        config: BootstrapConfig,
        runner_config: RunnerConfig | None = None,
    ) -> None:
        self._facts = facts
        self._mutator = mutator
        self._host = host
        self._config = config
        self._runner_config = runner_config or RunnerConfig()
        self._cancel = threading.Event()

        self._audit: AuditLogger | None = None
        if config.audit_path is not None:
            self._audit = AuditLogger(path=config.audit_path)

    def _tables(self) -> CatalogTables | None:
        if self._config.catalog_path is None:
            return None
        return StaticCatalogSource(path=self._config.catalog_path)

    def cancel(self) -> None:
        """Stop polling and skip the remaining entries. Safe to call from another thread."""
        self._cancel.set()

    def run(self) -> BootstrapReport:
        """
        Execute one bootstrap run.

        PreconditionNotMet and CatalogInvalid propagate to the caller,
        nothing is audited for a run that never started.
        """

        report = run_bootstrap(
            self._config.domain_admin_user,
            self._facts,
            self._mutator,
            self._host,
            settings=self._config.settings(),
            policy=self._config.retry_policy(cancel=self._cancel),
            mode=self._runner_config.mode,
            tables=self._tables(),
            guard=PreconditionGuard(self._runner_config.guard),
        )

        failures = report.failures()
        if report.subnet_error:
            logger.error("subnet was not reconciled: %s", report.subnet_error)
        if failures:
            logger.warning("%d of %d entries need attention, re-run after fixing", len(failures), len(report.results))
        else:
            logger.info("all %d entries converged", len(report.results))

        if self._audit is not None:
            self._audit.log_report(report)

        return report
