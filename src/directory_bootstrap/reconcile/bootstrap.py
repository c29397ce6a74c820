"""
Forest and site bootstrap.

This is the reconciler specialised for a brand new environment.

Steps
1) precondition guard, before anything is changed
2) resolve the domain root from the live domain name
3) derive the site subnet from the host primary IPv4 address
4) compose the bootstrap catalog
5) reconcile it

A subnet derivation error only drops the subnet entry. It is reported on the
BootstrapReport so the run is not mistaken for a clean one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from directory_bootstrap.catalog.bootstrap import BootstrapSettings, CatalogTables, build_bootstrap_catalog
from directory_bootstrap.catalog.catalog import Catalog, domain_root_from_fqdn
from directory_bootstrap.core.errors import (
    InvalidAddress,
    InvalidPrefixLength,
    LookupFailed,
    PreconditionNotMet,
)
from directory_bootstrap.core.types import DirectoryPath, ReconciliationResult
from directory_bootstrap.directory.base import (
    DirectoryFactsProvider,
    DirectoryMutationClient,
    HostFactsProvider,
)
from directory_bootstrap.network.subnet import derive_subnet
from directory_bootstrap.reconcile.execution_mode import ExecutionMode
from directory_bootstrap.reconcile.guard import PreconditionGuard
from directory_bootstrap.reconcile.reconciler import reconcile
from directory_bootstrap.reconcile.retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BootstrapReport:
    """
    Outcome of one bootstrap run.

    subnet
    Derived CIDR, or None when derivation failed.

    subnet_error
    Derivation error message when subnet is None.
    """

    domain_root: DirectoryPath
    catalog: Catalog
    results: list[ReconciliationResult]
    subnet: str | None = None
    subnet_error: str = ""
    mode: ExecutionMode = ExecutionMode.apply
    settings: BootstrapSettings | None = field(default=None, compare=False)

    @property
    def ok(self) -> bool:
        return not self.subnet_error and all(r.ok for r in self.results)

    def failures(self) -> list[ReconciliationResult]:
        """Results a caller should act on or re-run."""
        return [r for r in self.results if not r.ok]


def _derive_host_subnet(host: HostFactsProvider) -> tuple[str | None, str]:
    try:
        primary = host.get_primary_ipv4()
    except LookupFailed as exc:
        raise PreconditionNotMet(f"primary IPv4 address could not be read: {exc}") from exc
    except (InvalidAddress, InvalidPrefixLength) as exc:
        logger.error("primary IPv4 address is malformed: %s", exc)
        return None, str(exc)

    try:
        return derive_subnet(primary.address, primary.prefix_length), ""
    except (InvalidAddress, InvalidPrefixLength) as exc:
        logger.error("subnet derivation failed for %s/%s: %s", primary.address, primary.prefix_length, exc)
        return None, str(exc)


def run_bootstrap(
    domain_admin_user: str,
    facts: DirectoryFactsProvider,
    mutator: DirectoryMutationClient,
    host: HostFactsProvider,
    settings: BootstrapSettings | None = None,
    policy: RetryPolicy | None = None,
    mode: ExecutionMode = ExecutionMode.apply,
    tables: CatalogTables | None = None,
    guard: PreconditionGuard | None = None,
) -> BootstrapReport:
    """
    Compose and reconcile the forest bootstrap catalog.

    domain_admin_user always wins over settings.domain_admin_user.
    Raises PreconditionNotMet before any mutation when the guard refuses.
    """

    decision = (guard or PreconditionGuard()).enforce(host, facts, domain_admin_user)

    if settings is None:
        settings = BootstrapSettings(domain_admin_user=domain_admin_user)
    elif settings.domain_admin_user != domain_admin_user:
        settings = replace(settings, domain_admin_user=domain_admin_user)

    fqdn = decision.domain_fqdn
    domain_root = domain_root_from_fqdn(fqdn)
    subnet, subnet_error = _derive_host_subnet(host)

    catalog = build_bootstrap_catalog(domain_root, settings, subnet, tables)
    logger.info(
        "bootstrapping %s (%s) with %d catalog entries, subnet %s, mode %s",
        fqdn,
        domain_root.dn,
        len(catalog),
        subnet or "none",
        mode,
    )

    results = reconcile(catalog, facts, mutator, policy=policy, mode=mode)

    return BootstrapReport(
        domain_root=domain_root,
        catalog=catalog,
        results=results,
        subnet=subnet,
        subnet_error=subnet_error,
        mode=mode,
        settings=settings,
    )
