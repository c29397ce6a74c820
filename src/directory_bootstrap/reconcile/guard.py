"""
Precondition guard.

Purpose
Decide whether a bootstrap run may start at all.

This is where host and domain checks live. They run before the first
mutation, so a failed check leaves the directory untouched.

The guard collects every failed check instead of stopping at the first one,
so an operator sees the complete list in one run.
"""

from __future__ import annotations

from dataclasses import dataclass

from directory_bootstrap.catalog.catalog import domain_root_from_fqdn
from directory_bootstrap.core.errors import CatalogInvalid, LookupFailed, PreconditionNotMet
from directory_bootstrap.directory.base import DirectoryFactsProvider, HostFactsProvider


@dataclass(frozen=True)
class GuardDecision:
    """
    Guard decision.

    allowed
    If False, the run must not start.

    reasons
    Human readable reasons, one per failed check.

    domain_fqdn
    Domain name read while checking, empty when it could not be read.
    """

    allowed: bool
    reasons: list[str]
    domain_fqdn: str = ""


@dataclass(frozen=True)
class GuardConfig:
    """
    Guard configuration.

    require_domain_member
    The host must already be joined to, or a controller of, the domain.

    require_admin_user
    A domain admin account name must be supplied.
    """

    require_domain_member: bool = True
    require_admin_user: bool = True


class PreconditionGuard:
    """Check host and domain preconditions before reconciliation."""

    def __init__(self, config: GuardConfig | None = None) -> None:
        self._config = config or GuardConfig()

    def decide(
        self,
        host: HostFactsProvider,
        facts: DirectoryFactsProvider,
        domain_admin_user: str,
    ) -> GuardDecision:
        """
        Evaluate preconditions.

        Rules
        1) the host must be a domain member when configured
        2) the domain name must be readable and have at least two labels
        3) a domain admin account must be supplied when configured
        """

        reasons: list[str] = []

        if self._config.require_domain_member:
            try:
                member = host.is_domain_member()
            except LookupFailed as exc:
                reasons.append(f"domain membership could not be read: {exc}")
            else:
                if not member:
                    reasons.append("host is not a domain member")

        fqdn = ""
        try:
            fqdn = facts.get_domain_fqdn()
            domain_root_from_fqdn(fqdn)
        except LookupFailed as exc:
            reasons.append(f"domain name could not be read: {exc}")
        except CatalogInvalid as exc:
            reasons.append(str(exc))

        if self._config.require_admin_user and not domain_admin_user.strip():
            reasons.append("domain admin user must not be empty")

        return GuardDecision(allowed=not reasons, reasons=reasons, domain_fqdn=fqdn)

    def enforce(
        self,
        host: HostFactsProvider,
        facts: DirectoryFactsProvider,
        domain_admin_user: str,
    ) -> GuardDecision:
        """Raise PreconditionNotMet when decide does not allow the run, else return the decision."""
        decision = self.decide(host, facts, domain_admin_user)
        if not decision.allowed:
            raise PreconditionNotMet("; ".join(decision.reasons))
        return decision
