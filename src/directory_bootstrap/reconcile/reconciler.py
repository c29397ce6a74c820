"""
Reconciler.

This engine converges a live directory to a desired state catalog.

For each entry, in catalog order:
1) existence check through the facts provider
2) create if absent through the mutation client
3) bounded visibility poll for entries needed immediately
4) post condition assertion, such as the GPO inheritance flag
5) membership assertion for GroupMembership entries

Failure isolation
A failed mutation is recorded against its entry and the pass continues.
Entries that depend on a failed, timed out, or skipped entry are skipped and
reported, never attempted. Every entry gets exactly one result.

Lookups
A lookup that raises LookupFailed is treated as absence, as the hand written
scripts did, but the message is kept on the result so an operator can tell
"not there" from "could not ask".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from directory_bootstrap.catalog.catalog import Catalog
from directory_bootstrap.core.errors import LookupFailed, MutationFailed
from directory_bootstrap.core.types import (
    CatalogEntry,
    ComputersContainer,
    EntryKind,
    EntryOutcome,
    EntryState,
    ErrorKind,
    ForestFeature,
    GroupMembership,
    Lookup,
    LookupStatus,
    OuNode,
    ReconciliationResult,
    SecurityGroup,
    Site,
    SiteSubnet,
    group_key,
)
from directory_bootstrap.directory.base import DirectoryFactsProvider, DirectoryMutationClient
from directory_bootstrap.reconcile.execution_mode import ExecutionMode
from directory_bootstrap.reconcile.retry import RetryPolicy, poll_until_visible

logger = logging.getLogger(__name__)

_STATE_RANK = {
    EntryState.pending: 0,
    EntryState.checked: 1,
    EntryState.creating: 2,
    EntryState.pending_visibility: 3,
}
_TERMINAL_RANK = 4


@dataclass
class _EntryRun:
    """Mutable state of one entry while it is being reconciled."""

    entry: CatalogEntry
    state: EntryState = EntryState.pending
    attempts: int = 0
    lookup_error: str = ""

    def advance(self, new_state: EntryState) -> None:
        current = _STATE_RANK.get(self.state, _TERMINAL_RANK)
        target = _STATE_RANK.get(new_state, _TERMINAL_RANK)
        if target < current or current == _TERMINAL_RANK:
            raise RuntimeError(f"illegal transition {self.state} -> {new_state} for {self.entry.identity}")
        logger.debug("%s %s: %s -> %s", self.entry.kind, self.entry.identity, self.state, new_state)
        self.state = new_state

    def note(self, lookup: Lookup) -> Lookup:
        if lookup.status == LookupStatus.error and not self.lookup_error:
            self.lookup_error = lookup.error
        return lookup

    def finish(
        self,
        outcome: EntryOutcome,
        reason: str = "",
        error_kind: ErrorKind | None = None,
    ) -> ReconciliationResult:
        self.advance(EntryState(outcome.value))
        return ReconciliationResult(
            kind=self.entry.kind,
            identity=self.entry.identity,
            outcome=outcome,
            reason=reason,
            error_kind=error_kind,
            attempts=self.attempts,
            lookup_error=self.lookup_error,
        )


@dataclass
class _PassState:
    """
    Run state for one reconciliation pass. Discarded when the pass ends.

    blocked
    Dependency key to the identity of the entry that failed to provide it.

    unconfirmed
    Keys created in this pass without a visibility confirmation.

    planned
    Keys a dry run would create.
    """

    blocked: dict[str, str] = field(default_factory=dict)
    unconfirmed: set[str] = field(default_factory=set)
    planned: set[str] = field(default_factory=set)
    results: list[ReconciliationResult] = field(default_factory=list)


class Reconciler:
    """
    Reconciler.

    facts
    Read side of the directory.

    mutator
    Write side of the directory.

    policy
    Visibility polling budget and cancellation signal.

    mode
    apply or dry_run.
    """

    def __init__(
        self,
        facts: DirectoryFactsProvider,
        mutator: DirectoryMutationClient,
        policy: RetryPolicy | None = None,
        mode: ExecutionMode = ExecutionMode.apply,
    ) -> None:
        self._facts = facts
        self._mutator = mutator
        self._policy = policy or RetryPolicy()
        self._mode = mode

        self._handlers: dict[EntryKind, Callable[[Any, _EntryRun, _PassState], ReconciliationResult]] = {
            EntryKind.ou: self._reconcile_ou,
            EntryKind.group: self._reconcile_group,
            EntryKind.site: self._reconcile_site,
            EntryKind.subnet: self._reconcile_subnet,
            EntryKind.group_membership: self._reconcile_membership,
            EntryKind.forest_feature: self._reconcile_feature,
            EntryKind.computers_container: self._reconcile_computers_container,
        }

    def reconcile(self, catalog: Catalog) -> list[ReconciliationResult]:
        """
        Converge every catalog entry, in order.

        Returns one result per entry, in catalog order.
        """

        state = _PassState()

        for entry in catalog:
            run = _EntryRun(entry=entry)

            if self._policy.cancelled:
                result = run.finish(EntryOutcome.skipped, "reconciliation cancelled", ErrorKind.cancelled)
            else:
                blocker = self._blocked_by(entry, state)
                if blocker is not None:
                    result = run.finish(
                        EntryOutcome.skipped,
                        f"depends on {blocker} which did not converge",
                        ErrorKind.dependency_failed,
                    )
                else:
                    result = self._handlers[entry.kind](entry, run, state)

            self._record(entry, result, state)

        return state.results

    def _blocked_by(self, entry: CatalogEntry, state: _PassState) -> str | None:
        for key in entry.depends_on():
            if key in state.blocked:
                return state.blocked[key]
        return None

    def _record(self, entry: CatalogEntry, result: ReconciliationResult, state: _PassState) -> None:
        key = entry.provides()
        if key is not None:
            if not result.ok:
                state.blocked[key] = entry.identity
            elif result.outcome == EntryOutcome.created:
                state.unconfirmed.add(key)
            elif result.outcome == EntryOutcome.planned:
                state.planned.add(key)

        state.results.append(result)
        _log_result(result)

    # Shared flow

    def _lookup(self, query: Callable[[], Any]) -> Lookup:
        """Run a facts query and type its result."""
        try:
            value = query()
        except LookupFailed as exc:
            return Lookup(status=LookupStatus.error, error=str(exc))
        if value is None:
            return Lookup(status=LookupStatus.absent)
        return Lookup(status=LookupStatus.found, value=value)

    def _converge(
        self,
        run: _EntryRun,
        find: Callable[[], Any],
        create: Callable[[], None],
        post: Callable[[], str] | None = None,
    ) -> ReconciliationResult:
        """
        Check, create if absent, confirm visibility, assert post condition.

        Entries with a post condition are always confirmed before it runs,
        because the post condition reads the object back.
        """

        entry = run.entry
        lookup = run.note(self._lookup(find))
        run.advance(EntryState.checked)

        if lookup.found:
            return self._post_condition(run, post, EntryOutcome.already_exists)

        if self._mode == ExecutionMode.dry_run:
            return run.finish(EntryOutcome.planned, "would create")

        run.advance(EntryState.creating)
        try:
            create()
        except MutationFailed as exc:
            return run.finish(EntryOutcome.failed, str(exc), ErrorKind.mutation_failure)

        if not entry.needed_immediately and post is None:
            return run.finish(EntryOutcome.created)

        run.advance(EntryState.pending_visibility)
        poll = poll_until_visible(lambda: find() is not None, self._policy, entry.identity)
        run.attempts = poll.attempts
        if poll.last_error and not run.lookup_error:
            run.lookup_error = poll.last_error

        if poll.cancelled:
            return run.finish(EntryOutcome.timed_out, "cancelled", ErrorKind.cancelled)
        if not poll.visible:
            return run.finish(EntryOutcome.timed_out, "visibility timeout", ErrorKind.visibility_timeout)

        outcome = EntryOutcome.confirmed if entry.needed_immediately else EntryOutcome.created
        return self._post_condition(run, post, outcome)

    def _post_condition(
        self,
        run: _EntryRun,
        post: Callable[[], str] | None,
        outcome: EntryOutcome,
    ) -> ReconciliationResult:
        if post is None:
            return run.finish(outcome)

        try:
            reason = post()
        except MutationFailed as exc:
            return run.finish(EntryOutcome.failed, f"post condition failed: {exc}", ErrorKind.mutation_failure)

        if reason and self._mode == ExecutionMode.dry_run:
            return run.finish(EntryOutcome.planned, reason)
        return run.finish(outcome, reason)

    # Per kind handlers

    def _reconcile_ou(self, node: OuNode, run: _EntryRun, state: _PassState) -> ReconciliationResult:
        post = None
        if node.block_gpo_inheritance is not None:
            post = lambda: self._assert_gpo_inheritance(node, run)  # noqa: E731

        return self._converge(
            run,
            find=lambda: self._facts.find_organizational_unit(node.name, node.parent_path),
            create=lambda: self._mutator.create_ou(node.name, node.parent_path),
            post=post,
        )

    def _assert_gpo_inheritance(self, node: OuNode, run: _EntryRun) -> str:
        """Toggle the flag only when it differs from the declared value."""
        desired = bool(node.block_gpo_inheritance)
        dn = node.path.dn

        current = run.note(self._lookup(lambda: self._facts.get_gpo_inheritance_blocked(dn)))
        if current.found and bool(current.value) == desired:
            return ""

        if self._mode == ExecutionMode.dry_run:
            return f"would set gpo inheritance blocked to {desired}"

        self._mutator.set_gpo_inheritance_blocked(dn, desired)
        return f"gpo inheritance blocked set to {desired}"

    def _reconcile_group(self, group: SecurityGroup, run: _EntryRun, state: _PassState) -> ReconciliationResult:
        return self._converge(
            run,
            find=lambda: self._facts.find_group(group.name),
            create=lambda: self._mutator.create_group(group),
        )

    def _reconcile_subnet(self, subnet: SiteSubnet, run: _EntryRun, state: _PassState) -> ReconciliationResult:
        return self._converge(
            run,
            find=lambda: self._facts.find_subnet(subnet.cidr),
            create=lambda: self._mutator.create_subnet(subnet.cidr, subnet.site_name),
        )

    def _reconcile_feature(self, feature: ForestFeature, run: _EntryRun, state: _PassState) -> ReconciliationResult:
        return self._converge(
            run,
            find=lambda: True if self._facts.is_recycle_bin_enabled() else None,
            create=self._mutator.enable_recycle_bin,
        )

    def _reconcile_computers_container(
        self,
        container: ComputersContainer,
        run: _EntryRun,
        state: _PassState,
    ) -> ReconciliationResult:
        def find() -> Any:
            current = self._facts.get_computers_container()
            return current if current == container.target_path else None

        return self._converge(
            run,
            find=find,
            create=lambda: self._mutator.redirect_computers_container(container.target_path),
        )

    def _reconcile_site(self, site: Site, run: _EntryRun, state: _PassState) -> ReconciliationResult:
        """
        A site is produced by renaming the default site.

        When the default site is gone we assume an earlier run renamed it.
        """

        target = run.note(self._lookup(lambda: self._facts.find_site(site.name)))
        if target.found:
            run.advance(EntryState.checked)
            return run.finish(EntryOutcome.already_exists)

        default = run.note(self._lookup(lambda: self._facts.find_site(site.default_name)))
        run.advance(EntryState.checked)

        if not default.found:
            logger.warning(
                "default site %s not found and site %s not visible, assuming it was already renamed",
                site.default_name,
                site.name,
            )
            return run.finish(EntryOutcome.already_exists, "default site not found, assumed renamed")

        return self._converge(
            run,
            find=lambda: self._facts.find_site(site.name),
            create=lambda: self._mutator.rename_object(site.default_path.dn, site.name),
        )

    def _reconcile_membership(
        self,
        membership: GroupMembership,
        run: _EntryRun,
        state: _PassState,
    ) -> ReconciliationResult:
        group = run.note(self._lookup(lambda: self._facts.find_group(membership.group)))

        if not group.found:
            if group_key(membership.group) in state.planned:
                run.advance(EntryState.checked)
                return run.finish(EntryOutcome.planned, "group will be created first")

            if group_key(membership.group) in state.unconfirmed:
                waited = self._await_created_group(membership.group, run)
                if waited is not None:
                    return waited
            else:
                run.advance(EntryState.checked)
                return run.finish(
                    EntryOutcome.failed,
                    f"group not found: {membership.group}",
                    ErrorKind.dependency_failed,
                )

        if group_key(membership.member) in state.unconfirmed:
            waited = self._await_created_group(membership.member, run)
            if waited is not None:
                return waited

        members_lookup = run.note(self._lookup(lambda: self._facts.get_group_members(membership.group)))
        members = members_lookup.value if members_lookup.found else set()
        run.advance(EntryState.checked)

        if membership.member.casefold() in {str(m).casefold() for m in members}:
            return run.finish(EntryOutcome.already_exists)

        if self._mode == ExecutionMode.dry_run:
            return run.finish(EntryOutcome.planned, "would add member")

        run.advance(EntryState.creating)
        try:
            self._mutator.add_group_member(membership.group, membership.member)
        except MutationFailed as exc:
            return run.finish(EntryOutcome.failed, str(exc), ErrorKind.mutation_failure)

        return run.finish(EntryOutcome.created)

    def _await_created_group(self, name: str, run: _EntryRun) -> ReconciliationResult | None:
        """
        Wait for a group created earlier in this pass to become visible.

        Returns a terminal result when it never shows up, None when it did.
        """

        poll = poll_until_visible(lambda: self._facts.find_group(name) is not None, self._policy, name)
        run.attempts += poll.attempts
        if poll.visible:
            return None

        run.advance(EntryState.checked)
        if poll.cancelled:
            return run.finish(EntryOutcome.timed_out, "cancelled", ErrorKind.cancelled)
        return run.finish(
            EntryOutcome.timed_out,
            f"visibility timeout waiting for group {name}",
            ErrorKind.visibility_timeout,
        )


def reconcile(
    catalog: Catalog,
    facts: DirectoryFactsProvider,
    mutator: DirectoryMutationClient,
    policy: RetryPolicy | None = None,
    mode: ExecutionMode = ExecutionMode.apply,
) -> list[ReconciliationResult]:
    """Converge a catalog once. See Reconciler."""
    return Reconciler(facts, mutator, policy=policy, mode=mode).reconcile(catalog)


def _log_result(result: ReconciliationResult) -> None:
    if result.ok:
        if result.lookup_error:
            logger.warning(
                "%s %s: %s after lookup error: %s",
                result.kind,
                result.identity,
                result.outcome,
                result.lookup_error,
            )
        else:
            logger.info("%s %s: %s %s", result.kind, result.identity, result.outcome, result.reason)
        return

    logger.warning(
        "%s %s: %s (%s) %s",
        result.kind,
        result.identity,
        result.outcome,
        result.error_kind,
        result.reason,
    )
