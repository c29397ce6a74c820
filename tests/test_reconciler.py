import threading

from directory_bootstrap.catalog.catalog import Catalog, CatalogBuilder
from directory_bootstrap.core.types import (
    DirectoryPath,
    EntryOutcome,
    ErrorKind,
)
from directory_bootstrap.directory.memory import NEVER, InMemoryDirectory
from directory_bootstrap.reconcile.execution_mode import ExecutionMode
from directory_bootstrap.reconcile.reconciler import reconcile
from directory_bootstrap.reconcile.retry import RetryPolicy

ROOT = DirectoryPath.domain_root(["contoso", "com"])


def fast_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, interval_seconds=0)


def make_tree() -> Catalog:
    builder = CatalogBuilder(ROOT)
    builder.ou("Domain Groups")
    builder.ou("Application Groups", "Domain Groups")
    builder.group("SVR-Allow-Logon-As-A-Service", "Domain Groups/Application Groups")
    return builder.build()


def outcomes(results):
    return [r.outcome for r in results]


def test_fresh_directory_creates_everything_then_converges():
    directory = InMemoryDirectory()

    first = reconcile(make_tree(), directory, directory, policy=fast_policy())
    assert outcomes(first) == [EntryOutcome.created] * 3

    second = reconcile(make_tree(), directory, directory, policy=fast_policy())
    assert outcomes(second) == [EntryOutcome.already_exists] * 3


def test_second_run_issues_no_mutations():
    directory = InMemoryDirectory()
    reconcile(make_tree(), directory, directory, policy=fast_policy())
    calls_after_first = len(directory.calls)

    reconcile(make_tree(), directory, directory, policy=fast_policy())

    assert len(directory.calls) == calls_after_first


def test_existing_objects_are_not_touched():
    directory = InMemoryDirectory()
    groups = directory.add_ou("Domain Groups")
    directory.add_ou("Application Groups", groups.path)

    results = reconcile(make_tree(), directory, directory, policy=fast_policy())

    assert outcomes(results) == [EntryOutcome.already_exists, EntryOutcome.already_exists, EntryOutcome.created]
    assert directory.calls == [("create_group", "SVR-Allow-Logon-As-A-Service")]


def test_mutation_failure_is_isolated_and_blocks_dependents():
    builder = CatalogBuilder(ROOT)
    builder.ou("Servers")
    builder.ou("Member Servers", "Servers")
    builder.group("SVR-Local-Administrators", "Servers/Member Servers")
    builder.ou("Workstations")
    catalog = builder.build()

    directory = InMemoryDirectory(mutation_failures={"Servers": "access denied"})

    results = reconcile(catalog, directory, directory, policy=fast_policy())

    assert outcomes(results) == [
        EntryOutcome.failed,
        EntryOutcome.skipped,
        EntryOutcome.skipped,
        EntryOutcome.created,
    ]
    assert results[0].error_kind == ErrorKind.mutation_failure
    assert results[0].reason == "access denied"
    assert results[1].error_kind == ErrorKind.dependency_failed
    assert "OU=Servers,DC=contoso,DC=com" in results[2].reason
    assert ("create_ou", "Member Servers") not in directory.calls


def test_needed_immediately_is_confirmed_after_replication_lag():
    builder = CatalogBuilder(ROOT)
    builder.ou("Staging", needed_immediately=True)
    directory = InMemoryDirectory(visibility_lag={"Staging": 2})

    results = reconcile(builder.build(), directory, directory, policy=fast_policy())

    assert results[0].outcome == EntryOutcome.confirmed
    assert results[0].attempts == 3


def test_never_visible_entry_times_out_and_blocks_children():
    builder = CatalogBuilder(ROOT)
    builder.ou("Staging", needed_immediately=True)
    builder.ou("Laptops", "Staging")
    directory = InMemoryDirectory(visibility_lag={"Staging": NEVER})

    results = reconcile(builder.build(), directory, directory, policy=fast_policy())

    assert outcomes(results) == [EntryOutcome.timed_out, EntryOutcome.skipped]
    assert results[0].reason == "visibility timeout"
    assert results[0].error_kind == ErrorKind.visibility_timeout
    assert results[0].attempts == 3


def test_entry_not_needed_immediately_is_not_polled():
    builder = CatalogBuilder(ROOT)
    builder.ou("Servers")
    directory = InMemoryDirectory(visibility_lag={"Servers": NEVER})

    results = reconcile(builder.build(), directory, directory, policy=fast_policy())

    assert results[0].outcome == EntryOutcome.created
    assert results[0].attempts == 0


def test_lookup_error_is_treated_as_absence_and_reported():
    directory = InMemoryDirectory(lookup_failures={"Domain Groups": 1})

    results = reconcile(make_tree(), directory, directory, policy=fast_policy())

    assert results[0].outcome == EntryOutcome.created
    assert "injected lookup failure" in results[0].lookup_error
    assert results[1].lookup_error == ""


def test_gpo_inheritance_is_set_only_when_different():
    builder = CatalogBuilder(ROOT)
    builder.ou("Staging", block_gpo_inheritance=True)
    catalog = builder.build()
    directory = InMemoryDirectory()

    first = reconcile(catalog, directory, directory, policy=fast_policy())
    second = reconcile(catalog, directory, directory, policy=fast_policy())

    dn = "OU=Staging,DC=contoso,DC=com"
    assert first[0].outcome == EntryOutcome.created
    assert first[0].reason == "gpo inheritance blocked set to True"
    assert second[0].outcome == EntryOutcome.already_exists
    assert directory.gpo_blocked[dn.casefold()] is True
    assert [c for c in directory.calls if c[0] == "set_gpo_inheritance_blocked"] == [
        ("set_gpo_inheritance_blocked", dn)
    ]


def test_gpo_inheritance_is_corrected_on_existing_ou():
    builder = CatalogBuilder(ROOT)
    builder.ou("Staging", block_gpo_inheritance=False)
    directory = InMemoryDirectory()
    node = directory.add_ou("Staging")
    directory.gpo_blocked[node.path.key()] = True

    results = reconcile(builder.build(), directory, directory, policy=fast_policy())

    assert results[0].outcome == EntryOutcome.already_exists
    assert directory.gpo_blocked[node.path.key()] is False


def test_membership_is_added_once():
    builder = CatalogBuilder(ROOT)
    builder.ou("Groups")
    builder.group("Helpdesk", "Groups")
    builder.membership("Helpdesk", "jdoe")
    catalog = builder.build()
    directory = InMemoryDirectory()

    first = reconcile(catalog, directory, directory, policy=fast_policy())
    second = reconcile(catalog, directory, directory, policy=fast_policy())

    assert first[-1].outcome == EntryOutcome.created
    assert second[-1].outcome == EntryOutcome.already_exists
    assert directory.members["helpdesk"] == {"jdoe"}


def test_membership_match_is_case_insensitive():
    builder = CatalogBuilder(ROOT)
    builder.membership("Helpdesk", "JDoe")
    directory = InMemoryDirectory()
    directory.add_group("Helpdesk")
    directory.members["helpdesk"].add("jdoe")

    results = reconcile(builder.build(), directory, directory, policy=fast_policy())

    assert results[0].outcome == EntryOutcome.already_exists
    assert directory.calls == []


def test_membership_for_unknown_group_fails():
    builder = CatalogBuilder(ROOT)
    builder.membership("Missing", "jdoe")
    directory = InMemoryDirectory()

    results = reconcile(builder.build(), directory, directory, policy=fast_policy())

    assert results[0].outcome == EntryOutcome.failed
    assert results[0].error_kind == ErrorKind.dependency_failed


def test_membership_waits_for_group_created_in_same_pass():
    builder = CatalogBuilder(ROOT)
    builder.ou("Groups")
    builder.group("Helpdesk", "Groups")
    builder.membership("Helpdesk", "jdoe")
    directory = InMemoryDirectory(visibility_lag={"Helpdesk": 2})

    results = reconcile(builder.build(), directory, directory, policy=fast_policy())

    assert results[1].outcome == EntryOutcome.created
    assert results[2].outcome == EntryOutcome.created
    assert results[2].attempts >= 1
    assert "jdoe" in directory.members["helpdesk"]


def test_membership_skipped_when_group_failed():
    builder = CatalogBuilder(ROOT)
    builder.ou("Groups")
    builder.group("Helpdesk", "Groups")
    builder.membership("Helpdesk", "jdoe")
    directory = InMemoryDirectory(mutation_failures={"Helpdesk": "name in use"})

    results = reconcile(builder.build(), directory, directory, policy=fast_policy())

    assert outcomes(results) == [EntryOutcome.created, EntryOutcome.failed, EntryOutcome.skipped]


def test_dry_run_issues_no_mutations():
    directory = InMemoryDirectory()

    results = reconcile(make_tree(), directory, directory, policy=fast_policy(), mode=ExecutionMode.dry_run)

    assert outcomes(results) == [EntryOutcome.planned] * 3
    assert all(r.ok for r in results)
    assert directory.calls == []


def test_dry_run_reports_planned_membership_for_planned_group():
    builder = CatalogBuilder(ROOT)
    builder.ou("Groups")
    builder.group("Helpdesk", "Groups")
    builder.membership("Helpdesk", "jdoe")
    directory = InMemoryDirectory()

    results = reconcile(builder.build(), directory, directory, policy=fast_policy(), mode=ExecutionMode.dry_run)

    assert outcomes(results) == [EntryOutcome.planned] * 3
    assert directory.calls == []


def test_cancelled_policy_skips_every_entry():
    cancel = threading.Event()
    cancel.set()
    policy = RetryPolicy(max_attempts=3, interval_seconds=0, cancel=cancel)
    directory = InMemoryDirectory()

    results = reconcile(make_tree(), directory, directory, policy=policy)

    assert outcomes(results) == [EntryOutcome.skipped] * 3
    assert {r.error_kind for r in results} == {ErrorKind.cancelled}
    assert directory.calls == []


def test_every_entry_gets_exactly_one_result():
    builder = CatalogBuilder(ROOT)
    builder.ou("A")
    builder.ou("B", "A")
    builder.ou("C", "A/B")
    builder.ou("D")
    catalog = builder.build()
    directory = InMemoryDirectory(mutation_failures={"A": "denied"})

    results = reconcile(catalog, directory, directory, policy=fast_policy())

    assert [r.identity for r in results] == [e.identity for e in catalog]
