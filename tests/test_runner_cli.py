import json
from pathlib import Path

from directory_bootstrap.cli import EXIT_ERROR, EXIT_FAILURES, EXIT_OK, main
from directory_bootstrap.config import BootstrapConfig
from directory_bootstrap.core.types import EntryOutcome, HostInterface, PrefixOrigin
from directory_bootstrap.directory.memory import InMemoryDirectory, StaticHostFacts
from directory_bootstrap.reconcile.execution_mode import ExecutionMode
from directory_bootstrap.runner import BootstrapRunner, RunnerConfig


def make_host(**kwargs) -> StaticHostFacts:
    return StaticHostFacts(
        interfaces=[HostInterface("Ethernet0", "192.168.10.7", 24, PrefixOrigin.dhcp)],
        **kwargs,
    )


def make_config(tmp_path: Path, **kwargs) -> BootstrapConfig:
    return BootstrapConfig(
        domain_admin_user="Administrator",
        poll_attempts=2,
        poll_interval_seconds=0,
        audit_path=tmp_path / "audit.jsonl",
        **kwargs,
    )


def test_runner_uses_catalog_file_and_writes_audit(tmp_path: Path):
    catalog = tmp_path / "catalog.json"
    catalog.write_text(
        json.dumps(
            {
                "organizational_units": [{"name": "Branch"}],
                "groups": [{"name": "Tier0-Admins", "parent": "Branch"}],
            }
        ),
        encoding="utf-8",
    )
    directory = InMemoryDirectory()

    runner = BootstrapRunner(directory, directory, make_host(), make_config(tmp_path, catalog_path=catalog))
    report = runner.run()

    assert report.ok
    assert "ou=branch,dc=contoso,dc=com" in directory.ous
    assert "domain groups" not in {node.name.casefold() for node in directory.ous.values()}
    assert (tmp_path / "audit.jsonl").exists()


def test_runner_dry_run(tmp_path: Path):
    directory = InMemoryDirectory()
    runner = BootstrapRunner(
        directory,
        directory,
        make_host(),
        make_config(tmp_path),
        RunnerConfig(mode=ExecutionMode.dry_run),
    )

    report = runner.run()

    assert report.ok
    assert directory.calls == []


def test_runner_cancel_skips_remaining_entries(tmp_path: Path):
    directory = InMemoryDirectory()
    runner = BootstrapRunner(directory, directory, make_host(), make_config(tmp_path))
    runner.cancel()

    report = runner.run()

    assert not report.ok
    assert {r.outcome for r in report.results} == {EntryOutcome.skipped}


def test_cli_applies_and_prints_json(tmp_path: Path, monkeypatch, capsys):
    monkeypatch.setenv("ADBOOT_DOMAIN_ADMIN_USER", "Administrator")
    monkeypatch.setenv("ADBOOT_POLL_INTERVAL_SECONDS", "0")
    directory = InMemoryDirectory()

    code = main(["--json", "--site-name", "HQ", "--poll-attempts", "2"], directory=directory, host=make_host())

    payload = json.loads(capsys.readouterr().out)
    assert code == EXIT_OK
    assert payload["ok"] is True
    assert payload["subnet"] == "192.168.10.0/24"
    assert payload["mode"] == "apply"
    assert "hq" in directory.sites


def test_cli_flag_overrides_missing_environment(monkeypatch):
    monkeypatch.delenv("ADBOOT_DOMAIN_ADMIN_USER", raising=False)
    directory = InMemoryDirectory()

    code = main(
        ["--domain-admin-user", "Administrator", "--dry-run", "--poll-interval", "0"],
        directory=directory,
        host=make_host(),
    )

    assert code == EXIT_OK
    assert directory.calls == []


def test_cli_missing_admin_user_is_an_error(monkeypatch):
    monkeypatch.delenv("ADBOOT_DOMAIN_ADMIN_USER", raising=False)
    directory = InMemoryDirectory()

    assert main([], directory=directory, host=make_host()) == EXIT_ERROR


def test_cli_precondition_failure_is_an_error(monkeypatch):
    monkeypatch.setenv("ADBOOT_DOMAIN_ADMIN_USER", "Administrator")
    directory = InMemoryDirectory()

    code = main([], directory=directory, host=make_host(domain_member=False))

    assert code == EXIT_ERROR
    assert directory.calls == []


def test_cli_skip_domain_member_check(monkeypatch):
    monkeypatch.setenv("ADBOOT_DOMAIN_ADMIN_USER", "Administrator")
    directory = InMemoryDirectory()

    code = main(
        ["--skip-domain-member-check", "--poll-interval", "0"],
        directory=directory,
        host=make_host(domain_member=False),
    )

    assert code == EXIT_OK


def test_cli_entry_failures_exit_with_two(monkeypatch):
    monkeypatch.setenv("ADBOOT_DOMAIN_ADMIN_USER", "Administrator")
    directory = InMemoryDirectory(mutation_failures={"Servers": "access denied"})

    code = main(["--poll-interval", "0"], directory=directory, host=make_host())

    assert code == EXIT_FAILURES


def test_cli_missing_catalog_file_is_an_error(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("ADBOOT_DOMAIN_ADMIN_USER", "Administrator")
    directory = InMemoryDirectory()

    code = main(["--catalog", str(tmp_path / "missing.json")], directory=directory, host=make_host())

    assert code == EXIT_ERROR
    assert directory.calls == []
