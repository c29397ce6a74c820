import json
from pathlib import Path

from directory_bootstrap.audit import AuditLogger
from directory_bootstrap.core.serialization import results_to_json, to_json_safe_dict
from directory_bootstrap.core.types import (
    DirectoryPath,
    EntryKind,
    EntryOutcome,
    ErrorKind,
    HostInterface,
    OuNode,
    PrefixOrigin,
    ReconciliationResult,
)
from directory_bootstrap.directory.memory import InMemoryDirectory, StaticHostFacts
from directory_bootstrap.reconcile.bootstrap import run_bootstrap
from directory_bootstrap.reconcile.retry import RetryPolicy


def test_paths_render_as_dn_and_enums_as_values():
    node = OuNode("Servers", DirectoryPath.domain_root(["contoso", "com"]), block_gpo_inheritance=True)

    payload = to_json_safe_dict(node)

    assert payload["parent_path"] == "DC=contoso,DC=com"
    assert payload["block_gpo_inheritance"] is True
    json.dumps(payload)


def test_results_summary_counts_outcomes():
    results = [
        ReconciliationResult(EntryKind.ou, "OU=A,DC=contoso,DC=com", EntryOutcome.created),
        ReconciliationResult(EntryKind.ou, "OU=B,DC=contoso,DC=com", EntryOutcome.created),
        ReconciliationResult(
            EntryKind.group,
            "Helpdesk",
            EntryOutcome.failed,
            reason="access denied",
            error_kind=ErrorKind.mutation_failure,
        ),
    ]

    payload = results_to_json(results)

    assert payload["ok"] is False
    assert payload["summary"] == {"created": 2, "failed": 1}
    assert payload["results"][2]["error_kind"] == "mutation_failure"
    assert payload["results"][2]["ok"] is False
    assert payload["results"][0]["kind"] == "ou"


def test_audit_logger_appends_results_and_summary(tmp_path: Path):
    directory = InMemoryDirectory()
    host = StaticHostFacts(interfaces=[HostInterface("Ethernet0", "10.0.5.20", 24, PrefixOrigin.dhcp)])
    report = run_bootstrap(
        "Administrator",
        directory,
        directory,
        host,
        policy=RetryPolicy(max_attempts=2, interval_seconds=0),
    )
    audit = AuditLogger(path=tmp_path / "logs" / "audit.jsonl")

    audit.log_report(report)

    lines = [json.loads(line) for line in audit.path.read_text(encoding="utf-8").splitlines()]
    assert len(lines) == len(report.results) + 1
    assert all("ts_unix" in line for line in lines)
    assert lines[0]["event"] == "reconciliation_result"
    assert lines[-1]["event"] == "bootstrap_summary"
    assert lines[-1]["subnet"] == "10.0.5.0/24"
    assert lines[-1]["ok"] is True
