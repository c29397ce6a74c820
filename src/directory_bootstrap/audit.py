"""
Audit trail.

Every bootstrap run can append its results to a JSON lines file, one object
per catalog entry followed by one summary object. The file is append only so
consecutive runs can be compared, which is how an operator sees that a
re-run converged.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from directory_bootstrap.core.serialization import result_to_json, results_to_json
from directory_bootstrap.reconcile.bootstrap import BootstrapReport


@dataclass(frozen=True)
class AuditLogger:
    """
    JSON line audit logger.

    Each call appends one JSON object per line.
    """

    path: Path

    def log(self, event: dict[str, Any]) -> None:
        payload = dict(event)
        payload["ts_unix"] = int(time.time())
        line = json.dumps(payload, sort_keys=True)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    def log_report(self, report: BootstrapReport) -> None:
        """Append one event per result and a closing run summary."""
        for res in report.results:
            event = result_to_json(res)
            event["event"] = "reconciliation_result"
            self.log(event)

        summary = results_to_json(report.results)
        self.log(
            {
                "event": "bootstrap_summary",
                "domain_root": report.domain_root.dn,
                "mode": report.mode.value,
                "ok": report.ok,
                "subnet": report.subnet,
                "subnet_error": report.subnet_error,
                "summary": summary["summary"],
            }
        )
