"""
Execution modes.

apply
Query the directory and issue mutations for anything missing.

dry_run
Query the directory and report what would change, but never call the
mutation client. Entries that would be created are reported as planned.
"""

from __future__ import annotations

from enum import StrEnum


class ExecutionMode(StrEnum):
    apply = "apply"
    dry_run = "dry_run"
