from __future__ import annotations

from dataclasses import fields
from typing import Any

from directory_bootstrap.core.types import DirectoryPath, ReconciliationResult


def _normalize(obj: Any) -> Any:
    if isinstance(obj, DirectoryPath):
        return obj.dn
    if hasattr(obj, "value"):
        return obj.value
    if isinstance(obj, dict):
        return {str(k): _normalize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_normalize(v) for v in obj]
    if isinstance(obj, (set, frozenset)):
        return sorted(_normalize(v) for v in obj)
    return obj


def to_json_safe_dict(obj: Any) -> dict[str, Any]:
    """
    Convert a dataclass object into a JSON safe dict.

    Fields are read one level deep so DirectoryPath values are rendered as
    DN strings instead of being flattened into component lists.
    This is intended for transport only.
    """
    raw = {f.name: getattr(obj, f.name) for f in fields(obj)}
    normalized = _normalize(raw)
    if not isinstance(normalized, dict):
        raise TypeError("expected dict after normalization")
    return normalized


def result_to_json(result: ReconciliationResult) -> dict[str, Any]:
    """ReconciliationResult transport shape, with the derived ok flag included."""
    payload = to_json_safe_dict(result)
    payload["ok"] = result.ok
    return payload


def results_to_json(results: list[ReconciliationResult]) -> dict[str, Any]:
    """
    Results list transport shape.

    summary counts entries per outcome so an operator can see at a glance
    whether a re-run is needed.
    """
    summary: dict[str, int] = {}
    for res in results:
        summary[res.outcome.value] = summary.get(res.outcome.value, 0) + 1
    return {
        "ok": all(r.ok for r in results),
        "summary": summary,
        "results": [result_to_json(r) for r in results],
    }
