"""
Static catalog source.

Reads a local json file containing OU, group, and membership tables.
This replaces the long inline "check OU, create OU" blocks of hand written
bootstrap scripts with data.

Schema example
{
  "organizational_units": [
    {"name": "Domain Groups"},
    {"name": "Application Groups", "parent": "Domain Groups"},
    {"name": "Staging", "block_gpo_inheritance": true, "needed_immediately": true}
  ],
  "groups": [
    {
      "name": "SVR-Allow-Logon-As-A-Service",
      "parent": "Domain Groups/Application Groups",
      "scope": "global",
      "category": "security",
      "description": "Service logon rights",
      "member_of": []
    }
  ],
  "memberships": [{"group": "SVR-Allow-Logon-As-A-Service", "member": "svc-backup"}]
}

Entries are declared in file order, so parents must appear before children.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from directory_bootstrap.catalog.bootstrap import CatalogTables
from directory_bootstrap.catalog.catalog import Catalog, CatalogBuilder, join_relative
from directory_bootstrap.core.errors import CatalogInvalid
from directory_bootstrap.core.types import DirectoryPath, GroupCategory, GroupScope


def _items(data: dict[str, Any], key: str, required: str = "name") -> list[dict[str, Any]]:
    raw = data.get(key, []) or []
    if not isinstance(raw, list):
        raise CatalogInvalid(f"{key} must be a list")

    items: list[dict[str, Any]] = []
    for idx, obj in enumerate(raw):
        if not isinstance(obj, dict):
            raise CatalogInvalid(f"{key} item {idx} must be an object")
        if not str(obj.get(required, "")).strip():
            raise CatalogInvalid(f"{key} item {idx} missing {required}")
        items.append(obj)
    return items


def _parse_scope(raw: str) -> GroupScope:
    try:
        return GroupScope(raw)
    except ValueError as exc:
        raise CatalogInvalid(f"unknown group scope: {raw!r}") from exc


def _parse_category(raw: str) -> GroupCategory:
    try:
        return GroupCategory(raw)
    except ValueError as exc:
        raise CatalogInvalid(f"unknown group category: {raw!r}") from exc


@dataclass(frozen=True)
class StaticCatalogSource(CatalogTables):
    """
    Load catalog tables from a local json file.

    path points to a json file that matches the schema described in the module docstring.
    """

    path: Path

    def _read(self) -> dict[str, Any]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CatalogInvalid(f"catalog file could not be read: {self.path}") from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CatalogInvalid(f"catalog file is not valid json: {self.path}") from exc
        if not isinstance(data, dict):
            raise CatalogInvalid("catalog root must be an object")
        return data

    def apply(self, builder: CatalogBuilder, parent: str = "") -> None:
        data = self._read()

        for obj in _items(data, "organizational_units"):
            block = obj.get("block_gpo_inheritance")
            builder.ou(
                str(obj["name"]),
                join_relative(parent, str(obj.get("parent", ""))),
                block_gpo_inheritance=None if block is None else bool(block),
                needed_immediately=bool(obj.get("needed_immediately", False)),
            )

        for obj in _items(data, "groups"):
            member_of = obj.get("member_of", []) or []
            if not isinstance(member_of, list):
                raise CatalogInvalid(f"member_of of group {obj['name']} must be a list")
            builder.group(
                str(obj["name"]),
                join_relative(parent, str(obj.get("parent", ""))),
                scope=_parse_scope(str(obj.get("scope", "global"))),
                category=_parse_category(str(obj.get("category", "security"))),
                description=str(obj.get("description", "")),
                member_of=[str(m) for m in member_of],
                needed_immediately=bool(obj.get("needed_immediately", False)),
            )

        for obj in _items(data, "memberships", required="group"):
            member = str(obj.get("member", "")).strip()
            if not member:
                raise CatalogInvalid(f"membership for {obj['group']} missing member")
            builder.membership(str(obj["group"]), member)

    def load(self, domain_root: DirectoryPath) -> Catalog:
        """Build a standalone catalog from the file alone."""
        builder = CatalogBuilder(domain_root)
        self.apply(builder)
        return builder.build()
