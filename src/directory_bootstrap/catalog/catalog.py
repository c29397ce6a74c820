"""
Desired state catalog.

The catalog is the declarative list of directory objects a run must ensure
exist. It is immutable once built and is ordered so that every entry comes
after the entries it depends on.

Order is authored, not computed
The builder refuses an OU or group whose parent OU has not been declared
earlier. That keeps the dependency order explicit in the source tables and
makes a misordered table fail before anything touches the directory.

Domain root
The root is derived from the domain DNS name using only its first two
labels. contoso.com becomes DC=contoso,DC=com. corp.contoso.com becomes
DC=corp,DC=contoso, which is almost certainly wrong for a three label
domain. We keep that behavior and log a warning instead of guessing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator

from directory_bootstrap.core.errors import CatalogInvalid
from directory_bootstrap.core.types import (
    CatalogEntry,
    ComputersContainer,
    DirectoryPath,
    EntryKind,
    ForestFeature,
    GroupCategory,
    GroupMembership,
    GroupScope,
    OuNode,
    SecurityGroup,
    Site,
    SiteSubnet,
)

logger = logging.getLogger(__name__)


def domain_root_from_fqdn(fqdn: str) -> DirectoryPath:
    """Build the DC= root path from the first two labels of a DNS name."""
    labels = [label for label in str(fqdn).strip().rstrip(".").split(".") if label]
    if len(labels) < 2:
        raise CatalogInvalid(f"domain name needs at least two labels: {fqdn!r}")
    if len(labels) > 2:
        logger.warning(
            "domain %s has %d labels, only the first two are used for the root path",
            fqdn,
            len(labels),
        )
    return DirectoryPath.domain_root(labels[:2])


def configuration_container(root: DirectoryPath) -> DirectoryPath:
    return root.child("CN", "Configuration")


def sites_container(root: DirectoryPath) -> DirectoryPath:
    return configuration_container(root).child("CN", "Sites")


def subnets_container(root: DirectoryPath) -> DirectoryPath:
    return sites_container(root).child("CN", "Subnets")


@dataclass(frozen=True)
class Catalog:
    """
    Ordered, immutable catalog of entries.

    domain_root
    The resolved root every path in the catalog is built from.
    """

    domain_root: DirectoryPath
    entries: tuple[CatalogEntry, ...] = ()

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def by_kind(self, kind: EntryKind) -> list[CatalogEntry]:
        """Return entries of one kind, in catalog order."""
        return [e for e in self.entries if e.kind == kind]


def _split_relative(relative: str) -> list[str]:
    return [seg.strip() for seg in str(relative).split("/") if seg.strip()]


def join_relative(prefix: str, relative: str) -> str:
    """Join two relative OU paths, either of which may be empty."""
    return "/".join(_split_relative(prefix) + _split_relative(relative))


class CatalogBuilder:
    """
    Build a Catalog in dependency order.

    OU parents are written as slash separated paths read top down, relative
    to the domain root. "Domain Groups/Application Groups" is the OU
    Application Groups inside Domain Groups. An empty parent is the root.
    """

    def __init__(self, domain_root: DirectoryPath) -> None:
        self._root = domain_root
        self._entries: list[CatalogEntry] = []
        self._ous: dict[str, DirectoryPath] = {}
        self._groups: dict[str, SecurityGroup] = {}
        self._sites: set[str] = set()

    @property
    def domain_root(self) -> DirectoryPath:
        return self._root

    def resolve(self, relative: str) -> DirectoryPath:
        """Resolve a relative OU path to a DirectoryPath declared earlier."""
        segments = _split_relative(relative)
        if not segments:
            return self._root

        key = "/".join(segments).casefold()
        path = self._ous.get(key)
        if path is None:
            raise CatalogInvalid(f"parent OU {relative!r} must be declared before its children")
        return path

    def ou(
        self,
        name: str,
        parent: str = "",
        *,
        block_gpo_inheritance: bool | None = None,
        needed_immediately: bool = False,
    ) -> DirectoryPath:
        """Declare an OU and return its path."""
        if not name.strip():
            raise CatalogInvalid("OU name must not be empty")

        parent_path = self.resolve(parent)
        key = "/".join(_split_relative(parent) + [name.strip()]).casefold()
        if key in self._ous:
            raise CatalogInvalid(f"OU declared twice: {key}")

        node = OuNode(
            name=name.strip(),
            parent_path=parent_path,
            block_gpo_inheritance=block_gpo_inheritance,
            needed_immediately=needed_immediately,
        )
        self._ous[key] = node.path
        self._entries.append(node)
        return node.path

    def group(
        self,
        name: str,
        parent: str = "",
        *,
        scope: GroupScope = GroupScope.global_,
        category: GroupCategory = GroupCategory.security,
        description: str = "",
        member_of: Iterable[str] = (),
        needed_immediately: bool = False,
    ) -> SecurityGroup:
        if not name.strip():
            raise CatalogInvalid("group name must not be empty")
        name = name.strip()
        if name.casefold() in self._groups:
            raise CatalogInvalid(f"group declared twice: {name}")

        group = SecurityGroup(
            name=name,
            parent_path=self.resolve(parent),
            scope=scope,
            category=category,
            description=description,
            member_of_groups=frozenset(member_of),
            needed_immediately=needed_immediately,
        )
        self._groups[name.casefold()] = group
        self._entries.append(group)
        return group

    def site(self, name: str, default_name: str = "Default-First-Site-Name") -> Site:
        site = Site(name=name, parent_path=sites_container(self._root), default_name=default_name)
        self._sites.add(name.casefold())
        self._entries.append(site)
        return site

    def subnet(self, cidr: str, site_name: str) -> SiteSubnet:
        if site_name.casefold() not in self._sites:
            raise CatalogInvalid(f"site {site_name!r} must be declared before its subnets")
        subnet = SiteSubnet(cidr=cidr, site_name=site_name, parent_path=subnets_container(self._root))
        self._entries.append(subnet)
        return subnet

    def membership(self, group: str, member: str) -> GroupMembership:
        entry = GroupMembership(group=group, member=member)
        self._entries.append(entry)
        return entry

    def feature(self, name: str = "Recycle Bin Feature") -> ForestFeature:
        entry = ForestFeature(name=name)
        self._entries.append(entry)
        return entry

    def computers_container(self, target: str) -> ComputersContainer:
        """Redirect new computer accounts into a previously declared OU."""
        if not _split_relative(target):
            raise CatalogInvalid("computers container target must be an OU")
        entry = ComputersContainer(target_path=self.resolve(target))
        self._entries.append(entry)
        return entry

    def build(self) -> Catalog:
        """
        Freeze the catalog.

        member_of_groups references become GroupMembership entries appended
        after every declared entry, so the referenced groups are reconciled
        first regardless of the order groups were declared in.
        """
        derived: list[CatalogEntry] = []
        for group in self._groups.values():
            for parent_group in sorted(group.member_of_groups, key=str.casefold):
                derived.append(GroupMembership(group=parent_group, member=group.name))

        return Catalog(domain_root=self._root, entries=tuple(self._entries + derived))
