"""
In memory directory.

This directory is used for tests and local simulations.
It behaves like a small domain keyed by object name and distinguished name.

Features
- Implements both the facts and the mutation protocol
- Records every mutation call so idempotence can be asserted
- Can delay visibility of new objects to mimic replication lag
- Can inject lookup errors and mutation failures

Target keys
Injection maps are keyed by a lower case target key per operation:
create_ou uses the OU name, create_group and find_group use the group name,
create_subnet and find_subnet use the cidr, rename_object uses the new name,
find_site uses the site name, set_gpo_inheritance_blocked uses the dn,
redirect_computers_container uses the target dn, add_group_member uses
"group/member", enable_recycle_bin uses "recycle_bin".
"""

from __future__ import annotations

from dataclasses import dataclass, field

from directory_bootstrap.catalog.catalog import domain_root_from_fqdn, sites_container
from directory_bootstrap.core.errors import LookupFailed, MutationFailed
from directory_bootstrap.core.types import (
    DirectoryPath,
    HostAddress,
    HostInterface,
    OuNode,
    SecurityGroup,
    Site,
    SiteSubnet,
)
from directory_bootstrap.directory.base import (
    DirectoryFactsProvider,
    DirectoryMutationClient,
    HostFactsProvider,
)
from directory_bootstrap.network.host import select_primary_ipv4

NEVER = -1


@dataclass
class InMemoryDirectory(DirectoryFactsProvider, DirectoryMutationClient):
    """
    In memory directory.

    visibility_lag
    Target key to number of reads that still miss after the object is created.
    NEVER keeps the object invisible for the lifetime of the directory.

    lookup_failures
    Target key to number of reads that raise LookupFailed.

    mutation_failures
    Target key to error message. Matching mutations raise MutationFailed.

    default_site_name
    When set, a site with this name exists from the start, like a fresh forest.
    """

    domain_fqdn: str = "contoso.com"
    default_site_name: str | None = "Default-First-Site-Name"
    recycle_bin_enabled: bool = False

    visibility_lag: dict[str, int] = field(default_factory=dict)
    lookup_failures: dict[str, int] = field(default_factory=dict)
    mutation_failures: dict[str, str] = field(default_factory=dict)

    ous: dict[str, OuNode] = field(default_factory=dict)
    groups: dict[str, SecurityGroup] = field(default_factory=dict)
    sites: dict[str, Site] = field(default_factory=dict)
    subnets: dict[str, SiteSubnet] = field(default_factory=dict)
    members: dict[str, set[str]] = field(default_factory=dict)
    gpo_blocked: dict[str, bool] = field(default_factory=dict)
    computers_container: DirectoryPath | None = None

    calls: list[tuple[str, str]] = field(default_factory=list)
    _pending_reads: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.visibility_lag = {k.lower(): v for k, v in self.visibility_lag.items()}
        self.lookup_failures = {k.lower(): v for k, v in self.lookup_failures.items()}
        self.mutation_failures = {k.lower(): v for k, v in self.mutation_failures.items()}
        self.root = domain_root_from_fqdn(self.domain_fqdn)
        if self.computers_container is None:
            self.computers_container = self.root.child("CN", "Computers")
        if self.default_site_name and self.default_site_name.casefold() not in self.sites:
            self.add_site(self.default_site_name)

    # Seeding helpers used by tests to describe an existing directory.

    def add_ou(self, name: str, parent_path: DirectoryPath | None = None) -> OuNode:
        node = OuNode(name=name, parent_path=parent_path or self.root)
        self.ous[node.path.key()] = node
        return node

    def add_group(self, name: str, parent_path: DirectoryPath | None = None) -> SecurityGroup:
        group = SecurityGroup(name=name, parent_path=parent_path or self.root.child("CN", "Users"))
        self.groups[name.casefold()] = group
        self.members.setdefault(name.casefold(), set())
        return group

    def add_site(self, name: str) -> Site:
        site = Site(name=name, parent_path=sites_container(self.root))
        self.sites[name.casefold()] = site
        return site

    # Visibility and failure injection.

    def _visible(self, key: str) -> bool:
        key = key.lower()
        remaining = self._pending_reads.get(key, 0)
        if remaining == NEVER:
            return False
        if remaining > 0:
            self._pending_reads[key] = remaining - 1
            return False
        return True

    def _check_lookup(self, key: str) -> None:
        key = key.lower()
        remaining = self.lookup_failures.get(key, 0)
        if remaining > 0:
            self.lookup_failures[key] = remaining - 1
            raise LookupFailed(f"injected lookup failure for {key}")

    def _record(self, method: str, key: str) -> None:
        self.calls.append((method, key))
        message = self.mutation_failures.get(key.lower())
        if message is not None:
            raise MutationFailed(message)

    def _created(self, key: str) -> None:
        lag = self.visibility_lag.get(key.lower(), 0)
        if lag:
            self._pending_reads[key.lower()] = lag

    def _container_exists(self, path: DirectoryPath) -> bool:
        if path == self.root:
            return True
        if path.key() in self.ous:
            return True
        return path.components[0].upper().startswith("CN=") and path.is_under(self.root)

    # DirectoryFactsProvider

    def get_domain_fqdn(self) -> str:
        return self.domain_fqdn

    def find_organizational_unit(self, name: str, parent_path: DirectoryPath) -> OuNode | None:
        self._check_lookup(name)
        node = self.ous.get(parent_path.child("OU", name).key())
        if node is None or not self._visible(name):
            return None
        return node

    def find_group(self, name: str) -> SecurityGroup | None:
        self._check_lookup(name)
        group = self.groups.get(name.casefold())
        if group is None or not self._visible(name):
            return None
        return group

    def find_site(self, name: str) -> Site | None:
        self._check_lookup(name)
        site = self.sites.get(name.casefold())
        if site is None or not self._visible(name):
            return None
        return site

    def find_subnet(self, cidr: str) -> SiteSubnet | None:
        self._check_lookup(cidr)
        subnet = self.subnets.get(cidr)
        if subnet is None or not self._visible(cidr):
            return None
        return subnet

    def get_gpo_inheritance_blocked(self, dn: str) -> bool:
        self._check_lookup(dn)
        return self.gpo_blocked.get(dn.casefold(), False)

    def get_computers_container(self) -> DirectoryPath:
        assert self.computers_container is not None
        return self.computers_container

    def is_recycle_bin_enabled(self) -> bool:
        self._check_lookup("recycle_bin")
        return self.recycle_bin_enabled

    def get_group_members(self, name: str) -> set[str]:
        self._check_lookup(name)
        if name.casefold() not in self.groups:
            raise LookupFailed(f"group not found: {name}")
        return set(self.members.get(name.casefold(), set()))

    # DirectoryMutationClient

    def create_ou(self, name: str, parent_path: DirectoryPath) -> None:
        self._record("create_ou", name)
        if not self._container_exists(parent_path):
            raise MutationFailed(f"parent container not found: {parent_path.dn}")
        node = OuNode(name=name, parent_path=parent_path)
        if node.path.key() in self.ous:
            raise MutationFailed(f"object already exists: {node.path.dn}")
        self.ous[node.path.key()] = node
        self._created(name)

    def create_group(self, spec: SecurityGroup) -> None:
        self._record("create_group", spec.name)
        if not self._container_exists(spec.parent_path):
            raise MutationFailed(f"parent container not found: {spec.parent_path.dn}")
        if spec.name.casefold() in self.groups:
            raise MutationFailed(f"group already exists: {spec.name}")
        self.groups[spec.name.casefold()] = spec
        self.members.setdefault(spec.name.casefold(), set())
        self._created(spec.name)

    def rename_object(self, dn: str, new_name: str) -> None:
        self._record("rename_object", new_name)
        target = DirectoryPath.from_dn(dn)
        for key, site in list(self.sites.items()):
            if site.path == target:
                del self.sites[key]
                self.add_site(new_name)
                self._created(new_name)
                return
        raise MutationFailed(f"object not found: {dn}")

    def create_subnet(self, cidr: str, site_name: str) -> None:
        self._record("create_subnet", cidr)
        if site_name.casefold() not in self.sites:
            raise MutationFailed(f"site not found: {site_name}")
        if cidr in self.subnets:
            raise MutationFailed(f"subnet already exists: {cidr}")
        self.subnets[cidr] = SiteSubnet(
            cidr=cidr,
            site_name=site_name,
            parent_path=sites_container(self.root).child("CN", "Subnets"),
        )
        self._created(cidr)

    def set_gpo_inheritance_blocked(self, dn: str, blocked: bool) -> None:
        self._record("set_gpo_inheritance_blocked", dn)
        if DirectoryPath.from_dn(dn).key() not in self.ous:
            raise MutationFailed(f"container not found: {dn}")
        self.gpo_blocked[dn.casefold()] = blocked

    def redirect_computers_container(self, path: DirectoryPath) -> None:
        self._record("redirect_computers_container", path.dn)
        if path.key() not in self.ous:
            raise MutationFailed(f"target container not found: {path.dn}")
        self.computers_container = path

    def add_group_member(self, group: str, member: str) -> None:
        self._record("add_group_member", f"{group}/{member}")
        if group.casefold() not in self.groups:
            raise MutationFailed(f"group not found: {group}")
        existing = self.members.setdefault(group.casefold(), set())
        if member.casefold() in {m.casefold() for m in existing}:
            return
        existing.add(member)

    def enable_recycle_bin(self) -> None:
        self._record("enable_recycle_bin", "recycle_bin")
        self.recycle_bin_enabled = True


@dataclass
class StaticHostFacts(HostFactsProvider):
    """
    Host facts from fixed values.

    interfaces are evaluated with the same selection rule as a real host.
    """

    interfaces: list[HostInterface]
    computer_name: str = "DC01"
    domain_member: bool = True

    def get_primary_ipv4(self) -> HostAddress:
        return select_primary_ipv4(self.interfaces)

    def get_computer_name(self) -> str:
        return self.computer_name

    def is_domain_member(self) -> bool:
        return self.domain_member
