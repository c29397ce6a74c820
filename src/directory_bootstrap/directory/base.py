"""
Directory interfaces.

Goal
Define stable interfaces for reading and changing the directory without
binding the engine to a specific backend.

Design notes
Reads and writes are separate protocols. A real backend usually implements
both on one object, but tests can swap either side independently.

Facts providers return None for objects that do not exist.
They raise LookupFailed when the question itself could not be answered.
Mutation clients raise MutationFailed when a change was rejected.
"""

from __future__ import annotations

from typing import Protocol

from directory_bootstrap.core.types import (
    DirectoryPath,
    HostAddress,
    OuNode,
    SecurityGroup,
    Site,
    SiteSubnet,
)


class DirectoryFactsProvider(Protocol):
    """
    Read only queries against the directory.

    find_organizational_unit
    Looks for an OU named name directly under parent_path.

    get_group_members
    Returns member account names. Nested members are not expanded.
    """

    def get_domain_fqdn(self) -> str:
        """Return the DNS name of the current domain."""

    def find_organizational_unit(self, name: str, parent_path: DirectoryPath) -> OuNode | None:
        """Return the OU if present."""

    def find_group(self, name: str) -> SecurityGroup | None:
        """Return the group if present anywhere in the domain."""

    def find_site(self, name: str) -> Site | None:
        """Return the replication site if present."""

    def find_subnet(self, cidr: str) -> SiteSubnet | None:
        """Return the replication subnet if present."""

    def get_gpo_inheritance_blocked(self, dn: str) -> bool:
        """Return True if GPO inheritance is blocked on the container."""

    def get_computers_container(self) -> DirectoryPath:
        """Return the container new computer accounts are created in."""

    def is_recycle_bin_enabled(self) -> bool:
        """Return True if the forest recycle bin is enabled."""

    def get_group_members(self, name: str) -> set[str]:
        """Return direct member names of a group."""


class DirectoryMutationClient(Protocol):
    """
    Changes against the directory.

    Every method either completes or raises MutationFailed.
    Callers must not assume a change is immediately visible to reads.
    """

    def create_ou(self, name: str, parent_path: DirectoryPath) -> None:
        """Create an OU under parent_path."""

    def create_group(self, spec: SecurityGroup) -> None:
        """Create a group from its declaration."""

    def rename_object(self, dn: str, new_name: str) -> None:
        """Rename the object at dn."""

    def create_subnet(self, cidr: str, site_name: str) -> None:
        """Register a subnet and attach it to a site."""

    def set_gpo_inheritance_blocked(self, dn: str, blocked: bool) -> None:
        """Set or clear the GPO inheritance block flag on a container."""

    def redirect_computers_container(self, path: DirectoryPath) -> None:
        """Make path the default container for new computer accounts."""

    def add_group_member(self, group: str, member: str) -> None:
        """Add member to group."""

    def enable_recycle_bin(self) -> None:
        """Enable the forest recycle bin."""


class HostFactsProvider(Protocol):
    """
    Facts about the local machine running the bootstrap.
    """

    def get_primary_ipv4(self) -> HostAddress:
        """Return the primary IPv4 address and prefix length."""

    def get_computer_name(self) -> str:
        """Return the NetBIOS computer name."""

    def is_domain_member(self) -> bool:
        """Return True if the host is joined to a domain."""
