"""
Core types.

This file defines the shared data structures used across the engine.

Important design choice
We keep these types backend neutral.

Backend neutral means:
We describe desired directory objects by name, parent path, and attributes,
not by cmdlet invocations or LDAP operations.

The facts provider and mutation client may be a PowerShell session, an in
memory directory, or anything else that can answer the same questions.

Dependency keys
Every catalog entry can name the key it provides and the keys it depends on.
The reconciler uses these keys to skip entries whose prerequisites failed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

_DN_SPECIAL = ',+"\\<>;='


def _escape_rdn_value(value: str) -> str:
    """Escape an RDN value so it can be joined into a distinguished name."""
    out: list[str] = []
    for idx, ch in enumerate(value):
        if ch in _DN_SPECIAL:
            out.append("\\" + ch)
        elif idx == 0 and ch in "# ":
            out.append("\\" + ch)
        elif idx == len(value) - 1 and ch == " ":
            out.append("\\" + ch)
        else:
            out.append(ch)
    return "".join(out)


def _unescape_rdn_value(value: str) -> str:
    out: list[str] = []
    escaped = False
    for ch in value:
        if escaped:
            out.append(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        else:
            out.append(ch)
    return "".join(out)


def _split_dn(dn: str) -> list[str]:
    """Split a DN on unescaped commas."""
    parts: list[str] = []
    current: list[str] = []
    escaped = False
    for ch in dn:
        if escaped:
            current.append(ch)
            escaped = False
            continue
        if ch == "\\":
            current.append(ch)
            escaped = True
            continue
        if ch == ",":
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    parts.append("".join(current).strip())
    return [p for p in parts if p]


@dataclass(frozen=True, eq=False)
class DirectoryPath:
    """
    An ordered sequence of distinguished name components.

    components
    Leaf first, root last, exactly as a DN reads left to right.
    Example: ("OU=Application Groups", "OU=Domain Groups", "DC=contoso", "DC=com")

    Equality and hashing are case insensitive, matching directory semantics.
    """

    components: tuple[str, ...] = ()

    @classmethod
    def from_dn(cls, dn: str) -> DirectoryPath:
        """Parse a DN string. Escaped commas inside values are preserved."""
        return cls(tuple(_split_dn(dn)))

    @classmethod
    def domain_root(cls, labels: list[str] | tuple[str, ...]) -> DirectoryPath:
        """Build a DC= path from DNS labels, for example ["contoso", "com"]."""
        return cls(tuple(f"DC={_escape_rdn_value(label)}" for label in labels))

    def child(self, attr: str, name: str) -> DirectoryPath:
        """Return the path of a child object, for example child("OU", "Servers")."""
        return DirectoryPath((f"{attr}={_escape_rdn_value(name)}",) + self.components)

    @property
    def dn(self) -> str:
        return ",".join(self.components)

    @property
    def parent(self) -> DirectoryPath | None:
        if not self.components:
            return None
        return DirectoryPath(self.components[1:])

    @property
    def name(self) -> str:
        """Unescaped value of the leaf RDN."""
        if not self.components:
            return ""
        _, _, value = self.components[0].partition("=")
        return _unescape_rdn_value(value)

    def key(self) -> str:
        return self.dn.casefold()

    def is_under(self, other: DirectoryPath) -> bool:
        """Return True if other is a strict ancestor of this path."""
        n = len(other.components)
        if n >= len(self.components):
            return False
        return DirectoryPath(self.components[-n:] if n else ()).key() == other.key()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DirectoryPath):
            return NotImplemented
        return self.key() == other.key()

    def __hash__(self) -> int:
        return hash(self.key())

    def __str__(self) -> str:
        return self.dn


def path_key(path: DirectoryPath) -> str:
    return f"path:{path.key()}"


def group_key(name: str) -> str:
    return f"group:{name.casefold()}"


def site_key(name: str) -> str:
    return f"site:{name.casefold()}"


class EntryKind(StrEnum):
    """
    Catalog entry kinds.

    forest_feature and computers_container are only used by the forest
    bootstrap catalog, but they are reconciled by the same engine.
    """

    ou = "ou"
    group = "group"
    site = "site"
    subnet = "subnet"
    group_membership = "group_membership"
    forest_feature = "forest_feature"
    computers_container = "computers_container"


class GroupScope(StrEnum):
    domain_local = "domain_local"
    global_ = "global"
    universal = "universal"


class GroupCategory(StrEnum):
    security = "security"
    distribution = "distribution"


@dataclass(frozen=True)
class OuNode:
    """
    Organizational unit.

    block_gpo_inheritance
    None means the engine does not manage the flag.
    True or False is asserted after the OU is present.

    needed_immediately
    When True the engine polls after creation until the OU is visible,
    because a dependent operation is issued right after it.
    """

    kind: ClassVar[EntryKind] = EntryKind.ou

    name: str
    parent_path: DirectoryPath
    block_gpo_inheritance: bool | None = None
    needed_immediately: bool = False

    @property
    def path(self) -> DirectoryPath:
        return self.parent_path.child("OU", self.name)

    @property
    def identity(self) -> str:
        return self.path.dn

    def provides(self) -> str | None:
        return path_key(self.path)

    def depends_on(self) -> tuple[str, ...]:
        return (path_key(self.parent_path),)


@dataclass(frozen=True)
class SecurityGroup:
    """
    Security or distribution group.

    member_of_groups
    Names of groups this group must be a member of. The catalog turns each
    reference into a GroupMembership entry placed after every group.
    """

    kind: ClassVar[EntryKind] = EntryKind.group

    name: str
    parent_path: DirectoryPath
    scope: GroupScope = GroupScope.global_
    category: GroupCategory = GroupCategory.security
    description: str = ""
    member_of_groups: frozenset[str] = field(default_factory=frozenset)
    needed_immediately: bool = False

    @property
    def path(self) -> DirectoryPath:
        return self.parent_path.child("CN", self.name)

    @property
    def identity(self) -> str:
        return self.name

    def provides(self) -> str | None:
        return group_key(self.name)

    def depends_on(self) -> tuple[str, ...]:
        return (path_key(self.parent_path),)


@dataclass(frozen=True)
class Site:
    """
    Replication site.

    A site is never created from scratch. It is produced by renaming the
    implementation default site when that still exists.
    """

    kind: ClassVar[EntryKind] = EntryKind.site

    name: str
    parent_path: DirectoryPath
    default_name: str = "Default-First-Site-Name"
    needed_immediately: bool = False

    @property
    def path(self) -> DirectoryPath:
        return self.parent_path.child("CN", self.name)

    @property
    def default_path(self) -> DirectoryPath:
        return self.parent_path.child("CN", self.default_name)

    @property
    def identity(self) -> str:
        return self.name

    def provides(self) -> str | None:
        return site_key(self.name)

    def depends_on(self) -> tuple[str, ...]:
        return ()


@dataclass(frozen=True)
class SiteSubnet:
    """Subnet in CIDR notation associated with a site."""

    kind: ClassVar[EntryKind] = EntryKind.subnet

    cidr: str
    site_name: str
    parent_path: DirectoryPath = field(default_factory=DirectoryPath)
    needed_immediately: bool = False

    @property
    def identity(self) -> str:
        return self.cidr

    def provides(self) -> str | None:
        return f"subnet:{self.cidr}"

    def depends_on(self) -> tuple[str, ...]:
        return (site_key(self.site_name),)


@dataclass(frozen=True)
class GroupMembership:
    """member must be a member of group. member may be a group or an account name."""

    kind: ClassVar[EntryKind] = EntryKind.group_membership

    group: str
    member: str
    needed_immediately: bool = False

    @property
    def identity(self) -> str:
        return f"{self.member} -> {self.group}"

    def provides(self) -> str | None:
        return None

    def depends_on(self) -> tuple[str, ...]:
        return (group_key(self.group), group_key(self.member))


@dataclass(frozen=True)
class ForestFeature:
    """Forest wide optional feature, enabled once and never disabled."""

    kind: ClassVar[EntryKind] = EntryKind.forest_feature

    name: str = "Recycle Bin Feature"
    needed_immediately: bool = False

    @property
    def identity(self) -> str:
        return self.name

    def provides(self) -> str | None:
        return f"feature:{self.name.casefold()}"

    def depends_on(self) -> tuple[str, ...]:
        return ()


@dataclass(frozen=True)
class ComputersContainer:
    """Default container for newly joined computers, redirected to target_path."""

    kind: ClassVar[EntryKind] = EntryKind.computers_container

    target_path: DirectoryPath
    needed_immediately: bool = False

    @property
    def identity(self) -> str:
        return self.target_path.dn

    def provides(self) -> str | None:
        return None

    def depends_on(self) -> tuple[str, ...]:
        return (path_key(self.target_path),)


CatalogEntry = (
    OuNode
    | SecurityGroup
    | Site
    | SiteSubnet
    | GroupMembership
    | ForestFeature
    | ComputersContainer
)


class EntryState(StrEnum):
    """
    Per entry state machine.

    pending -> checked -> already_exists
    pending -> checked -> creating -> created
    pending -> checked -> creating -> pending_visibility -> confirmed or timed_out
    any non terminal state -> failed or skipped

    The reconciler never moves an entry backward.
    """

    pending = "pending"
    checked = "checked"
    creating = "creating"
    pending_visibility = "pending_visibility"
    already_exists = "already_exists"
    created = "created"
    confirmed = "confirmed"
    timed_out = "timed_out"
    failed = "failed"
    skipped = "skipped"
    planned = "planned"


class EntryOutcome(StrEnum):
    """
    Terminal outcome reported per catalog entry.

    planned is only produced in dry run mode, for entries that would be created.
    """

    already_exists = "already_exists"
    created = "created"
    confirmed = "confirmed"
    failed = "failed"
    timed_out = "timed_out"
    skipped = "skipped"
    planned = "planned"


OK_OUTCOMES = frozenset(
    {
        EntryOutcome.already_exists,
        EntryOutcome.created,
        EntryOutcome.confirmed,
        EntryOutcome.planned,
    }
)


class ErrorKind(StrEnum):
    lookup_failure = "lookup_failure"
    mutation_failure = "mutation_failure"
    visibility_timeout = "visibility_timeout"
    dependency_failed = "dependency_failed"
    cancelled = "cancelled"


@dataclass(frozen=True)
class ReconciliationResult:
    """
    Outcome of reconciling one catalog entry.

    reason
    Short human readable explanation, empty for plain success.

    error_kind
    Set for every failed, timed out, or skipped entry.

    attempts
    Number of visibility checks made by the poll loop, 0 when no poll ran.

    lookup_error
    Message of a failed existence query. The entry was treated as absent.
    """

    kind: EntryKind
    identity: str
    outcome: EntryOutcome
    reason: str = ""
    error_kind: ErrorKind | None = None
    attempts: int = 0
    lookup_error: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome in OK_OUTCOMES


class LookupStatus(StrEnum):
    found = "found"
    absent = "absent"
    error = "error"


@dataclass(frozen=True)
class Lookup:
    """
    Typed result of a facts query.

    The reconciler decides as if error meant absent, but keeps the message so
    absence and failure are never conflated in reports.
    """

    status: LookupStatus
    value: Any = None
    error: str = ""

    @property
    def found(self) -> bool:
        return self.status == LookupStatus.found


class PrefixOrigin(StrEnum):
    dhcp = "dhcp"
    manual = "manual"
    well_known = "well_known"
    link_layer = "link_layer"
    router_advertisement = "router_advertisement"
    other = "other"


@dataclass(frozen=True)
class HostAddress:
    """Primary IPv4 address of the local host and its prefix length."""

    address: str
    prefix_length: int


@dataclass(frozen=True)
class HostInterface:
    """
    One IPv4 address binding reported by the host.

    alias is the interface name, such as Ethernet0 or Loopback Pseudo-Interface 1.
    origin is how the prefix was assigned.
    """

    alias: str
    address: str
    prefix_length: int
    origin: PrefixOrigin = PrefixOrigin.other
