"""
Forest bootstrap catalog.

This is the table a brand new environment is converged to.

Sequence
1) forest recycle bin
2) default site renamed to the declared site name
3) one subnet derived from the host address, attached to that site
4) OU tree, optionally nested under an organization root OU
5) groups inside the OU tree
6) staging OU for new computers, GPO inheritance blocked, needed immediately
7) computers container redirected to the staging OU
8) domain admin account added to the admin groups

The OU and group tables below are the defaults. An operator can replace
them with a JSON catalog file, see catalog.static_source.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from directory_bootstrap.catalog.catalog import Catalog, CatalogBuilder, join_relative
from directory_bootstrap.core.types import DirectoryPath, GroupScope

DEFAULT_OUS: tuple[tuple[str, str], ...] = (
    ("Domain Groups", ""),
    ("Application Groups", "Domain Groups"),
    ("Role Groups", "Domain Groups"),
    ("Resource Groups", "Domain Groups"),
    ("Servers", ""),
    ("Member Servers", "Servers"),
    ("Workstations", ""),
    ("Service Accounts", ""),
    ("Admin Accounts", ""),
)

# name, parent OU, scope, description, member of
DEFAULT_GROUPS: tuple[tuple[str, str, GroupScope, str, tuple[str, ...]], ...] = (
    (
        "SVR-Allow-Logon-As-A-Service",
        "Domain Groups/Application Groups",
        GroupScope.global_,
        "Accounts granted log on as a service on member servers",
        (),
    ),
    (
        "SVR-Local-Administrators",
        "Domain Groups/Role Groups",
        GroupScope.global_,
        "Local administrators on member servers",
        (),
    ),
    (
        "SVR-Remote-Desktop-Users",
        "Domain Groups/Role Groups",
        GroupScope.global_,
        "Remote desktop users on member servers",
        (),
    ),
    (
        "WKS-Local-Administrators",
        "Domain Groups/Role Groups",
        GroupScope.global_,
        "Local administrators on workstations",
        (),
    ),
    (
        "Tier0-Admins",
        "Domain Groups/Role Groups",
        GroupScope.global_,
        "Administrators of domain controllers and the directory",
        ("SVR-Local-Administrators", "WKS-Local-Administrators"),
    ),
    (
        "File-Share-Readers",
        "Domain Groups/Resource Groups",
        GroupScope.domain_local,
        "Read access to departmental file shares",
        (),
    ),
)


@dataclass(frozen=True)
class BootstrapSettings:
    """
    Bootstrap settings.

    domain_admin_user
    Account added to every group in admin_groups.

    site_name
    Name the default site is renamed to.

    default_site_name
    Name a fresh forest gives its first site.

    org_root
    Optional OU every default OU is nested under. Empty means the domain root.

    staging_ou
    OU new computer accounts land in. Blocked from GPO inheritance.

    admin_groups
    Groups the domain admin account must be a member of.
    """

    domain_admin_user: str
    site_name: str = "Primary-Site"
    default_site_name: str = "Default-First-Site-Name"
    org_root: str = ""
    staging_ou: str = "Staging"
    admin_groups: tuple[str, ...] = ("Tier0-Admins",)


class CatalogTables(Protocol):
    """Anything that can declare OU and group tables into a builder."""

    def apply(self, builder: CatalogBuilder, parent: str = "") -> None:
        """Declare entries into builder, nested under parent."""


@dataclass(frozen=True)
class DefaultTables(CatalogTables):
    """The built in OU and group tables."""

    def apply(self, builder: CatalogBuilder, parent: str = "") -> None:
        for name, ou_parent in DEFAULT_OUS:
            builder.ou(name, join_relative(parent, ou_parent))

        for name, group_parent, scope, description, member_of in DEFAULT_GROUPS:
            builder.group(
                name,
                join_relative(parent, group_parent),
                scope=scope,
                description=description,
                member_of=member_of,
            )


def build_bootstrap_catalog(
    domain_root: DirectoryPath,
    settings: BootstrapSettings,
    subnet_cidr: str | None,
    tables: CatalogTables | None = None,
) -> Catalog:
    """
    Compose the forest bootstrap catalog.

    tables defaults to DefaultTables. The staging OU and the computers
    container redirect are always added, under org_root when set.
    subnet_cidr None leaves the subnet out, used when derivation failed.
    """

    builder = CatalogBuilder(domain_root)

    builder.feature("Recycle Bin Feature")
    builder.site(settings.site_name, default_name=settings.default_site_name)
    if subnet_cidr is not None:
        builder.subnet(subnet_cidr, settings.site_name)

    segments = [seg.strip() for seg in settings.org_root.split("/") if seg.strip()]
    for idx, segment in enumerate(segments):
        builder.ou(segment, "/".join(segments[:idx]))
    root = "/".join(segments)

    (tables or DefaultTables()).apply(builder, root)

    staging = join_relative(root, settings.staging_ou)
    builder.ou(
        settings.staging_ou,
        root,
        block_gpo_inheritance=True,
        needed_immediately=True,
    )
    builder.computers_container(staging)

    for group in settings.admin_groups:
        builder.membership(group, settings.domain_admin_user)

    return builder.build()
