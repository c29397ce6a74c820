"""
PowerShell directory backend.

This backend drives the ActiveDirectory, GroupPolicy, and NetTCPIP modules
through powershell.exe, the same tooling an operator would use by hand.

Important
This file does not speak LDAP. It builds cmdlet scripts and hands them to a
small CommandRunner interface, so tests can assert on the generated scripts
without a domain controller.

Error mapping
A query script that exits non zero raises LookupFailed.
A mutation script that exits non zero raises MutationFailed.
Queries for a single object filter with Where-Object or an LDAP filter
instead of -Identity, so "not found" is an empty result and not an error.
"""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass, field
from typing import Any, Protocol

from directory_bootstrap.core.errors import LookupFailed, MutationFailed
from directory_bootstrap.core.types import (
    DirectoryPath,
    GroupCategory,
    GroupScope,
    HostAddress,
    HostInterface,
    OuNode,
    PrefixOrigin,
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

_SCOPE_TO_PS = {
    GroupScope.domain_local: "DomainLocal",
    GroupScope.global_: "Global",
    GroupScope.universal: "Universal",
}
_SCOPE_FROM_PS = {v.lower(): k for k, v in _SCOPE_TO_PS.items()}

_CATEGORY_TO_PS = {
    GroupCategory.security: "Security",
    GroupCategory.distribution: "Distribution",
}
_CATEGORY_FROM_PS = {v.lower(): k for k, v in _CATEGORY_TO_PS.items()}

_ORIGIN_FROM_PS = {
    "dhcp": PrefixOrigin.dhcp,
    "manual": PrefixOrigin.manual,
    "wellknown": PrefixOrigin.well_known,
    "linklayeraddress": PrefixOrigin.link_layer,
    "routeradvertisement": PrefixOrigin.router_advertisement,
}


def ps_quote(value: str) -> str:
    """Quote a value as a PowerShell single quoted string literal."""
    return "'" + (value or "").replace("'", "''") + "'"


def escape_ldap_filter(value: str) -> str:
    """Escape a value for use inside an LDAP filter."""
    res = value or ""
    res = res.replace("\\", "\\5c")
    res = res.replace("*", "\\2a")
    res = res.replace("(", "\\28")
    res = res.replace(")", "\\29")
    res = res.replace("\x00", "\\00")
    return res


def parse_ps_json(raw: str) -> list[dict[str, Any]]:
    """
    Parse ConvertTo-Json output.

    PowerShell emits a bare object for one result and an array for several.
    Empty output means no results.
    """
    text = (raw or "").strip()
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise LookupFailed(f"unparseable PowerShell output: {text[:200]}") from exc
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list):
        return [d for d in data if isinstance(d, dict)]
    raise LookupFailed(f"unexpected PowerShell output shape: {type(data).__name__}")


def _parse_bool(raw: str) -> bool:
    text = (raw or "").strip().lower()
    if text in {"true", "1"}:
        return True
    if text in {"false", "0", ""}:
        return False
    raise LookupFailed(f"expected a boolean from PowerShell, got {raw!r}")


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str
    stderr: str

    def first_error_line(self) -> str:
        for line in (self.stderr or self.stdout or "").splitlines():
            if line.strip():
                return line.strip()
        return f"exit code {self.returncode}"


class CommandRunner(Protocol):
    """
    Run one PowerShell script and return its result.

    Implementations must not raise for a failing script. They report it
    through a non zero return code.
    """

    def run(self, script: str) -> CommandResult:
        """Execute script and capture its output."""


@dataclass
class SubprocessPowerShellRunner(CommandRunner):
    """
    Default runner using powershell.exe.

    server
    Optional domain controller every AD cmdlet is pinned to.
    Pinning all reads and writes to one controller shortens replication lag
    but does not remove it for cmdlets that resolve the target themselves.
    """

    executable: str = "powershell"
    timeout_seconds: int = 120
    server: str | None = None

    def run(self, script: str) -> CommandResult:
        prefix = "$ErrorActionPreference = 'Stop'; "
        prefix += "$OutputEncoding = [Console]::OutputEncoding = [Text.UTF8Encoding]::UTF8; "
        if self.server:
            prefix += f"$PSDefaultParameterValues['*-AD*:Server'] = {ps_quote(self.server)}; "

        cmd = [
            self.executable,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-Command",
            prefix + script,
        ]
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout_seconds,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            return CommandResult(returncode=-1, stdout="", stderr=str(exc))

        return CommandResult(returncode=proc.returncode, stdout=proc.stdout or "", stderr=proc.stderr or "")


@dataclass
class _PowerShellSession:
    runner: CommandRunner = field(default_factory=SubprocessPowerShellRunner)
    modules: tuple[str, ...] = ()

    def _script(self, body: str) -> str:
        imports = "".join(f"Import-Module {m}; " for m in self.modules)
        return imports + body

    def _query(self, body: str) -> str:
        result = self.runner.run(self._script(body))
        if result.returncode != 0:
            raise LookupFailed(result.first_error_line())
        return result.stdout.strip()

    def _query_json(self, body: str) -> list[dict[str, Any]]:
        return parse_ps_json(self._query(f"{body} | ConvertTo-Json -Depth 4 -Compress"))

    def _mutate(self, body: str) -> None:
        result = self.runner.run(self._script(body))
        if result.returncode != 0:
            raise MutationFailed(result.first_error_line())


@dataclass
class PowerShellDirectory(_PowerShellSession, DirectoryFactsProvider, DirectoryMutationClient):
    """
    Directory facts and mutations through the ActiveDirectory module.

    runner
    Executes the generated scripts. Swap it for a fake in tests.
    """

    modules: tuple[str, ...] = ("ActiveDirectory",)

    # DirectoryFactsProvider

    def get_domain_fqdn(self) -> str:
        fqdn = self._query("(Get-ADDomain).DNSRoot")
        if not fqdn:
            raise LookupFailed("Get-ADDomain returned no DNSRoot")
        return fqdn

    def find_organizational_unit(self, name: str, parent_path: DirectoryPath) -> OuNode | None:
        ldap = ps_quote(f"(name={escape_ldap_filter(name)})")
        items = self._query_json(
            f"Get-ADOrganizationalUnit -LDAPFilter {ldap} -SearchBase {ps_quote(parent_path.dn)} "
            "-SearchScope OneLevel | Select-Object Name, DistinguishedName"
        )
        if not items:
            return None
        return OuNode(name=str(items[0].get("Name", name)), parent_path=parent_path)

    def find_group(self, name: str) -> SecurityGroup | None:
        ldap = ps_quote(f"(sAMAccountName={escape_ldap_filter(name)})")
        items = self._query_json(
            f"Get-ADGroup -LDAPFilter {ldap} -Properties Description | Select-Object Name, "
            "DistinguishedName, Description, "
            "@{Name='GroupScope';Expression={[string]$_.GroupScope}}, "
            "@{Name='GroupCategory';Expression={[string]$_.GroupCategory}}"
        )
        if not items:
            return None

        obj = items[0]
        dn = DirectoryPath.from_dn(str(obj.get("DistinguishedName", "")))
        return SecurityGroup(
            name=str(obj.get("Name", name)),
            parent_path=dn.parent or DirectoryPath(),
            scope=_SCOPE_FROM_PS.get(str(obj.get("GroupScope", "")).lower(), GroupScope.global_),
            category=_CATEGORY_FROM_PS.get(
                str(obj.get("GroupCategory", "")).lower(),
                GroupCategory.security,
            ),
            description=str(obj.get("Description") or ""),
        )

    def find_site(self, name: str) -> Site | None:
        items = self._query_json(
            f"Get-ADReplicationSite -Filter * | Where-Object {{ $_.Name -eq {ps_quote(name)} }} "
            "| Select-Object Name, DistinguishedName"
        )
        if not items:
            return None
        dn = DirectoryPath.from_dn(str(items[0].get("DistinguishedName", "")))
        return Site(name=str(items[0].get("Name", name)), parent_path=dn.parent or DirectoryPath())

    def find_subnet(self, cidr: str) -> SiteSubnet | None:
        items = self._query_json(
            f"Get-ADReplicationSubnet -Filter * | Where-Object {{ $_.Name -eq {ps_quote(cidr)} }} "
            "| Select-Object Name, DistinguishedName, @{Name='Site';Expression={[string]$_.Site}}"
        )
        if not items:
            return None
        dn = DirectoryPath.from_dn(str(items[0].get("DistinguishedName", "")))
        site = DirectoryPath.from_dn(str(items[0].get("Site") or ""))
        return SiteSubnet(cidr=cidr, site_name=site.name, parent_path=dn.parent or DirectoryPath())

    def get_gpo_inheritance_blocked(self, dn: str) -> bool:
        return _parse_bool(
            self._query(f"Import-Module GroupPolicy; (Get-GPInheritance -Target {ps_quote(dn)}).GpoInheritanceBlocked")
        )

    def get_computers_container(self) -> DirectoryPath:
        dn = self._query("(Get-ADDomain).ComputersContainer")
        if not dn:
            raise LookupFailed("Get-ADDomain returned no ComputersContainer")
        return DirectoryPath.from_dn(dn)

    def is_recycle_bin_enabled(self) -> bool:
        return _parse_bool(
            self._query(
                "[bool]((Get-ADOptionalFeature -Filter * | Where-Object "
                "{ $_.Name -eq 'Recycle Bin Feature' }).EnabledScopes.Count)"
            )
        )

    def get_group_members(self, name: str) -> set[str]:
        items = self._query_json(
            f"Get-ADGroupMember -Identity {ps_quote(name)} | Select-Object SamAccountName, Name"
        )
        return {str(i.get("SamAccountName") or i.get("Name")) for i in items}

    # DirectoryMutationClient

    def create_ou(self, name: str, parent_path: DirectoryPath) -> None:
        self._mutate(
            f"New-ADOrganizationalUnit -Name {ps_quote(name)} -Path {ps_quote(parent_path.dn)} "
            "-ProtectedFromAccidentalDeletion $true"
        )

    def create_group(self, spec: SecurityGroup) -> None:
        script = (
            f"New-ADGroup -Name {ps_quote(spec.name)} -SamAccountName {ps_quote(spec.name)} "
            f"-GroupScope {_SCOPE_TO_PS[spec.scope]} -GroupCategory {_CATEGORY_TO_PS[spec.category]} "
            f"-Path {ps_quote(spec.parent_path.dn)}"
        )
        if spec.description:
            script += f" -Description {ps_quote(spec.description)}"
        self._mutate(script)

    def rename_object(self, dn: str, new_name: str) -> None:
        self._mutate(f"Rename-ADObject -Identity {ps_quote(dn)} -NewName {ps_quote(new_name)}")

    def create_subnet(self, cidr: str, site_name: str) -> None:
        self._mutate(f"New-ADReplicationSubnet -Name {ps_quote(cidr)} -Site {ps_quote(site_name)}")

    def set_gpo_inheritance_blocked(self, dn: str, blocked: bool) -> None:
        flag = "Yes" if blocked else "No"
        self._mutate(
            f"Import-Module GroupPolicy; Set-GPInheritance -Target {ps_quote(dn)} -IsBlocked {flag} | Out-Null"
        )

    def redirect_computers_container(self, path: DirectoryPath) -> None:
        self._mutate(f"redircmp.exe {ps_quote(path.dn)}; exit $LASTEXITCODE")

    def add_group_member(self, group: str, member: str) -> None:
        self._mutate(f"Add-ADGroupMember -Identity {ps_quote(group)} -Members {ps_quote(member)}")

    def enable_recycle_bin(self) -> None:
        self._mutate(
            "Enable-ADOptionalFeature -Identity 'Recycle Bin Feature' "
            "-Scope ForestOrConfigurationSet -Target (Get-ADForest).Name -Confirm:$false"
        )


@dataclass
class PowerShellHostFacts(_PowerShellSession, HostFactsProvider):
    """Local host facts through NetTCPIP and CIM."""

    def list_ipv4_interfaces(self) -> list[HostInterface]:
        items = self._query_json(
            "Get-NetIPAddress -AddressFamily IPv4 | Select-Object InterfaceAlias, IPAddress, "
            "PrefixLength, @{Name='PrefixOrigin';Expression={[string]$_.PrefixOrigin}}"
        )
        interfaces: list[HostInterface] = []
        for obj in items:
            try:
                prefix_length = int(obj.get("PrefixLength", -1))
            except (TypeError, ValueError):
                continue
            interfaces.append(
                HostInterface(
                    alias=str(obj.get("InterfaceAlias", "")),
                    address=str(obj.get("IPAddress", "")),
                    prefix_length=prefix_length,
                    origin=_ORIGIN_FROM_PS.get(str(obj.get("PrefixOrigin", "")).lower(), PrefixOrigin.other),
                )
            )
        return interfaces

    def get_primary_ipv4(self) -> HostAddress:
        return select_primary_ipv4(self.list_ipv4_interfaces())

    def get_computer_name(self) -> str:
        return self._query("$env:COMPUTERNAME")

    def is_domain_member(self) -> bool:
        return _parse_bool(self._query("(Get-CimInstance -ClassName Win32_ComputerSystem).PartOfDomain"))
