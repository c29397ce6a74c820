"""
Primary interface selection.

The host may report several IPv4 bindings: loopback, link local APIPA
addresses, tunnel adapters, and real adapters. Only one of them should be
used to derive the site subnet.

Rule
The first binding, in reported order, that is not loopback and whose prefix
was assigned by DHCP or set manually.
"""

from __future__ import annotations

from directory_bootstrap.core.errors import PreconditionNotMet
from directory_bootstrap.core.types import HostAddress, HostInterface, PrefixOrigin
from directory_bootstrap.network.subnet import parse_ipv4

_ELIGIBLE_ORIGINS = {PrefixOrigin.dhcp, PrefixOrigin.manual}


def is_loopback(iface: HostInterface) -> bool:
    if "loopback" in iface.alias.lower():
        return True
    return parse_ipv4(iface.address)[0] == 127


def select_primary_ipv4(interfaces: list[HostInterface]) -> HostAddress:
    """
    Pick the primary IPv4 address from the host bindings.

    Raises PreconditionNotMet when nothing qualifies, because the bootstrap
    cannot register a subnet without it.
    """
    for iface in interfaces:
        if iface.origin not in _ELIGIBLE_ORIGINS:
            continue
        if is_loopback(iface):
            continue
        return HostAddress(address=iface.address, prefix_length=iface.prefix_length)

    aliases = ", ".join(i.alias for i in interfaces) or "none"
    raise PreconditionNotMet(
        f"no non loopback dhcp or manual IPv4 interface found (seen: {aliases})"
    )
