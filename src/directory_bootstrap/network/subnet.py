"""
Subnet derivation.

Purpose
A fresh site needs exactly one subnet registered against it. We derive that
subnet from the local host address and prefix length, so every host in the
same network produces the same CIDR string.

Algorithm
1) render the address as 32 binary digits, 8 per octet, zero padded
2) keep the first prefix_length digits and zero fill the rest
3) regroup into four octets and render as dotted decimal
4) append /prefix_length

This module is pure. It never talks to the host or the directory.
"""

from __future__ import annotations

from directory_bootstrap.core.errors import InvalidAddress, InvalidPrefixLength


def parse_ipv4(address: str) -> list[int]:
    """
    Parse a dotted decimal IPv4 address into four octets.

    Raises InvalidAddress unless there are exactly four decimal parts in 0..255.
    """
    text = str(address).strip()
    parts = text.split(".")
    if len(parts) != 4:
        raise InvalidAddress(f"address must have four octets: {address!r}")

    octets: list[int] = []
    for part in parts:
        if not part.isdigit():
            raise InvalidAddress(f"octet is not a decimal number: {address!r}")
        value = int(part)
        if value > 255:
            raise InvalidAddress(f"octet out of range 0..255: {address!r}")
        octets.append(value)

    return octets


def _validate_prefix_length(prefix_length: int) -> int:
    if isinstance(prefix_length, bool) or not isinstance(prefix_length, int):
        raise InvalidPrefixLength(f"prefix length must be an integer: {prefix_length!r}")
    if prefix_length < 0 or prefix_length > 32:
        raise InvalidPrefixLength(f"prefix length out of range 0..32: {prefix_length}")
    return prefix_length


def derive_subnet(ip_address: str, prefix_length: int) -> str:
    """
    Return the network address of ip_address in CIDR notation.

    Examples
    derive_subnet("192.168.1.130", 24) == "192.168.1.0/24"
    derive_subnet("172.16.5.9", 32) == "172.16.5.9/32"
    derive_subnet("10.1.2.3", 0) == "0.0.0.0/0"
    """
    octets = parse_ipv4(ip_address)
    prefix = _validate_prefix_length(prefix_length)

    bits = "".join(format(octet, "08b") for octet in octets)
    network_bits = bits[:prefix] + "0" * (32 - prefix)

    network_octets = [str(int(network_bits[i : i + 8], 2)) for i in range(0, 32, 8)]
    return f"{'.'.join(network_octets)}/{prefix}"
