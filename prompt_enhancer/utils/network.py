"""Client address helpers."""

import ipaddress
import logging
from typing import Iterable, List, Optional, Union

from starlette.requests import Request

logger = logging.getLogger(__name__)

IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


class AllowList:
    """IPs and CIDR ranges exempt from rate and DDoS checks."""

    def __init__(self, entries: Iterable[str] = ()):
        self._exact = set()
        self._networks: List[IPNetwork] = []
        for entry in entries:
            entry = entry.strip()
            if not entry:
                continue
            if "/" in entry:
                try:
                    self._networks.append(ipaddress.ip_network(entry, strict=False))
                    continue
                except ValueError:
                    logger.warning("Ignoring malformed allow-list entry %r", entry)
                    continue
            self._exact.add(entry)

    def __contains__(self, ip: Optional[str]) -> bool:
        if not ip:
            return False
        if ip in self._exact:
            return True
        if not self._networks:
            return False
        try:
            address = ipaddress.ip_address(ip)
        except ValueError:
            return False
        return any(address in network for network in self._networks)

    def __bool__(self) -> bool:
        return bool(self._exact or self._networks)


def resolve_client_ip(request: Request, trust_proxy_headers: bool = False) -> str:
    """Address used for allow-listing, lockouts and IP-tier limits."""
    if trust_proxy_headers:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "unknown-ip"
