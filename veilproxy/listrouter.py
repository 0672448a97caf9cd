"""Router matching requests against a plain list of domains and CIDRs."""

from __future__ import annotations

import ipaddress
import logging
from typing import List, Optional, Union

from .router import (
    Address,
    AddressType,
    IPAddress,
    Policy,
    Request,
    RouteError,
    Router,
    is_subdomain,
    resolve_request,
)

log = logging.getLogger(__name__)

_Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def _parse_cidr(record: str) -> Optional[_Network]:
    address, sep, prefix = record.partition("/")
    if not sep or not (prefix.isascii() and prefix.isdigit()) or "%" in address:
        return None
    try:
        return ipaddress.ip_network(f"{address}/{int(prefix)}", strict=False)
    except ValueError:
        return None


def _parse_ip(text: str) -> Optional[IPAddress]:
    if "%" in text:
        return None
    try:
        return Address(ip=text).ip
    except ValueError:
        return None


class ListRouter(Router):
    """Routes by a newline-separated list of domain suffixes and CIDR ranges."""

    def __init__(
        self,
        match_policy: Policy,
        non_match_policy: Policy,
        route_by_ip: bool = False,
        route_by_ip_on_nonmatch: bool = False,
        data: Union[bytes, str, None] = b"",
    ) -> None:
        self.match_policy = match_policy
        self.non_match_policy = non_match_policy
        self.route_by_ip = route_by_ip
        self.route_by_ip_on_nonmatch = route_by_ip_on_nonmatch
        self.domain_list: List[str] = []
        self.ip_list: List[_Network] = []
        self.load_list(data)

    def load_list(self, data: Union[bytes, str, None]) -> None:
        """Add the records of a list; text after the last newline is ignored."""
        text = data if isinstance(data, str) else bytes(data or b"").decode("utf-8", "replace")
        for line in text.split("\n")[:-1]:
            if not line or line.startswith("\r"):
                continue
            record = line[:-1] if line.endswith("\r") else line
            network = _parse_cidr(record)
            if network is None:
                self.domain_list.append(record)
            else:
                self.ip_list.append(network)

    def _contains(self, ip: IPAddress) -> bool:
        return any(ip in network for network in self.ip_list)

    def route_request(self, request: Request) -> Policy:
        address_type = request.address_type
        if address_type is AddressType.DOMAIN_NAME:
            domain = request.domain_name
            literal = _parse_ip(domain)
            if literal is not None:
                return self.match_policy if self._contains(literal) else self.non_match_policy
            if self.route_by_ip:
                return self.route_request(resolve_request(domain))
            if any(is_subdomain(domain, entry) for entry in self.domain_list):
                return self.match_policy
            if self.route_by_ip_on_nonmatch:
                return self.route_request(resolve_request(domain))
            return self.non_match_policy
        if address_type in (AddressType.IPV4, AddressType.IPV6):
            if request.ip is not None and self._contains(request.ip):
                return self.match_policy
            return self.non_match_policy
        raise RouteError("invalid address type")