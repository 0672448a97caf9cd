"""Routing policies, request addresses and the router interface."""

from __future__ import annotations

import enum
import ipaddress
import socket
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class Policy(enum.IntEnum):
    PROXY = 0
    BYPASS = 1
    BLOCK = 2
    UNKNOWN = 3
    MATCH = 4
    NON_MATCH = 5


class AddressType(enum.IntEnum):
    IPV4 = 1
    DOMAIN_NAME = 3
    IPV6 = 4


class RouteError(Exception):
    """Raised when a request cannot be routed."""


@dataclass
class Address:
    domain_name: str = ""
    ip: Optional[IPAddress] = None
    port: int = 0
    address_type: Optional[AddressType] = None

    def __post_init__(self) -> None:
        if self.ip is not None:
            ip = ipaddress.ip_address(self.ip)
            self.ip = getattr(ip, "ipv4_mapped", None) or ip
        if self.address_type is None:
            if self.ip is None:
                self.address_type = AddressType.DOMAIN_NAME
            else:
                self.address_type = AddressType.IPV4 if self.ip.version == 4 else AddressType.IPV6

    @property
    def host(self) -> str:
        if self.address_type is AddressType.DOMAIN_NAME or self.ip is None:
            return self.domain_name
        return f"[{self.ip}]" if self.ip.version == 6 else str(self.ip)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class Request:
    address: Address
    command: Optional[int] = None

    @property
    def address_type(self) -> Optional[AddressType]:
        return self.address.address_type

    @property
    def ip(self) -> Optional[IPAddress]:
        return self.address.ip

    @property
    def domain_name(self) -> str:
        return self.address.domain_name

    def __str__(self) -> str:
        return str(self.address)


class Router(ABC):
    @abstractmethod
    def route_request(self, request: Request) -> Policy:
        """Return the policy for the request, or raise RouteError."""


class EmptyRouter(Router):
    """Proxies everything."""

    def route_request(self, request: Request) -> Policy:
        return Policy.PROXY


def new_empty_router(config: Any) -> EmptyRouter:
    return EmptyRouter()


def is_subdomain(full_domain: str, domain: str) -> bool:
    """Tell whether full_domain is domain itself or a subdomain of it."""
    if not full_domain.endswith(domain):
        return False
    idx = full_domain.find(domain)
    return idx == 0 or full_domain[idx - 1] == "."


def resolve_request(domain: str) -> Request:
    """Resolve a domain name into a request for one of its IP addresses."""
    try:
        infos = socket.getaddrinfo(domain, None)
    except (OSError, UnicodeError) as exc:
        raise RouteError(f"failed to resolve {domain}") from exc
    addresses = [ipaddress.ip_address(str(info[4][0]).split("%")[0]) for info in infos]
    if not addresses:
        raise RouteError(f"no address found for {domain}")
    chosen = next((ip for ip in addresses if ip.version == 4), addresses[0])
    return Request(Address(ip=chosen))