"""Router matching requests against geoip and geosite rule sets."""

from __future__ import annotations

import ipaddress
import logging
import re
from typing import Iterable, List, Optional

from .geodata import Cidr, Domain, DomainType, parse_geoip_list, parse_geosite_list
from .router import Address, AddressType, Policy, Request, RouteError, Router, is_subdomain, resolve_request

log = logging.getLogger(__name__)


class GeoRouter(Router):
    """Routes by country-coded IP ranges and site lists."""

    def __init__(self, match_policy: Policy, non_match_policy: Policy,
                 route_by_ip: bool = False, route_by_ip_on_nonmatch: bool = False) -> None:
        self.match_policy = match_policy
        self.non_match_policy = non_match_policy
        self.route_by_ip = route_by_ip
        self.route_by_ip_on_nonmatch = route_by_ip_on_nonmatch
        self.domains: Optional[List[Domain]] = None
        self.cidrs: Optional[List[Cidr]] = None

    def match_domain(self, full_domain: str) -> bool:
        for domain in self.domains or ():
            if domain.kind in (DomainType.DOMAIN, DomainType.FULL):
                if is_subdomain(full_domain, domain.value):
                    return True
            elif domain.kind is DomainType.PLAIN:
                if domain.value in full_domain:
                    return True
            else:
                try:
                    if re.search(domain.value, full_domain):
                        return True
                except re.error:
                    log.error("invalid regex %r", domain.value)
        return False

    def match_ip(self, ip) -> bool:
        address = Address(ip=ip).ip
        for cidr in self.cidrs or ():
            if len(cidr.ip) not in (4, 16):
                continue
            network_ip = Address(ip=cidr.ip).ip
            if network_ip.version != address.version or cidr.prefix > network_ip.max_prefixlen:
                continue
            if address in ipaddress.ip_network((network_ip, cidr.prefix), strict=False):
                return True
        return False

    def route_request(self, request: Request) -> Policy:
        if self.domains is None or self.cidrs is None:
            return self.non_match_policy
        if request.address_type is AddressType.DOMAIN_NAME:
            domain = request.domain_name
            if self.route_by_ip:
                return self.route_request(resolve_request(domain))
            if self.match_domain(domain):
                return self.match_policy
            if self.route_by_ip_on_nonmatch:
                return self.route_request(resolve_request(domain))
            return self.non_match_policy
        if request.address_type in (AddressType.IPV4, AddressType.IPV6):
            if request.ip is not None and self.match_ip(request.ip):
                return self.match_policy
            return self.non_match_policy
        raise RouteError("invalid address type")

    def load_geo_data(self, geoip_data: Optional[bytes], ip_codes: Optional[Iterable[str]],
                      geosite_data: Optional[bytes], site_codes: Optional[Iterable[str]]) -> None:
        """Add the rules of the given country codes; raises GeoDataError on bad data."""
        geoip = parse_geoip_list(geoip_data)
        for code in (c.upper() for c in ip_codes or ()):
            entry = next((e for e in geoip if e.country_code == code), None)
            if entry is None:
                log.warning("geoip tag %s not found", code)
                continue
            if entry.cidrs:
                self.cidrs = [*(self.cidrs or []), *entry.cidrs]
            log.info("geoip tag %s loaded", code)

        geosite = parse_geosite_list(geosite_data)
        for code in (c.upper() for c in site_codes or ()):
            site = next((s for s in geosite if s.country_code == code), None)
            if site is None:
                log.warning("geosite tag %s not found", code)
                continue
            if site.domains:
                self.domains = [*(self.domains or []), *site.domains]
            log.info("geosite tag %s loaded", code)