"""Router combining block, bypass and proxy lists with geo data."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from .geodata import GeoDataError
from .georouter import GeoRouter
from .listrouter import ListRouter
from .router import Policy, Request, RouteError, Router

log = logging.getLogger(__name__)

_POLICIES = {
    "proxy": Policy.PROXY,
    "bypass": Policy.BYPASS,
    "block": Policy.BLOCK,
}


@dataclass
class RouterConfig:
    """Settings for the mixed router."""

    enabled: bool = False
    default_policy: str = "proxy"
    route_by_ip: bool = False
    route_by_ip_on_nonmatch: bool = False
    block_list: bytes = b""
    bypass_list: bytes = b""
    proxy_list: bytes = b""
    geoip: bytes = b""
    geosite: bytes = b""
    block_ip_code: List[str] = field(default_factory=list)
    block_site_code: List[str] = field(default_factory=list)
    bypass_ip_code: List[str] = field(default_factory=list)
    bypass_site_code: List[str] = field(default_factory=list)
    proxy_ip_code: List[str] = field(default_factory=list)
    proxy_site_code: List[str] = field(default_factory=list)


class MixedRouter(Router):
    """Checks block rules, then bypass rules, then proxy rules, then falls back."""

    def __init__(self, config: RouterConfig) -> None:
        self.default_policy = _POLICIES.get(config.default_policy, Policy.PROXY)
        by_ip = config.route_by_ip
        on_nonmatch = config.route_by_ip_on_nonmatch

        self.block_list = ListRouter(Policy.MATCH, Policy.NON_MATCH, by_ip, on_nonmatch, config.block_list)
        self.bypass_list = ListRouter(Policy.MATCH, Policy.NON_MATCH, by_ip, on_nonmatch, config.bypass_list)
        self.proxy_list = ListRouter(Policy.MATCH, Policy.NON_MATCH, by_ip, on_nonmatch, config.proxy_list)

        self.block_geo = GeoRouter(Policy.MATCH, Policy.NON_MATCH, by_ip, False)
        self.bypass_geo = GeoRouter(Policy.MATCH, Policy.NON_MATCH, by_ip, on_nonmatch)
        self.proxy_geo = GeoRouter(Policy.MATCH, Policy.NON_MATCH, by_ip, on_nonmatch)

        for geo, ip_codes, site_codes in (
            (self.block_geo, config.block_ip_code, config.block_site_code),
            (self.bypass_geo, config.bypass_ip_code, config.bypass_site_code),
            (self.proxy_geo, config.proxy_ip_code, config.proxy_site_code),
        ):
            try:
                geo.load_geo_data(config.geoip, ip_codes, config.geosite, site_codes)
            except GeoDataError as exc:
                log.warning("failed to load geo data: %s", exc)

    @staticmethod
    def _matches(router: Router, request: Request) -> bool:
        try:
            return router.route_request(request) is Policy.MATCH
        except RouteError as exc:
            log.warning("match error: %s", exc)
            return False

    def route_request(self, request: Request) -> Policy:
        rules = (
            (self.block_geo, Policy.BLOCK),
            (self.block_list, Policy.BLOCK),
            (self.bypass_geo, Policy.BYPASS),
            (self.bypass_list, Policy.BYPASS),
            (self.proxy_geo, Policy.PROXY),
            (self.proxy_list, Policy.PROXY),
        )
        for router, policy in rules:
            if self._matches(router, request):
                return policy
        return self.default_policy


def new_router(config: RouterConfig) -> MixedRouter:
    """Build the mixed router from its configuration."""
    return MixedRouter(config)