import ipaddress
import socket
from unittest import mock

import pytest

from veilproxy.geodata import GeoDataError
from veilproxy.georouter import GeoRouter
from veilproxy.router import Address, AddressType, Policy, Request, RouteError


def _varint(n):
    out = bytearray()
    while True:
        low = n & 0x7F
        n >>= 7
        if n:
            out.append(low | 0x80)
        else:
            out.append(low)
            return bytes(out)


def _bytes_field(number, payload):
    return _varint(number << 3 | 2) + _varint(len(payload)) + payload


def _int_field(number, value):
    return _varint(number << 3) + _varint(value)


def _geoip_list(entries):
    out = b""
    for code, cidrs in entries.items():
        body = _bytes_field(1, code.encode())
        for ip, prefix in cidrs:
            cidr = _bytes_field(1, ipaddress.ip_address(ip).packed) + _int_field(2, prefix)
            body += _bytes_field(2, cidr)
        out += _bytes_field(1, body)
    return out


def _geosite_list(entries):
    out = b""
    for code, domains in entries.items():
        body = _bytes_field(1, code.encode())
        for kind, value in domains:
            body += _bytes_field(2, _int_field(1, kind) + _bytes_field(2, value.encode()))
        out += _bytes_field(1, body)
    return out


DOMAIN, FULL, PLAIN, REGEX = 2, 3, 0, 1

GEOIP = _geoip_list(
    {
        "CN": [("114.114.114.0", 24), ("1.0.1.0", 24)],
        "US": [("8.8.8.0", 24)],
        "V6": [("2001:db8::", 32)],
    }
)
GEOSITE = _geosite_list(
    {
        "CN": [(DOMAIN, "baidu.com"), (DOMAIN, "qq.com")],
        "GOOGLE": [(DOMAIN, "google.com")],
        "TEST": [(PLAIN, "tupian"), (REGEX, r"^ads\d+\."), (FULL, "exact.example.org"), (REGEX, "(")],
    }
)


def _domain(name):
    return Request(Address(domain_name=name, address_type=AddressType.DOMAIN_NAME))


def _ip(value):
    return Request(Address(ip=value))


@pytest.fixture
def cn_router():
    router = GeoRouter(Policy.BYPASS, Policy.PROXY, False, False)
    router.load_geo_data(GEOIP, ["CN"], GEOSITE, ["CN"])
    return router


def test_geo_router_cases(cn_router):
    assert cn_router.route_request(_domain("mail.google.com")) is Policy.PROXY
    assert cn_router.route_request(_domain("tupian.baidu.com")) is Policy.BYPASS
    assert cn_router.route_request(_ip("8.8.8.8")) is Policy.PROXY
    assert cn_router.route_request(_ip("114.114.114.114")) is Policy.BYPASS


def test_country_codes_are_case_insensitive():
    router = GeoRouter(Policy.MATCH, Policy.NON_MATCH)
    router.load_geo_data(GEOIP, ["cn"], GEOSITE, ["google"])
    assert router.route_request(_domain("www.google.com")) is Policy.MATCH
    assert router.route_request(_ip("1.0.1.7")) is Policy.MATCH
    assert router.route_request(_domain("baidu.com")) is Policy.NON_MATCH


def test_without_data_nothing_matches():
    router = GeoRouter(Policy.MATCH, Policy.NON_MATCH)
    router.load_geo_data(b"", [], b"", [])
    assert router.route_request(_ip("114.114.114.114")) is Policy.NON_MATCH


def test_sites_without_ips_never_match():
    router = GeoRouter(Policy.MATCH, Policy.NON_MATCH)
    router.load_geo_data(GEOIP, ["XX"], GEOSITE, ["CN"])
    assert router.route_request(_domain("www.baidu.com")) is Policy.NON_MATCH


def test_domain_rule_kinds():
    router = GeoRouter(Policy.MATCH, Policy.NON_MATCH)
    router.load_geo_data(GEOIP, ["CN"], GEOSITE, ["TEST"])
    assert router.match_domain("img.tupian.net")
    assert router.match_domain("ads12.example.net")
    assert router.match_domain("exact.example.org")
    assert not router.match_domain("ads.example.net")
    assert not router.match_domain("www.google.com")


def test_invalid_regex_does_not_match():
    router = GeoRouter(Policy.MATCH, Policy.NON_MATCH)
    router.load_geo_data(GEOIP, ["CN"], GEOSITE, ["TEST"])
    assert router.route_request(_domain("nothing.here")) is Policy.NON_MATCH


def test_match_ip_families():
    router = GeoRouter(Policy.MATCH, Policy.NON_MATCH)
    router.load_geo_data(GEOIP, ["CN", "V6"], GEOSITE, ["CN"])
    assert router.match_ip("2001:db8::1")
    assert router.match_ip("::ffff:114.114.114.114")
    assert router.match_ip(ipaddress.ip_address("1.0.1.1"))
    assert not router.match_ip("2001:db9::1")
    assert not router.match_ip("8.8.8.8")
    assert router.route_request(_ip("2001:db8::1")) is Policy.MATCH


def test_route_by_ip_resolves_domain():
    router = GeoRouter(Policy.BYPASS, Policy.PROXY, True, False)
    router.load_geo_data(GEOIP, ["CN"], GEOSITE, ["CN"])
    assert router.route_request(_domain("114.114.114.114")) is Policy.BYPASS
    assert router.route_request(_domain("8.8.8.8")) is Policy.PROXY


def test_route_by_ip_on_nonmatch():
    router = GeoRouter(Policy.BYPASS, Policy.PROXY, False, True)
    router.load_geo_data(GEOIP, ["CN"], GEOSITE, ["CN"])
    assert router.route_request(_domain("114.114.114.114")) is Policy.BYPASS
    assert router.route_request(_domain("www.baidu.com")) is Policy.BYPASS
    assert router.route_request(_domain("8.8.8.8")) is Policy.PROXY


def test_resolution_failure_raises():
    router = GeoRouter(Policy.BYPASS, Policy.PROXY, True, False)
    router.load_geo_data(GEOIP, ["CN"], GEOSITE, ["CN"])
    with mock.patch("socket.getaddrinfo", side_effect=socket.gaierror("no such host")):
        with pytest.raises(RouteError):
            router.route_request(_domain("www.example.com"))


def test_bad_geo_data_raises():
    router = GeoRouter(Policy.MATCH, Policy.NON_MATCH)
    with pytest.raises(GeoDataError):
        router.load_geo_data(b"\x0a\x05ab", ["CN"], GEOSITE, ["CN"])