import ipaddress
import socket
from unittest import mock

import pytest

from veilproxy.router import (
    Address,
    AddressType,
    EmptyRouter,
    Policy,
    Request,
    RouteError,
    Router,
    is_subdomain,
    new_empty_router,
    resolve_request,
)


def test_empty_router_proxies_everything():
    router = EmptyRouter()
    request = Request(Address(domain_name="www.google.com"))
    assert router.route_request(request) is Policy.PROXY


def test_new_empty_router_ignores_config():
    router = new_empty_router(None)
    assert isinstance(router, Router)
    assert router.route_request(Request(Address(ip="10.1.1.1"))) is Policy.PROXY


@pytest.mark.parametrize(
    "full, domain, expected",
    [
        ("www.baidu.com", "baidu.com", True),
        ("baidu.com", "baidu.com", True),
        ("xbaidu.com", "baidu.com", False),
        ("baidu.com", "www.baidu.com", False),
        ("baidu.com.cn", "baidu.com", False),
    ],
)
def test_is_subdomain(full, domain, expected):
    assert is_subdomain(full, domain) is expected


def test_address_infers_type_from_ip():
    assert Address(ip="10.1.1.1").address_type is AddressType.IPV4
    assert Address(ip="2001:db8::1").address_type is AddressType.IPV6
    assert Address(domain_name="qq.com").address_type is AddressType.DOMAIN_NAME


def test_ipv4_mapped_address_is_unwrapped():
    address = Address(ip="::ffff:10.1.1.1")
    assert address.ip == ipaddress.ip_address("10.1.1.1")
    assert address.address_type is AddressType.IPV4


def test_invalid_ip_is_rejected():
    with pytest.raises(ValueError):
        Address(ip="not-an-ip")


def test_address_string_forms():
    assert str(Address(domain_name="example.com", port=443)) == "example.com:443"
    assert str(Address(ip="10.1.1.1", port=80)) == "10.1.1.1:80"
    assert str(Address(ip="::1", port=80)) == "[::1]:80"


def test_request_exposes_address_fields():
    request = Request(Address(domain_name="im.qq.com", port=443))
    assert request.domain_name == "im.qq.com"
    assert request.ip is None
    assert request.address_type is AddressType.DOMAIN_NAME
    assert str(request) == "im.qq.com:443"


def test_resolve_numeric_address():
    request = resolve_request("127.0.0.1")
    assert request.ip == ipaddress.ip_address("127.0.0.1")
    assert request.address_type is AddressType.IPV4


def test_resolve_prefers_ipv4():
    infos = [
        (socket.AF_INET6, socket.SOCK_STREAM, 0, "", ("2001:db8::5", 0, 0, 0)),
        (socket.AF_INET, socket.SOCK_STREAM, 0, "", ("192.0.2.5", 0)),
    ]
    with mock.patch("socket.getaddrinfo", return_value=infos):
        request = resolve_request("example.com")
    assert request.ip == ipaddress.ip_address("192.0.2.5")


def test_resolve_failure_raises_route_error():
    with mock.patch("socket.getaddrinfo", side_effect=socket.gaierror("no such host")):
        with pytest.raises(RouteError):
            resolve_request("example.invalid")