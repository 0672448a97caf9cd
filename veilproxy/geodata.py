"""Reader for geoip and geosite data files in protobuf wire format."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple, Union


class GeoDataError(ValueError):
    """Raised when geo data cannot be decoded."""


class DomainType(enum.IntEnum):
    PLAIN = 0
    REGEX = 1
    DOMAIN = 2
    FULL = 3


@dataclass
class Domain:
    kind: DomainType
    value: str


@dataclass
class Cidr:
    ip: bytes
    prefix: int


@dataclass
class GeoIP:
    country_code: str
    cidrs: List[Cidr] = field(default_factory=list)


@dataclass
class GeoSite:
    country_code: str
    domains: List[Domain] = field(default_factory=list)


_Field = Tuple[int, Union[int, bytes]]


def _varint(data: bytes, pos: int) -> Tuple[int, int]:
    result = shift = 0
    while True:
        if pos >= len(data):
            raise GeoDataError("truncated varint")
        if shift >= 70:
            raise GeoDataError("varint too long")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        shift += 7
        if byte < 0x80:
            return result, pos


def _fields(data: bytes) -> Iterator[Tuple[int, int, Union[int, bytes]]]:
    pos = 0
    while pos < len(data):
        key, pos = _varint(data, pos)
        number, wire = key >> 3, key & 7
        if number == 0:
            raise GeoDataError("invalid field number 0")
        if wire == 0:
            value, pos = _varint(data, pos)
        elif wire in (1, 2, 5):
            size = {1: 8, 5: 4}.get(wire)
            if size is None:
                size, pos = _varint(data, pos)
            if pos + size > len(data):
                raise GeoDataError("truncated field")
            value, pos = data[pos:pos + size], pos + size
        else:
            raise GeoDataError(f"unsupported wire type {wire}")
        yield number, wire, value


def _get(sub: Dict[int, _Field], number: int, wire: int, default):
    if number not in sub:
        return default
    got_wire, value = sub[number]
    if got_wire != wire:
        raise GeoDataError(f"field {number} has wire type {got_wire}, expected {wire}")
    if wire == 0:
        return value & 0xFFFFFFFF
    if isinstance(default, str):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise GeoDataError(f"field {number} is not valid UTF-8") from exc
    return value


def _parse(data: Optional[bytes], make: Callable[[Dict[int, _Field]], object]):
    """Yield (country code, items) for each entry of a list message."""
    for number, wire, value in _fields(bytes(data or b"")):
        if number != 1:
            continue
        entry = {1: (wire, value)}
        code, items = "", []
        for n, w, v in _fields(_get(entry, 1, 2, b"")):
            if n == 1:
                code = _get({1: (w, v)}, 1, 2, "")
            elif n == 2:
                sub = {sn: (sw, sv) for sn, sw, sv in _fields(_get({2: (w, v)}, 2, 2, b""))}
                item = make(sub)
                if item is not None:
                    items.append(item)
        yield code, items


def _cidr(sub: Dict[int, _Field]) -> Cidr:
    return Cidr(_get(sub, 1, 2, b""), _get(sub, 2, 0, 0))


def _domain(sub: Dict[int, _Field]) -> Optional[Domain]:
    kind = _get(sub, 1, 0, 0)
    if kind not in DomainType._value2member_map_:
        return None
    return Domain(DomainType(kind), _get(sub, 2, 2, ""))


def parse_geoip_list(data: Optional[bytes]) -> List[GeoIP]:
    """Decode a GeoIPList message."""
    return [GeoIP(code, items) for code, items in _parse(data, _cidr)]


def parse_geosite_list(data: Optional[bytes]) -> List[GeoSite]:
    """Decode a GeoSiteList message; domains of unknown type are dropped."""
    return [GeoSite(code, items) for code, items in _parse(data, _domain)]