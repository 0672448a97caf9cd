# veilproxy

Building blocks for a proxy:

- **Routing**: decide whether a request goes through the proxy, bypasses it
  or is blocked. Rules come from plain-text lists (one domain or CIDR per
  line) and from geoip/geosite data files.
- **Traffic accounting**: per-user traffic meters with byte counters,
  per-second speed and optional speed limits. They are kept in memory or
  synchronised with a MySQL or Redis user database.
- **Socket options**: keep-alive, no-delay, port reuse and TCP fast open
  where the platform has them.

## Installation

```
pip install veilproxy
```

To run the test suite:

```
pip install "veilproxy[test]"
pytest
```

## Requests and policies

`veilproxy.router` defines `Request`, `Address`, `AddressType` and `Policy`
(`PROXY`, `BYPASS`, `BLOCK`, `UNKNOWN`, `MATCH`, `NON_MATCH`). An `Address`
works out its type from what it is given:

```python
from veilproxy.router import Address, Request

by_name = Request(Address(domain_name="www.example.com", port=443))
by_ip = Request(Address(ip="10.1.1.1", port=80))
```

Every router has `route_request(request)`, which returns a `Policy` or raises
`RouteError`. `EmptyRouter` sends everything to `Policy.PROXY`.

## List router

`ListRouter` (in `veilproxy.listrouter`) reads newline-separated records.
A record that parses as a CIDR block is an IP rule, and anything else is a
domain rule. A domain rule matches the domain itself and every subdomain.
Text after the last newline is ignored, so end the list with a newline.

```python
from veilproxy.listrouter import ListRouter
from veilproxy.router import Address, Policy, Request

rules = b"10.0.0.0/8\nexample.com\n"
router = ListRouter(Policy.MATCH, Policy.NON_MATCH, False, False, rules)
router.route_request(Request(Address(domain_name="www.example.com")))  # Policy.MATCH
router.route_request(Request(Address(ip="1.1.1.1")))                   # Policy.NON_MATCH
```

With `route_by_ip` a domain name is resolved first and routed by its address.
With `route_by_ip_on_nonmatch` it is resolved only when no domain rule
matched. A failed lookup raises `RouteError`.

## Geo router

`veilproxy.geodata` decodes geoip and geosite files, which are protobuf
`GeoIPList` / `GeoSiteList` messages, with `parse_geoip_list` and
`parse_geosite_list`. Broken data raises `GeoDataError`.

`GeoRouter` (in `veilproxy.georouter`) loads the entries for the country or
site codes it is given. Codes are compared in upper case.

```python
from veilproxy.georouter import GeoRouter
from veilproxy.router import Policy

router = GeoRouter(Policy.BYPASS, Policy.PROXY, False, False)
with open("geoip.dat", "rb") as ip_file, open("geosite.dat", "rb") as site_file:
    router.load_geo_data(ip_file.read(), ["cn"], site_file.read(), ["cn"])
```

Until both IP and site rules have been loaded, every request gets the
non-match policy.

## Mixed router

`MixedRouter` (in `veilproxy.mixed`) is built from a `RouterConfig`. The
config holds block, bypass and proxy lists, the geo data with the codes for
each of the three, and `default_policy`, which is `"proxy"`, `"bypass"` or
`"block"`. Any other value means proxy. Rules are checked in this order:

1. block geo rules, then the block list
2. bypass geo rules, then the bypass list
3. proxy geo rules, then the proxy list

A request that matches none of them gets the default policy. Geo data that
cannot be decoded is logged and skipped. `new_router(config)` builds the
router.

```python
from veilproxy.mixed import RouterConfig, new_router

router = new_router(RouterConfig(bypass_list=b"10.0.0.0/8\nexample.com\n",
                                 default_policy="proxy"))
```

## Traffic accounting

```python
from veilproxy.memory import MemoryAuthenticator

auth = MemoryAuthenticator(["hash"])
meter = auth.auth_user("hash")   # None for an unknown user
meter.count(1234, 5678)
print(meter.get())               # (1234, 5678)
meter.limit_speed(5000, 6000)    # bytes per second; 0 removes a limit
print(meter.get_speed_limit())   # (5000, 6000)
auth.close()
```

A background thread refreshes every meter's `get_speed()` once per second.
`add_user` raises `AuthError` for a hash that already exists. `del_user`
raises `AuthError` for one that does not.

`veilproxy.stat` keeps a registry of drivers. `new_auth(name, config)` builds
an authenticator from an `AuthConfig`. `"memory"` is registered by
`veilproxy.memory`, `"mysql"` by `veilproxy.mysql_auth` and `"redis"` by
`veilproxy.redis_auth`. Import the module before asking for its driver.

### MySQL

`new_mysql_auth(config)` connects with the settings in `config.mysql` and
starts a background sync every `check_rate` seconds. It reads a `users`
table with the columns `password` (the user hash), `quota`, `download` and
`upload`. On each sync:

- Traffic is added to the table. Bytes received from the user go into
  `upload` and bytes sent to the user go into `download`.
- A user is loaded while `download + upload < quota` or `quota` is
  negative, and removed otherwise.

`MySQLAuthenticator(config, connection).sync_once()` runs a single round.

### Redis

`new_redis_auth(config)` connects with the settings in `config.redis`. It
keeps one Redis hash per user, keyed by the user's 56-character hex hash
(see `validate_hash`), and uses the fields `upload` and `download`. On each
sync:

- Traffic is added to the user's hash with `HINCRBY`.
- Users whose key is gone are removed.
- Every valid key is loaded as a user.

`close()` stops the sync, closes the meters and closes the database
connection.

## Socket options

`veilproxy.sockopt` applies the settings of a `TCPOptions` to a socket:

- `apply_tcp_conn_option(sock, options)` sets keep-alive and no-delay, then
  the platform options.
- `apply_tcp_listener_option(sock, options)` sets port reuse (Linux) and
  fast open on a listening socket.

On platforms other than Linux, macOS and Windows the platform options are
ignored with a warning.

## What the package does not do

The package has no command to run and opens no listening sockets of its own.
There is no proxy server or relay, no code that pipes data between
connections, and no hand-off of failed connections to a fallback server.
It provides routing, accounting and socket tuning for a program that does
those things.