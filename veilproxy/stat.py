"""Traffic meters, authenticators and the registry of authenticator drivers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple


class AuthError(Exception):
    """Raised when a user or an authenticator driver cannot be handled."""


@dataclass
class MySQLConfig:
    enabled: bool = False
    server_host: str = "127.0.0.1"
    server_port: int = 3306
    username: str = ""
    password: str = ""
    database: str = ""
    check_rate: float = 60


@dataclass
class RedisConfig:
    enabled: bool = False
    server_host: str = "127.0.0.1"
    server_port: int = 6379
    password: str = ""
    check_rate: float = 60


@dataclass
class AuthConfig:
    hashes: Dict[str, str] = field(default_factory=dict)
    mysql: MySQLConfig = field(default_factory=MySQLConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)


class TrafficMeter(ABC):
    """Counts the traffic of one user and can limit its speed."""

    @property
    @abstractmethod
    def hash(self) -> str: ...
    @abstractmethod
    def count(self, sent: int, recv: int) -> None: ...
    @abstractmethod
    def get(self) -> Tuple[int, int]: ...
    @abstractmethod
    def reset(self) -> None: ...
    @abstractmethod
    def get_and_reset(self) -> Tuple[int, int]: ...
    @abstractmethod
    def get_speed(self) -> Tuple[int, int]: ...
    @abstractmethod
    def limit_speed(self, send: int, recv: int) -> None: ...
    @abstractmethod
    def get_speed_limit(self) -> Tuple[int, int]: ...
    @abstractmethod
    def close(self) -> None: ...


class Authenticator(ABC):
    """Knows the valid users and their traffic meters."""

    @abstractmethod
    def auth_user(self, hash_value: str) -> Optional[TrafficMeter]: ...
    @abstractmethod
    def add_user(self, hash_value: str) -> None: ...
    @abstractmethod
    def del_user(self, hash_value: str) -> None: ...
    @abstractmethod
    def list_users(self) -> List[TrafficMeter]: ...
    @abstractmethod
    def close(self) -> None: ...

    def __enter__(self) -> "Authenticator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


AuthCreator = Callable[[AuthConfig], Authenticator]

_auth_creators: Dict[str, AuthCreator] = {}


def register_auth_creator(name: str, creator: AuthCreator) -> None:
    _auth_creators[name] = creator


def new_auth(name: str, config: AuthConfig) -> Authenticator:
    """Build an authenticator with the named driver."""
    if name not in _auth_creators:
        raise AuthError(f"driver name {name} not found")
    return _auth_creators[name](config)