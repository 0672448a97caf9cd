"""Authenticator that keeps its users in step with a Redis store."""

from __future__ import annotations

import logging
import re
import threading
from typing import Any, Optional

import redis

from .memory import MemoryAuthenticator
from .stat import AuthConfig, AuthError, register_auth_creator

log = logging.getLogger(__name__)

_HASH_PATTERN = re.compile(r"[0-9a-fA-F]{56}")


def validate_hash(value: str) -> bool:
    """Tell whether a key looks like a user's SHA-224 hex digest."""
    return _HASH_PATTERN.fullmatch(value) is not None


def _text(value: Any) -> str:
    return value.decode("utf-8", "replace") if isinstance(value, (bytes, bytearray)) else str(value)


class RedisAuthenticator(MemoryAuthenticator):
    """Writes user traffic to Redis hashes and reloads users from the keys."""

    def __init__(self, config: AuthConfig, client: Any) -> None:
        super().__init__(config.hashes)
        self._client = client
        self.update_duration = config.redis.check_rate
        self._stop_sync = threading.Event()
        self._sync_thread: Optional[threading.Thread] = None

    def sync_once(self) -> None:
        """Push buffered traffic to Redis, then reload users from its keys."""
        for user in self.list_users():
            hash_value = user.hash
            sent, recv = user.get_and_reset()

            exists = False
            try:
                exists = bool(self._client.exists(hash_value))
            except redis.RedisError as exc:
                log.error("failed to check user in DB: %s", exc)
            if not exists:
                try:
                    self.del_user(hash_value)
                except AuthError:
                    pass
                continue

            try:
                pipe = self._client.pipeline()
                pipe.hincrby(hash_value, "upload", recv)
                pipe.hincrby(hash_value, "download", sent)
                pipe.execute()
            except redis.RedisError as exc:
                log.error("failed to execute pipeline: %s", exc)
        log.info("buffered data has been written into the database")

        try:
            keys = self._client.keys("*")
        except redis.RedisError as exc:
            log.error("failed to pull data from the database: %s", exc)
            return
        for key in map(_text, keys):
            if validate_hash(key):
                try:
                    self.add_user(key)
                except AuthError:
                    pass

    def _run(self) -> None:
        while True:
            self.sync_once()
            if self._stop_sync.wait(self.update_duration):
                log.debug("db daemon exiting...")
                return

    def start(self) -> None:
        """Start synchronising in the background."""
        if self._sync_thread is not None and self._sync_thread.is_alive():
            return
        self._sync_thread = threading.Thread(target=self._run, name="redis-sync", daemon=True)
        self._sync_thread.start()

    def close(self) -> None:
        self._stop_sync.set()
        thread = self._sync_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        super().close()
        try:
            self._client.close()
        except redis.RedisError as exc:
            log.debug("closing redis client failed: %s", exc)


def new_redis_auth(config: AuthConfig) -> RedisAuthenticator:
    """Connect to the configured server and start synchronising."""
    settings = config.redis
    pool = redis.ConnectionPool(
        host=settings.server_host,
        port=settings.server_port,
        password=settings.password or None,
        max_connections=10,
    )
    client = redis.Redis(connection_pool=pool)
    try:
        client.ping()
    except redis.RedisError as exc:
        raise AuthError("failed to connect to database server") from exc
    auth = RedisAuthenticator(config, client)
    auth.start()
    return auth


register_auth_creator("redis", new_redis_auth)