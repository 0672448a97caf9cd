"""In-memory authenticator with per-user traffic meters and rate limits."""

from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Iterable, List, Optional, Tuple

from .stat import AuthConfig, AuthError, Authenticator, TrafficMeter, register_auth_creator

log = logging.getLogger(__name__)

_SPEED_INTERVAL = 1.0


class RateLimiter:
    """Token bucket refilling at `rate` tokens per second up to `burst`."""

    def __init__(self, rate: float, burst: int) -> None:
        self.rate = float(rate)
        self.burst = int(burst)
        self._tokens = float(self.burst)
        self._last = time.monotonic()
        self._lock = threading.Lock()
        self._cancelled = threading.Event()

    def wait(self, n: int) -> bool:
        """Block until n tokens are available; False if cancelled, ValueError if n > burst."""
        if n > self.burst:
            raise ValueError(f"wait({n}) exceeds limiter's burst {self.burst}")
        if self._cancelled.is_set():
            return False
        with self._lock:
            now = time.monotonic()
            self._tokens = min(float(self.burst), self._tokens + (now - self._last) * self.rate) - n
            self._last = now
            delay = -self._tokens / self.rate
        if delay <= 0:
            return True
        if self._cancelled.wait(delay):
            with self._lock:
                self._tokens += n
            return False
        return True

    def _cancel(self) -> None:
        self._cancelled.set()


class MemoryTrafficMeter(TrafficMeter):
    """Traffic counters of one user, kept in memory."""

    def __init__(self, hash_value: str) -> None:
        self._hash = hash_value
        self._lock = threading.Lock()
        self._sent = self._recv = self._last_sent = self._last_recv = 0
        self._send_speed = self._recv_speed = 0
        self._limiters: Tuple[Optional[RateLimiter], Optional[RateLimiter]] = (None, None)
        self._closed = False

    @property
    def hash(self) -> str:
        return self._hash

    def count(self, sent: int, recv: int) -> None:
        send_limiter, recv_limiter = self._limiters
        try:
            if send_limiter is not None and sent != 0:
                send_limiter.wait(sent)
            elif recv_limiter is not None and recv != 0:
                recv_limiter.wait(recv)
        except ValueError as exc:
            log.debug("speed limit skipped: %s", exc)
        with self._lock:
            self._sent += sent
            self._recv += recv

    def get(self) -> Tuple[int, int]:
        with self._lock:
            return self._sent, self._recv

    def reset(self) -> None:
        self.get_and_reset()

    def get_and_reset(self) -> Tuple[int, int]:
        with self._lock:
            result = (self._sent, self._recv)
            self._sent = self._recv = self._last_sent = self._last_recv = 0
            return result

    def update_speed(self) -> None:
        """Take the traffic since the previous update as the current speed."""
        with self._lock:
            self._send_speed = self._sent - self._last_sent
            self._recv_speed = self._recv - self._last_recv
            self._last_sent, self._last_recv = self._sent, self._recv

    def get_speed(self) -> Tuple[int, int]:
        with self._lock:
            return self._send_speed, self._recv_speed

    def _new_limiter(self, rate: int) -> Optional[RateLimiter]:
        if rate == 0:
            return None
        limiter = RateLimiter(rate, rate * 2)
        if self._closed:
            limiter._cancel()
        return limiter

    def _cancel_limiters(self) -> None:
        for limiter in self._limiters:
            if limiter is not None:
                limiter._cancel()

    def limit_speed(self, send: int, recv: int) -> None:
        self._cancel_limiters()
        self._limiters = (self._new_limiter(send), self._new_limiter(recv))

    def get_speed_limit(self) -> Tuple[int, int]:
        send, recv = (int(l.rate) if l is not None else 0 for l in self._limiters)
        return send, recv

    def close(self) -> None:
        self.reset()
        self._closed = True
        self._cancel_limiters()


class MemoryAuthenticator(Authenticator):
    """Keeps users in memory and refreshes their speeds every second."""

    def __init__(self, hashes: Iterable[str] = ()) -> None:
        self._lock = threading.RLock()
        self._users: Dict[str, MemoryTrafficMeter] = {h: MemoryTrafficMeter(h) for h in hashes}
        self._stop = threading.Event()
        self._speed_thread = threading.Thread(target=self._update_speeds, name="speed-updater", daemon=True)
        self._speed_thread.start()

    def _update_speeds(self) -> None:
        while not self._stop.wait(_SPEED_INTERVAL):
            for meter in self.list_users():
                meter.update_speed()

    def auth_user(self, hash_value: str) -> Optional[MemoryTrafficMeter]:
        with self._lock:
            return self._users.get(hash_value)

    def add_user(self, hash_value: str) -> None:
        with self._lock:
            if hash_value in self._users:
                raise AuthError(f"hash {hash_value} is already exist")
            self._users[hash_value] = MemoryTrafficMeter(hash_value)

    def del_user(self, hash_value: str) -> None:
        with self._lock:
            meter = self._users.pop(hash_value, None)
        if meter is None:
            raise AuthError(f"hash {hash_value} is not exist")
        meter.close()

    def list_users(self) -> List[MemoryTrafficMeter]:
        with self._lock:
            return list(self._users.values())

    def close(self) -> None:
        self._stop.set()
        if self._speed_thread is not threading.current_thread():
            self._speed_thread.join(timeout=2 * _SPEED_INTERVAL)
        for meter in self.list_users():
            meter.close()


def new_memory_auth(config: AuthConfig) -> MemoryAuthenticator:
    return MemoryAuthenticator(config.hashes)


register_auth_creator("memory", new_memory_auth)