"""
One-Time Tokens
===============

In-memory store of single-use anti-forgery tokens.

Security Properties:
- Each token validates at most once; check-and-remove is atomic
- Expiry is re-checked on every consume, independent of the sweeper
- A background sweeper bounds memory held by unused tokens

The store is an owned object with an explicit lifetime: construct it,
start() the sweeper, stop() it on shutdown (or use it as a context
manager).
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Optional

from notesafe.core.auth.tokens import TokenMinter
from notesafe.security.constants import (
    EPHEMERAL_SWEEP_INTERVAL_SECONDS,
    EPHEMERAL_TOKEN_TTL_SECONDS,
)


_log = logging.getLogger("notesafe.auth.csrf")


class ReadWriteLock:
    """
    Many concurrent readers or one writer.

    Waiting writers block new readers so a steady stream of reads cannot
    starve mutations.
    """

    __slots__ = ("_cond", "_readers", "_writer", "_writers_waiting")

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class EphemeralTokenStore:
    """
    Single-use token registry with background eviction.

    Usage:
        with EphemeralTokenStore(ttl=1800) as tokens:
            token = tokens.issue()        # send to the client
            ...
            if not tokens.consume(submitted):
                reject()

    Security Notes:
        - consume() removes the token under the exclusive lock, so two
          concurrent calls with the same token cannot both succeed
        - Expired tokens are treated as absent even before the sweeper
          has removed them
    """

    __slots__ = (
        "_tokens", "_lock", "_ttl", "_sweep_interval", "_minter",
        "_clock", "_stop_event", "_sweeper",
    )

    def __init__(
        self,
        ttl: float = EPHEMERAL_TOKEN_TTL_SECONDS,
        sweep_interval: float = EPHEMERAL_SWEEP_INTERVAL_SECONDS,
        minter: Optional[TokenMinter] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the token store.

        Args:
            ttl: Seconds a token stays valid after issue
            sweep_interval: Seconds between background sweeps
            minter: Token generator (default: TokenMinter())
            clock: Monotonic time source in seconds
        """
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if sweep_interval <= 0:
            raise ValueError("sweep_interval must be positive")

        self._tokens: Dict[str, float] = {}
        self._lock = ReadWriteLock()
        self._ttl = ttl
        self._sweep_interval = sweep_interval
        self._minter = minter or TokenMinter()
        self._clock = clock
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def running(self) -> bool:
        return self._sweeper is not None and self._sweeper.is_alive()

    def issue(self) -> str:
        """Create a token valid for ttl seconds."""
        token = self._minter.generate_token()
        expires_at = self._clock() + self._ttl
        with self._lock.write_locked():
            self._tokens[token] = expires_at
        return token

    def consume(self, token: str) -> bool:
        """
        Validate and burn a token.

        Returns:
            True exactly once for a live token; False for unknown,
            expired or already consumed tokens
        """
        if not token:
            return False

        with self._lock.write_locked():
            expires_at = self._tokens.get(token)
            if expires_at is None or self._clock() >= expires_at:
                return False
            del self._tokens[token]
        return True

    def is_valid(self, token: str) -> bool:
        """Check a token without consuming it."""
        if not token:
            return False

        with self._lock.read_locked():
            expires_at = self._tokens.get(token)
        return expires_at is not None and self._clock() < expires_at

    def sweep(self) -> int:
        """
        Remove every expired token.

        Returns:
            Number of tokens evicted
        """
        with self._lock.write_locked():
            now = self._clock()
            expired = [t for t, expires_at in self._tokens.items() if now >= expires_at]
            for token in expired:
                del self._tokens[token]

        if expired:
            _log.debug("Swept %d expired token(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._tokens)

    def start(self) -> None:
        """Start the background sweeper thread."""
        if self.running:
            return

        self._stop_event.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            daemon=True,
            name="EphemeralToken-Sweeper",
        )
        self._sweeper.start()
        _log.info("Token sweeper started (interval=%ss)", self._sweep_interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop the sweeper thread and wait for it to exit.

        If the thread outlives the timeout the store keeps tracking it, so
        start() will not launch a second sweeper beside it.
        """
        self._stop_event.set()
        if self._sweeper is None:
            return
        self._sweeper.join(timeout=timeout)
        if self._sweeper.is_alive():
            _log.warning("Token sweeper did not exit within %s seconds", timeout)
            return
        self._sweeper = None
        _log.info("Token sweeper stopped")

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self._sweep_interval):
            try:
                self.sweep()
            except Exception:
                _log.exception("Token sweep failed")

    def __enter__(self) -> EphemeralTokenStore:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
