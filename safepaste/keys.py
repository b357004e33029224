"""
SafePaste API key store and per-key rate limiting.

The store is an explicit object handed to the API app, never module state.
Each key owns a fixed one-minute window guarded by its own lock, so updates
for one key are serialized while different keys never contend. The window
start only ever moves forward (monotonic clock).
"""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger("safepaste.keys")

RATE_WINDOW_SECONDS = 60.0

DEFAULT_DEMO_KEY = "sp_demo_key_12345"
DEFAULT_PRO_KEY = "sp_pro_key_67890"


@dataclass
class RateWindow:
    """Fixed-window request counter for a single key."""
    limit: int
    window: float = RATE_WINDOW_SECONDS
    count: int = 0
    window_start: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def hit(self, now: float) -> bool:
        """Count one request at ``now``; True if it is within the limit."""
        with self._lock:
            if now - self.window_start > self.window:
                self.count = 0
                self.window_start = max(self.window_start, now)
            self.count += 1
            return self.count <= self.limit

    def retry_after_ms(self, now: float) -> int:
        with self._lock:
            return max(0, int((self.window - (now - self.window_start)) * 1000))

    @property
    def used(self) -> int:
        return self.count


@dataclass
class APIKey:
    key: str
    id: str
    plan: str = "free"
    rate_limit: int = 60
    active: bool = True


@dataclass
class RateDecision:
    allowed: bool
    retry_after_ms: int = 0


class KeyStore:
    """
    In-memory API key registry with per-key rate windows.

    Usage:
        store = KeyStore()
        store.register("acme", "sp_live_...", plan="pro", rate_limit=300)
        key = store.lookup("sp_live_...")
        decision = store.check_rate(key)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._keys: dict[str, APIKey] = {}
        self._windows: dict[str, RateWindow] = {}
        self._registry_lock = threading.Lock()

    @classmethod
    def from_env(cls) -> "KeyStore":
        """Seed demo keys from SAFEPASTE_DEMO_KEY / SAFEPASTE_PRO_KEY."""
        store = cls()
        demo = os.environ.get("SAFEPASTE_DEMO_KEY", DEFAULT_DEMO_KEY)
        if demo:
            store.register("demo", demo, plan="free", rate_limit=30)
        pro = os.environ.get("SAFEPASTE_PRO_KEY", DEFAULT_PRO_KEY)
        if pro:
            store.register("test-pro", pro, plan="pro", rate_limit=300)
        return store

    def register(self, key_id: str, key: str, plan: str = "free", rate_limit: int = 60) -> APIKey:
        api_key = APIKey(key=key, id=key_id, plan=plan, rate_limit=rate_limit)
        with self._registry_lock:
            self._keys[key] = api_key
            self._windows[key] = RateWindow(limit=rate_limit, window_start=self._clock())
        return api_key

    def lookup(self, key: str) -> Optional[APIKey]:
        api_key = self._keys.get(key)
        if api_key is None or not api_key.active:
            return None
        return api_key

    def check_rate(self, api_key: APIKey) -> RateDecision:
        window = self._windows[api_key.key]
        now = self._clock()
        if window.hit(now):
            return RateDecision(allowed=True)
        logger.info("Rate limit exceeded for key %s (%s)", api_key.id, api_key.plan)
        return RateDecision(allowed=False, retry_after_ms=window.retry_after_ms(now))

    def usage(self, api_key: APIKey) -> int:
        window = self._windows.get(api_key.key)
        return window.used if window else 0

    def __len__(self) -> int:
        return len(self._keys)
