#!/usr/bin/env python3

import threading
import time
from typing import Dict, Optional, Protocol, Tuple


class TokenCache(Protocol):
    """Key/value cache with per-entry expiry, injected where tokens are reused"""

    def get(self, key: str) -> Optional[str]:
        ...

    def put(self, key: str, value: str, ttl_seconds: Optional[float] = None):
        ...


class InMemoryTokenCache:
    """Thread-safe in-process TokenCache"""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def put(self, key: str, value: str, ttl_seconds: Optional[float] = None):
        """Store a value; a ttl of zero or less is not cached at all"""
        with self._lock:
            if ttl_seconds is not None and ttl_seconds <= 0:
                self._entries.pop(key, None)
                return
            expires_at = self._clock() + ttl_seconds if ttl_seconds is not None else None
            self._entries[key] = (value, expires_at)

    def clear(self):
        with self._lock:
            self._entries.clear()
