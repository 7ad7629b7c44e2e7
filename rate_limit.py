"""
Per-provider request throttling and bearer-token caching

One RateLimiter and (for OAuth providers) one TokenCache live on each
provider client for the life of the process. Both are shared by every
search and sync thread using that client, so all state changes happen
under the instance lock.
"""
import threading
import time
from typing import Callable, Optional, Tuple

from errors import ProviderRateLimited


class RateLimiter:
  """
  Fixed-window limiter with a minimum gap between requests.

  acquire(max_wait) reserves the next request slot. If the slot is at most
  max_wait seconds away the caller sleeps until it; otherwise nothing is
  reserved and ProviderRateLimited is raised with the wait as retry_after.
  Searches call with a short max_wait, sync passes with a long one.
  """

  def __init__(
    self,
    name: str,
    max_requests: int,
    window_seconds: float,
    min_interval: float = 0.0,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
  ):
    if max_requests < 1:
      raise ValueError("max_requests must be at least 1")
    self.name = name
    self.max_requests = max_requests
    self.window_seconds = window_seconds
    self.min_interval = min_interval
    self._clock = clock
    self._sleep = sleep
    self._lock = threading.Lock()

    # RateLimitWindow
    self.request_count = 0
    self.window_reset_at: Optional[float] = None
    self.last_request_at: Optional[float] = None

  def _next_slot(self, now: float) -> float:
    slot = now
    if self.last_request_at is not None:
      slot = max(slot, self.last_request_at + self.min_interval)
    if (self.window_reset_at is not None
        and slot < self.window_reset_at
        and self.request_count >= self.max_requests):
      slot = self.window_reset_at
    return slot

  def wait_time(self) -> float:
    """Seconds until a request could go out (0 = now)"""
    with self._lock:
      now = self._clock()
      return max(0.0, self._next_slot(now) - now)

  def acquire(self, max_wait: float = 0.0) -> float:
    """Reserve a request slot, sleeping up to max_wait. Returns seconds waited."""
    with self._lock:
      now = self._clock()
      slot = self._next_slot(now)
      wait = max(0.0, slot - now)
      if wait > max_wait:
        raise ProviderRateLimited(self.name, wait)

      if self.window_reset_at is None or slot >= self.window_reset_at:
        self.request_count = 0
        self.window_reset_at = slot + self.window_seconds
      self.request_count += 1
      self.last_request_at = slot

    if wait > 0:
      self._sleep(wait)
    return wait

  def penalize(self, retry_after: float):
    """Provider answered 429: block the whole window until retry_after passes"""
    with self._lock:
      now = self._clock()
      self.request_count = self.max_requests
      self.window_reset_at = max(self.window_reset_at or now, now + max(0.0, retry_after))


class TokenCache:
  """
  Cached bearer token, refreshed `refresh_margin` seconds before expiry.

  fetch_token() must return (token, expires_in_seconds).
  """

  def __init__(
    self,
    fetch_token: Callable[[], Tuple[str, float]],
    refresh_margin: float = 300,
    clock: Callable[[], float] = time.monotonic,
  ):
    self._fetch_token = fetch_token
    self.refresh_margin = refresh_margin
    self._clock = clock
    self._lock = threading.Lock()

    # TokenCacheEntry
    self.token: Optional[str] = None
    self.expires_at: Optional[float] = None

  def _needs_refresh(self, now: float) -> bool:
    return self.token is None or self.expires_at is None or now >= self.expires_at - self.refresh_margin

  def _refresh(self, now: float) -> str:
    token, expires_in = self._fetch_token()
    self.token = token
    self.expires_at = now + float(expires_in)
    return token

  def get(self) -> str:
    with self._lock:
      now = self._clock()
      if self._needs_refresh(now):
        return self._refresh(now)
      return self.token

  def force_refresh(self, stale_token: Optional[str] = None) -> str:
    """
    Replace a token the provider rejected.

    If another thread already swapped out stale_token, its replacement is
    returned without fetching again.
    """
    with self._lock:
      if stale_token is not None and self.token is not None and self.token != stale_token:
        return self.token
      return self._refresh(self._clock())

  def invalidate(self):
    with self._lock:
      self.token = None
      self.expires_at = None
