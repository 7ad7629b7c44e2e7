"""
Base client for external listing providers
"""
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Any, Dict

import requests

from config import PROVIDERS, USER_AGENT
from errors import ProviderRateLimited, ProviderUnavailable
from rate_limit import RateLimiter
from schema import RawRecord, SearchCriteria, get_current_timestamp

REQUEST_TIMEOUT = 30
DEFAULT_RETRY_AFTER = 60.0


@dataclass
class ProviderPage:
  """One page of raw search results"""
  records: List[RawRecord] = field(default_factory=list)
  has_more: bool = False
  total: Optional[int] = None


def parse_retry_after(value: Optional[str], default: float = DEFAULT_RETRY_AFTER) -> float:
  """Retry-After header in seconds (HTTP dates are not worth parsing here)"""
  if value is None:
    return default
  try:
    return max(0.0, float(value))
  except (TypeError, ValueError):
    return default


class BaseProvider:
  """
  Base class for listing provider clients.

  Owns the requests session, the provider's RateLimiter and the mapping of
  HTTP failures onto ProviderRateLimited / ProviderUnavailable. Subclasses
  add authentication and translate SearchCriteria into their query format.
  """

  key = ""

  def __init__(
    self,
    provider_config: Optional[dict] = None,
    session: Optional[requests.Session] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
    now: Callable[[], datetime] = get_current_timestamp,
  ):
    self.config = provider_config or PROVIDERS[self.key]
    self.name = self.config["name"]
    self.base_url = self.config["base_url"].rstrip("/")
    self.priority = self.config["priority"]
    self.page_limit = self.config.get("page_limit", 100)
    self.now = now
    self.session = session or requests.Session()
    self.session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})
    self.rate_limiter = RateLimiter(
      self.key,
      self.config["max_requests"],
      self.config["window_seconds"],
      self.config.get("min_interval", 0.0),
      clock=clock,
      sleep=sleep,
    )

  # ============================================
  # HTTP
  # ============================================

  def auth_headers(self, max_wait: float = 0.0) -> Dict[str, str]:
    """Override to add credentials to every request"""
    return {}

  def send(
    self,
    method: str,
    path: str,
    *,
    max_wait: float = 0.0,
    params: Optional[dict] = None,
    json_body: Optional[dict] = None,
    headers: Optional[dict] = None,
  ) -> requests.Response:
    """Rate-limited request; network failures become ProviderUnavailable"""
    self.rate_limiter.acquire(max_wait)

    url = f"{self.base_url}{path}"
    try:
      print(f"  🔍 {self.name}: {method} {path}")
      return self.session.request(
        method, url,
        params=params,
        json=json_body,
        headers=headers,
        timeout=REQUEST_TIMEOUT,
      )
    except requests.RequestException as e:
      print(f"  ❌ {self.name} request failed: {e}")
      raise ProviderUnavailable(self.key, str(e)) from e

  def parse_response(self, response: requests.Response, allow_not_found: bool = False) -> Optional[Any]:
    """Decode a JSON response or raise the matching provider error"""
    status = response.status_code

    if status == 404 and allow_not_found:
      return None

    if status == 429:
      retry_after = parse_retry_after(response.headers.get("Retry-After"))
      self.rate_limiter.penalize(retry_after)
      print(f"  ⏳ {self.name} rate limited (retry after {retry_after:.0f}s)")
      raise ProviderRateLimited(self.key, retry_after)

    if status >= 400:
      print(f"  ❌ {self.name} returned HTTP {status}")
      raise ProviderUnavailable(self.key, f"HTTP {status}", status_code=status)

    try:
      return response.json()
    except ValueError as e:
      print(f"  ❌ {self.name} sent invalid JSON: {e}")
      raise ProviderUnavailable(self.key, "invalid JSON response", status_code=status) from e

  def request_json(self, method: str, path: str, *, max_wait: float = 0.0,
                   allow_not_found: bool = False, **kwargs) -> Optional[Any]:
    headers = dict(kwargs.pop("headers", None) or {})
    headers.update(self.auth_headers(max_wait))
    response = self.send(method, path, max_wait=max_wait, headers=headers, **kwargs)
    return self.parse_response(response, allow_not_found)

  # ============================================
  # Helpers for subclasses
  # ============================================

  def days_ago(self, days: int) -> datetime:
    return self.now() - timedelta(days=days)

  # ============================================
  # Provider contract
  # ============================================

  def is_configured(self) -> bool:
    """True when credentials are present"""
    raise NotImplementedError("Subclass must implement is_configured()")

  def translate_filter(self, criteria: SearchCriteria) -> Optional[dict]:
    """
    Map criteria onto this provider's query format.
    Returns None when a facet can't be expressed here (caller skips us).
    """
    raise NotImplementedError("Subclass must implement translate_filter()")

  def search(self, criteria: SearchCriteria, page: int = 1, limit: Optional[int] = None,
             max_wait: float = 0.0) -> ProviderPage:
    raise NotImplementedError("Subclass must implement search()")

  def get_by_id(self, native_id: str, max_wait: float = 0.0) -> Optional[RawRecord]:
    raise NotImplementedError("Subclass must implement get_by_id()")

  def list_known_breeds(self, max_wait: float = 0.0) -> List[str]:
    raise NotImplementedError("Subclass must implement list_known_breeds()")
