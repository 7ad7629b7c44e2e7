"""
Error types for the dog visibility engine

Hierarchy:
  DogEngineError
  ├── InvalidInput            - bad/ambiguous search input, rejected up front
  ├── ProviderRateLimited     - 429 or local limiter block
  ├── ProviderUnavailable     - network, 5xx, auth failure
  │   └── AuthRefreshFailure  - forced token refresh did not help
  ├── PersistenceFailure      - store read/write failed
  └── NoResultsFound          - every source exhausted, nothing found

Only InvalidInput and NoResultsFound (plus ProviderRateLimited when every
source was limited) reach search callers. Everything else is absorbed and
printed where it happens.
"""
from typing import Optional, Dict, Any


class DogEngineError(Exception):
  """Base class for all engine errors"""

  def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None):
    super().__init__(message)
    self.message = message
    self.detail = detail or {}


class InvalidInput(DogEngineError):
  """Malformed or ambiguous search input"""

  def __init__(self, reason: str, *, field: Optional[str] = None, value: Any = None):
    super().__init__(reason, detail={"field": field, "value": value})
    self.reason = reason
    self.field = field
    self.value = value


class ProviderRateLimited(DogEngineError):
  """A provider (or our own limiter for it) says slow down"""

  def __init__(self, provider: str, retry_after: float):
    retry_after = max(0.0, float(retry_after))
    super().__init__(
      f"{provider} rate limited, retry after {retry_after:.1f}s",
      detail={"provider": provider, "retry_after": retry_after}
    )
    self.provider = provider
    self.retry_after = retry_after


class ProviderUnavailable(DogEngineError):
  """Provider could not be reached or refused the request"""

  def __init__(self, provider: str, reason: str, *, status_code: Optional[int] = None):
    super().__init__(
      f"{provider} unavailable: {reason}",
      detail={"provider": provider, "status_code": status_code}
    )
    self.provider = provider
    self.reason = reason
    self.status_code = status_code


class AuthRefreshFailure(ProviderUnavailable):
  """Bearer token still rejected after one forced refresh"""


class PersistenceFailure(DogEngineError):
  """Store read or write failed"""


class NoResultsFound(DogEngineError):
  """All sources were consulted and none produced a dog"""

  def __init__(self, sources_tried: Optional[list] = None):
    sources_tried = sources_tried or []
    super().__init__(
      "No dogs found in any source",
      detail={"sources_tried": sources_tried}
    )
    self.sources_tried = sources_tried
