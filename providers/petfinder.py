"""
Petfinder v2 API client

Auth: OAuth2 client-credentials. The bearer token is cached and refreshed
ahead of expiry; a 401 forces exactly one refresh and one retry.
"""
import time
from typing import List, Optional, Tuple

import requests

from config import PETFINDER_CLIENT_ID, PETFINDER_CLIENT_SECRET
from errors import AuthRefreshFailure, ProviderUnavailable
from rate_limit import TokenCache
from schema import PetfinderRaw, SearchCriteria, AgeGroup, SizeGroup, Gender
from providers.base_provider import BaseProvider, ProviderPage, REQUEST_TIMEOUT

SIZES = {
  SizeGroup.SMALL: "small",
  SizeGroup.MEDIUM: "medium",
  SizeGroup.LARGE: "large",
  SizeGroup.EXTRA_LARGE: "xlarge",
}

AGES = {
  AgeGroup.BABY: "baby",
  AgeGroup.YOUNG: "young",
  AgeGroup.ADULT: "adult",
  AgeGroup.SENIOR: "senior",
}

GENDERS = {
  Gender.MALE: "male",
  Gender.FEMALE: "female",
}

MAX_DISTANCE = 500


class PetfinderProvider(BaseProvider):
  """Petfinder v2 API client: OAuth2 client-credentials token, query-string search"""

  key = "petfinder"

  def __init__(self, client_id: Optional[str] = None, client_secret: Optional[str] = None,
               token_clock=time.monotonic, **kwargs):
    super().__init__(**kwargs)
    self.client_id = PETFINDER_CLIENT_ID if client_id is None else client_id
    self.client_secret = PETFINDER_CLIENT_SECRET if client_secret is None else client_secret
    self.tokens = TokenCache(
      self.fetch_token,
      refresh_margin=self.config.get("token_refresh_margin", 300),
      clock=token_clock,
    )

  def is_configured(self) -> bool:
    return bool(self.client_id and self.client_secret)

  # ============================================
  # Auth
  # ============================================

  def fetch_token(self) -> Tuple[str, float]:
    """POST /oauth2/token; returns (access_token, expires_in)"""
    print(f"  🔑 {self.name}: requesting access token")
    try:
      response = self.session.request(
        "POST", f"{self.base_url}/oauth2/token",
        data={
          "grant_type": "client_credentials",
          "client_id": self.client_id,
          "client_secret": self.client_secret,
        },
        timeout=REQUEST_TIMEOUT,
      )
    except requests.RequestException as e:
      print(f"  ❌ {self.name} token request failed: {e}")
      raise ProviderUnavailable(self.key, f"token request failed: {e}") from e

    if response.status_code in (400, 401, 403):
      raise AuthRefreshFailure(self.key, "client credentials rejected", status_code=response.status_code)
    if response.status_code >= 400:
      raise ProviderUnavailable(self.key, f"token endpoint HTTP {response.status_code}",
                                status_code=response.status_code)

    try:
      payload = response.json()
    except ValueError as e:
      raise ProviderUnavailable(self.key, "invalid token response") from e

    token = payload.get("access_token")
    if not token:
      raise AuthRefreshFailure(self.key, "token response had no access_token")
    return token, float(payload.get("expires_in") or 3600)

  def request_json(self, method: str, path: str, *, max_wait: float = 0.0,
                   allow_not_found: bool = False, **kwargs) -> Optional[dict]:
    token = self.tokens.get()
    response = self.send(method, path, max_wait=max_wait,
                         headers={"Authorization": f"Bearer {token}"}, **kwargs)

    if response.status_code == 401:
      print(f"  🔑 {self.name}: token rejected, refreshing once")
      token = self.tokens.force_refresh(stale_token=token)
      response = self.send(method, path, max_wait=max_wait,
                           headers={"Authorization": f"Bearer {token}"}, **kwargs)
      if response.status_code == 401:
        self.tokens.invalidate()
        print(f"  ❌ {self.name}: still unauthorized after refresh")
        raise AuthRefreshFailure(self.key, "unauthorized after token refresh", status_code=401)

    return self.parse_response(response, allow_not_found)

  # ============================================
  # Provider contract
  # ============================================

  def translate_filter(self, criteria: SearchCriteria) -> Optional[dict]:
    # No special-needs facet on Petfinder's search
    if criteria.special_needs:
      return None

    params = {"type": "dog", "status": "adoptable"}

    if criteria.location:
      params["location"] = criteria.location.as_query()
      params["distance"] = min(criteria.radius or 100, MAX_DISTANCE)

    breed = criteria.provider_breed or criteria.breed
    if breed:
      params["breed"] = breed

    if criteria.size and criteria.size in SIZES:
      params["size"] = SIZES[criteria.size]
    if criteria.age and criteria.age in AGES:
      params["age"] = AGES[criteria.age]
    if criteria.gender and criteria.gender in GENDERS:
      params["gender"] = GENDERS[criteria.gender]

    if criteria.updated_within_days:
      params["after"] = self.days_ago(criteria.updated_within_days).isoformat()
    if criteria.updated_between_days:
      newest_days, oldest_days = criteria.updated_between_days
      params["after"] = self.days_ago(oldest_days).isoformat()
      params["before"] = self.days_ago(newest_days).isoformat()

    return params

  def search(self, criteria: SearchCriteria, page: int = 1, limit: Optional[int] = None,
             max_wait: float = 0.0) -> ProviderPage:
    params = self.translate_filter(criteria)
    if params is None:
      return ProviderPage()

    limit = min(limit or self.page_limit, self.page_limit)
    params.update({"limit": limit, "page": page})

    data = self.request_json("GET", "/animals", max_wait=max_wait, params=params) or {}

    animals = data.get("animals") or []
    records = [PetfinderRaw(animal=animal) for animal in animals]

    pagination = data.get("pagination") or {}
    total_pages = pagination.get("total_pages")
    if total_pages is not None:
      has_more = page < int(total_pages)
    else:
      has_more = len(animals) >= limit

    return ProviderPage(records=records, has_more=has_more, total=pagination.get("total_count"))

  def get_by_id(self, native_id: str, max_wait: float = 0.0) -> Optional[PetfinderRaw]:
    data = self.request_json("GET", f"/animals/{native_id}", max_wait=max_wait, allow_not_found=True)
    if not data:
      return None

    animal = data.get("animal")
    if not animal:
      return None
    if str(animal.get("type") or "dog").lower() != "dog":
      return None
    return PetfinderRaw(animal=animal)

  def list_known_breeds(self, max_wait: float = 0.0) -> List[str]:
    data = self.request_json("GET", "/types/dog/breeds", max_wait=max_wait) or {}
    return [breed["name"] for breed in data.get("breeds") or [] if breed.get("name")]
