"""
RescueGroups.org v5 public API client

Auth: API key in the Authorization header.
Search is a POST with a JSON:API filter body; pictures, locations and orgs
come back in the `included` side-table.
"""
from typing import List, Optional

from config import RESCUEGROUPS_API_KEY
from schema import RescueGroupsRaw, SearchCriteria, AgeGroup, SizeGroup, Gender
from providers.base_provider import BaseProvider, ProviderPage

INCLUDE = "orgs,locations,pictures"

SIZE_GROUPS = {
  SizeGroup.SMALL: "Small",
  SizeGroup.MEDIUM: "Medium",
  SizeGroup.LARGE: "Large",
  SizeGroup.EXTRA_LARGE: "X-Large",
}

AGE_GROUPS = {
  AgeGroup.BABY: "Baby",
  AgeGroup.YOUNG: "Young",
  AgeGroup.ADULT: "Adult",
  AgeGroup.SENIOR: "Senior",
}

SEXES = {
  Gender.MALE: "Male",
  Gender.FEMALE: "Female",
}


def _filter(field_name: str, operation: str, criteria) -> dict:
  return {"fieldName": field_name, "operation": operation, "criteria": criteria}


class RescueGroupsProvider(BaseProvider):
  """RescueGroups v5 public API client: API-key auth, JSON:API filter queries"""

  key = "rescuegroups"

  def __init__(self, api_key: Optional[str] = None, **kwargs):
    super().__init__(**kwargs)
    self.api_key = RESCUEGROUPS_API_KEY if api_key is None else api_key

  def is_configured(self) -> bool:
    return bool(self.api_key)

  def auth_headers(self, max_wait: float = 0.0) -> dict:
    return {
      "Authorization": self.api_key,
      "Content-Type": "application/vnd.api+json",
    }

  def translate_filter(self, criteria: SearchCriteria) -> Optional[dict]:
    filters = []
    body = {"data": {"filters": filters}}

    if criteria.location:
      radius = criteria.radius or 100
      if criteria.location.is_postcode:
        body["data"]["filterRadius"] = {"miles": radius, "postalcode": criteria.location.postcode}
      else:
        filters.append(_filter("locations.city", "equals", criteria.location.city))
        filters.append(_filter("locations.state", "equals", criteria.location.state))

    breed = criteria.provider_breed or criteria.breed
    if breed:
      filters.append(_filter("animals.breedPrimary", "contains", breed))

    if criteria.size and criteria.size in SIZE_GROUPS:
      filters.append(_filter("animals.sizeGroup", "equals", SIZE_GROUPS[criteria.size]))
    if criteria.age and criteria.age in AGE_GROUPS:
      filters.append(_filter("animals.ageGroup", "equals", AGE_GROUPS[criteria.age]))
    if criteria.gender and criteria.gender in SEXES:
      filters.append(_filter("animals.sex", "equals", SEXES[criteria.gender]))
    if criteria.special_needs:
      filters.append(_filter("animals.isSpecialNeeds", "equals", True))

    if criteria.updated_within_days:
      since = self.days_ago(criteria.updated_within_days)
      filters.append(_filter("animals.updatedDate", "greaterthan", since.strftime("%Y-%m-%d")))
    if criteria.updated_between_days:
      newest_days, oldest_days = criteria.updated_between_days
      filters.append(_filter("animals.updatedDate", "greaterthan", self.days_ago(oldest_days).strftime("%Y-%m-%d")))
      filters.append(_filter("animals.updatedDate", "lessthan", self.days_ago(newest_days).strftime("%Y-%m-%d")))

    return body

  def search(self, criteria: SearchCriteria, page: int = 1, limit: Optional[int] = None,
             max_wait: float = 0.0) -> ProviderPage:
    body = self.translate_filter(criteria)
    if body is None:
      return ProviderPage()

    limit = min(limit or self.page_limit, self.page_limit)
    data = self.request_json(
      "POST", "/animals/search/available/dogs",
      max_wait=max_wait,
      params={"include": INCLUDE, "limit": limit, "page": page},
      json_body=body,
    ) or {}

    animals = data.get("data") or []
    included = data.get("included") or []
    records = [RescueGroupsRaw(animal=animal, included=included) for animal in animals]

    meta = data.get("meta") or {}
    pages = meta.get("pages")
    if pages is not None:
      has_more = page < int(pages)
    else:
      has_more = len(animals) >= limit

    return ProviderPage(records=records, has_more=has_more, total=meta.get("count"))

  def get_by_id(self, native_id: str, max_wait: float = 0.0) -> Optional[RescueGroupsRaw]:
    data = self.request_json(
      "GET", f"/animals/{native_id}",
      max_wait=max_wait,
      allow_not_found=True,
      params={"include": INCLUDE},
    )
    if not data:
      return None

    animal = data.get("data")
    if isinstance(animal, list):
      animal = animal[0] if animal else None
    if not animal:
      return None
    return RescueGroupsRaw(animal=animal, included=data.get("included") or [])

  def list_known_breeds(self, max_wait: float = 0.0) -> List[str]:
    data = self.request_json(
      "GET", "/animals/breeds",
      max_wait=max_wait,
      params={"limit": 1000},
    ) or {}
    names = []
    for breed in data.get("data") or []:
      name = (breed.get("attributes") or {}).get("name")
      if name:
        names.append(name)
    return names
