"""
Validated search criteria

Built by search_normalizer from caller input, and by the sync pipeline
from its diversity filters. Providers translate these into their own
query formats.
"""
from dataclasses import dataclass, replace
from typing import Optional, Tuple, Dict, Any

from .dog_schema import AgeGroup, SizeGroup, Gender


@dataclass(frozen=True)
class ParsedLocation:
  """A location we can hand to a provider: ZIP, or city + state code"""
  postcode: Optional[str] = None
  city: Optional[str] = None
  state: Optional[str] = None

  @property
  def is_postcode(self) -> bool:
    return bool(self.postcode)

  def as_query(self) -> str:
    """Provider-style location string ("80202" or "Denver, CO")"""
    if self.postcode:
      return self.postcode
    return f"{self.city}, {self.state}"


@dataclass(frozen=True)
class SearchCriteria:
  location: Optional[ParsedLocation] = None
  radius: Optional[int] = None

  # breed: caller's text, used against our own store
  # provider_breed: the provider vocabulary name it fuzzy-matched (if any)
  breed: Optional[str] = None
  provider_breed: Optional[str] = None

  age: Optional[AgeGroup] = None
  size: Optional[SizeGroup] = None
  gender: Optional[Gender] = None
  special_needs: Optional[bool] = None

  # Sync diversity windows (days before now)
  updated_within_days: Optional[int] = None
  updated_between_days: Optional[Tuple[int, int]] = None

  def for_provider(self, provider_breed: Optional[str]) -> "SearchCriteria":
    """Criteria as sent to a provider: only the vocabulary match filters breed"""
    return replace(self, breed=None, provider_breed=provider_breed)

  def to_dict(self) -> Dict[str, Any]:
    return {
      "location": self.location.as_query() if self.location else None,
      "radius": self.radius,
      "breed": self.breed,
      "provider_breed": self.provider_breed,
      "age": self.age.value if self.age else None,
      "size": self.size.value if self.size else None,
      "gender": self.gender.value if self.gender else None,
      "special_needs": self.special_needs,
    }
