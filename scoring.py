"""
Calculate visibility score for dogs
v3.0 - Overlooked-first ranking

Higher score = more overlooked. Results are ranked DESCENDING so the dogs
people scroll past (seniors, black dogs, no photos, no write-up) come first.
"""
from datetime import datetime
from typing import Dict, Optional

from config import (
  VISIBILITY_WEIGHTS, POPULAR_BREEDS, MEDICAL_KEYWORDS, DARK_COAT_KEYWORDS,
  RURAL_CITY_KEYWORDS, RURAL_ZIP_PREFIXES, SMALL_TOWN_NAME_LENGTH,
)
from schema import Dog, Gender, get_current_timestamp

MIN_SCORE = 0.0
MAX_SCORE = 100.0


def days_listed(dog: Dog, now: Optional[datetime] = None) -> int:
  """Whole days since the listing was published (0 when unknown)"""
  if not dog.published_at:
    return 0
  now = now or get_current_timestamp()
  return max(0, (now - dog.published_at).days)


def is_popular_breed(primary: str) -> bool:
  breed_lower = (primary or "").lower().strip()
  if not breed_lower:
    return False
  return any(popular in breed_lower or breed_lower in popular for popular in POPULAR_BREEDS)


def has_medical_keywords(description: Optional[str]) -> bool:
  text = (description or "").lower()
  return any(keyword in text for keyword in MEDICAL_KEYWORDS)


def has_dark_coat(dog: Dog) -> bool:
  colors = " ".join(dog.colors).lower()
  return any(keyword in colors for keyword in DARK_COAT_KEYWORDS)


def is_high_energy(energy_level: Optional[str]) -> bool:
  return "high" in (energy_level or "").lower()


def is_rural_location(dog: Dog) -> bool:
  """
  Small-town heuristic:
  - city name contains a rural keyword ("county", "township", ...)
  - city name is short (most metro names are longer)
  - postcode falls in a mostly-rural ZIP prefix
  """
  city = (dog.location.city or "").strip()
  city_lower = city.lower()

  if city and city_lower != "unknown":
    if any(keyword in city_lower for keyword in RURAL_CITY_KEYWORDS):
      return True
    if len(city) < SMALL_TOWN_NAME_LENGTH:
      return True

  postcode = (dog.location.postcode or "").strip()
  return any(postcode.startswith(prefix) for prefix in RURAL_ZIP_PREFIXES)


def score_breakdown(dog: Dog, now: Optional[datetime] = None) -> Dict[str, float]:
  """
  Per-term contributions to the visibility score.

  Only terms that contributed points are included. Pass `now` to pin the
  days-listed term.
  """
  weights = VISIBILITY_WEIGHTS
  terms = {}

  # Time listed
  days = days_listed(dog, now)
  if days:
    terms["days_listed"] = min(days * weights["days_listed_per_day"], weights["days_listed_max"])

  # Photo scarcity (placeholder doesn't count)
  photo_points = weights["photos"].get(len(dog.real_photos), 0)
  if photo_points:
    terms["photos"] = photo_points

  # Description scarcity
  description_length = len((dog.description or "").strip())
  for max_length, points in weights["description_bands"]:
    if description_length < max_length:
      terms["description"] = points
      break

  # Age and size
  age_points = weights["age"].get(dog.age.value, 0)
  if age_points:
    terms["age"] = age_points
  size_points = weights["size"].get(dog.size.value, 0)
  if size_points:
    terms["size"] = size_points

  # Breed popularity
  if dog.breed.mixed:
    terms["breed"] = weights["mixed_breed"]
  elif not is_popular_breed(dog.breed.primary):
    terms["breed"] = weights["rare_breed"]

  # Special needs and false-valued facts (unknown adds nothing)
  if dog.attributes.special_needs is True:
    terms["special_needs"] = weights["special_needs"]
  if dog.compatibility.children is False:
    terms["not_good_with_children"] = weights["not_good_with_children"]
  if dog.compatibility.dogs is False:
    terms["not_good_with_dogs"] = weights["not_good_with_dogs"]
  if dog.compatibility.cats is False:
    terms["not_good_with_cats"] = weights["not_good_with_cats"]
  if dog.attributes.house_trained is False:
    terms["not_house_trained"] = weights["not_house_trained"]
  if dog.attributes.spayed_neutered is False:
    terms["not_spayed_neutered"] = weights["not_spayed_neutered"]
  if dog.attributes.shots_current is False:
    terms["shots_not_current"] = weights["shots_not_current"]

  if has_medical_keywords(dog.description):
    terms["medical_keywords"] = weights["medical_keywords"]
  if is_high_energy(dog.energy_level):
    terms["high_energy"] = weights["high_energy"]
  if dog.gender == Gender.MALE:
    terms["male"] = weights["male"]
  if has_dark_coat(dog):
    terms["dark_coat"] = weights["dark_coat"]
  if is_rural_location(dog):
    terms["rural_location"] = weights["rural_location"]

  return terms


def score(dog: Dog, now: Optional[datetime] = None) -> float:
  """Visibility score in [0, 100], rounded to one decimal"""
  total = sum(score_breakdown(dog, now).values())
  return round(min(MAX_SCORE, max(MIN_SCORE, float(total))), 1)


def ensure_score(dog: Dog, now: Optional[datetime] = None) -> Dog:
  """Fill in visibility_score if the record doesn't carry one yet"""
  if dog.visibility_score is None:
    dog.visibility_score = score(dog, now)
  return dog
