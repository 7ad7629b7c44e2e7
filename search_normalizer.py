"""
Search input normalization
v1.1.0 - Fuzzy breed vocabulary

Turns raw caller input into SearchCriteria, rejecting anything we can't
hand to a provider verbatim. Runs before any store or provider call.

Location accepts:
  - 5-digit ZIP ("80202", "80202-1234")
  - "City, ST" or "City, State"
  - bare "city st"
and rejects vague text ("rural", "anywhere", "you pick").
"""
import re
import threading
import time
from typing import Callable, List, Optional

from rapidfuzz import fuzz, process, utils

from config import BREED_ALIASES, BREED_MATCH, WATERFALL
from errors import DogEngineError, InvalidInput
from schema import AgeGroup, SizeGroup, Gender, ParsedLocation, SearchCriteria

US_STATES = {
  "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas",
  "CA": "California", "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware",
  "DC": "District of Columbia", "FL": "Florida", "GA": "Georgia", "HI": "Hawaii",
  "ID": "Idaho", "IL": "Illinois", "IN": "Indiana", "IA": "Iowa",
  "KS": "Kansas", "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine",
  "MD": "Maryland", "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota",
  "MS": "Mississippi", "MO": "Missouri", "MT": "Montana", "NE": "Nebraska",
  "NV": "Nevada", "NH": "New Hampshire", "NJ": "New Jersey", "NM": "New Mexico",
  "NY": "New York", "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio",
  "OK": "Oklahoma", "OR": "Oregon", "PA": "Pennsylvania", "PR": "Puerto Rico",
  "RI": "Rhode Island", "SC": "South Carolina", "SD": "South Dakota", "TN": "Tennessee",
  "TX": "Texas", "UT": "Utah", "VT": "Vermont", "VA": "Virginia",
  "WA": "Washington", "WV": "West Virginia", "WI": "Wisconsin", "WY": "Wyoming",
}
STATE_NAMES = {name.lower(): code for code, name in US_STATES.items()}

# Whole-input phrases that mean "I don't care" rather than a place
AMBIGUOUS_LOCATIONS = {
  "rural", "anywhere", "you pick", "any", "anyplace", "any place", "near me",
  "nearby", "around here", "somewhere", "wherever", "everywhere", "local",
  "countryside", "the country", "usa", "us", "united states", "america",
}

# "any"/"no preference" for enum filters
ANY_VALUES = {"", "any", "all", "no preference", "either", "doesn't matter"}

# Vague phrases anywhere in the input ("dogs near me")
_VAGUE_PHRASE = re.compile(r"\b(anywhere|near me|you pick|nearby|wherever|everywhere|somewhere)\b", re.IGNORECASE)

MAX_RADIUS = 500

_ZIP = re.compile(r"^(\d{5})(?:-\d{4})?$")
_TRAILING_ZIP = re.compile(r"^(.*?)[,\s]+(\d{5})(?:-\d{4})?$")
_CITY = re.compile(r"^[a-z][a-z .'\-]*$", re.IGNORECASE)


def _title_city(city: str) -> str:
  return " ".join(word[:1].upper() + word[1:].lower() for word in city.split())


def _state_code(text: str) -> Optional[str]:
  text = text.strip().rstrip(".").strip()
  if len(text) == 2 and text.upper() in US_STATES:
    return text.upper()
  return STATE_NAMES.get(text.lower())


def _is_place(city: str) -> bool:
  # "rural TX" names a state, not a town
  return bool(_CITY.match(city)) and city.lower().strip(" .") not in AMBIGUOUS_LOCATIONS


def _city_state(text: str) -> Optional[ParsedLocation]:
  """'City, ST' / 'City, State' / 'city st' / 'city state name'"""
  if "," in text:
    city, _, state = text.rpartition(",")
    code = _state_code(state)
    city = city.strip()
    if code and city and _is_place(city):
      return ParsedLocation(city=_title_city(city), state=code)
    return None

  words = text.split()
  # Try the longest state-name suffix first ("new york", "north carolina")
  for size in (3, 2, 1):
    if len(words) <= size:
      continue
    code = _state_code(" ".join(words[-size:]))
    city = " ".join(words[:-size])
    if code and _is_place(city):
      return ParsedLocation(city=_title_city(city), state=code)
  return None


def parse_location(text: Optional[str]) -> Optional[ParsedLocation]:
  """
  Parse caller location text.

  Empty input means "no location filter" and returns None. Anything
  non-empty must be a ZIP or a city + US state; otherwise InvalidInput.
  """
  if text is None:
    return None
  cleaned = re.sub(r"\s+", " ", str(text)).strip()
  if not cleaned:
    return None

  if cleaned.lower().strip(" .!?") in AMBIGUOUS_LOCATIONS or _VAGUE_PHRASE.search(cleaned):
    raise InvalidInput(
      f"Location '{cleaned}' is too vague. Use a ZIP code or 'City, ST'.",
      field="location", value=text
    )

  zip_match = _ZIP.match(cleaned)
  if zip_match:
    return ParsedLocation(postcode=zip_match.group(1))

  # "Denver, CO 80202" - the ZIP is the most precise part
  trailing = _TRAILING_ZIP.match(cleaned)
  if trailing and _city_state(trailing.group(1).strip()):
    return ParsedLocation(postcode=trailing.group(2))

  location = _city_state(cleaned)
  if location:
    return location

  raise InvalidInput(
    f"Couldn't understand location '{cleaned}'. Use a ZIP code or 'City, ST'.",
    field="location", value=text
  )


def _parse_enum(value, enum_class, field_name: str):
  if value is None:
    return None
  if isinstance(value, enum_class):
    return None if value.value == "Unknown" else value
  text = str(value).strip()
  if text.lower() in ANY_VALUES:
    return None
  parsed = enum_class.from_string(text)
  if parsed.value == "Unknown":
    raise InvalidInput(f"Unrecognized {field_name} '{text}'", field=field_name, value=value)
  return parsed


def normalize_age(value) -> Optional[AgeGroup]:
  return _parse_enum(value, AgeGroup, "age")


def normalize_size(value) -> Optional[SizeGroup]:
  return _parse_enum(value, SizeGroup, "size")


def normalize_gender(value) -> Optional[Gender]:
  return _parse_enum(value, Gender, "gender")


def normalize_radius(value) -> Optional[int]:
  if value is None or value == "":
    return None
  try:
    radius = int(value)
  except (TypeError, ValueError):
    raise InvalidInput(f"Radius must be a whole number of miles, got '{value}'", field="radius", value=value)
  if radius < 1 or radius > MAX_RADIUS:
    raise InvalidInput(f"Radius must be between 1 and {MAX_RADIUS} miles", field="radius", value=value)
  return radius


def normalize_breed_text(value: Optional[str]) -> Optional[str]:
  if value is None:
    return None
  text = re.sub(r"\s+", " ", str(value)).strip().strip(",.;:")
  if text.lower() in ANY_VALUES:
    return None
  return text or None


def validate_pagination(page=1, page_size=None):
  """Returns (page, page_size) as ints or raises InvalidInput"""
  if page_size is None:
    page_size = WATERFALL["default_page_size"]
  try:
    page = int(page)
    page_size = int(page_size)
  except (TypeError, ValueError):
    raise InvalidInput("page and page_size must be whole numbers", field="page", value=page)
  if page < 1:
    raise InvalidInput("page must be 1 or greater", field="page", value=page)
  if page_size < 1 or page_size > WATERFALL["max_page_size"]:
    raise InvalidInput(
      f"page_size must be between 1 and {WATERFALL['max_page_size']}",
      field="page_size", value=page_size
    )
  return page, page_size


def build_criteria(
  location: Optional[str] = None,
  breed: Optional[str] = None,
  age=None,
  size=None,
  gender=None,
  special_needs: Optional[bool] = None,
  radius=None,
) -> SearchCriteria:
  """Validate caller filters into SearchCriteria (raises InvalidInput)"""
  parsed_location = parse_location(location)
  parsed_radius = normalize_radius(radius)
  if parsed_location and parsed_radius is None:
    parsed_radius = WATERFALL["default_radius"]

  return SearchCriteria(
    location=parsed_location,
    radius=parsed_radius,
    breed=normalize_breed_text(breed),
    age=normalize_age(age),
    size=normalize_size(size),
    gender=normalize_gender(gender),
    special_needs=True if special_needs else None,
  )


class BreedMatcher:
  """
  Maps free-text breed input onto a provider's breed vocabulary.

  Order: exact name, alias table, then fuzzy match (token sort ratio) at
  or above the threshold. No match means "no breed filter".
  The vocabulary is fetched lazily and cached for cache_ttl_seconds.
  """

  def __init__(
    self,
    fetch_breeds: Callable[[], List[str]],
    threshold: float = BREED_MATCH["threshold"],
    cache_ttl: float = BREED_MATCH["cache_ttl_seconds"],
    clock: Callable[[], float] = time.monotonic,
  ):
    self._fetch_breeds = fetch_breeds
    self.threshold = threshold
    self.cache_ttl = cache_ttl
    self._clock = clock
    self._lock = threading.Lock()
    self._breeds: List[str] = []
    self._fetched_at: Optional[float] = None

  def vocabulary(self) -> List[str]:
    with self._lock:
      now = self._clock()
      if self._fetched_at is not None and now - self._fetched_at < self.cache_ttl:
        return self._breeds

      try:
        breeds = [b for b in self._fetch_breeds() if b]
      except DogEngineError as e:
        print(f"  ⚠️  Breed list unavailable: {e}")
        return self._breeds

      self._breeds = breeds
      self._fetched_at = now
      return self._breeds

  def match(self, text: Optional[str]) -> Optional[str]:
    query = normalize_breed_text(text)
    if not query:
      return None

    query_lower = query.lower()
    vocabulary = self.vocabulary()
    by_lower = {breed.lower(): breed for breed in vocabulary}

    if query_lower in by_lower:
      return by_lower[query_lower]

    alias = BREED_ALIASES.get(query_lower)
    if alias:
      return by_lower.get(alias.lower(), alias)

    if not vocabulary:
      return None

    result = process.extractOne(
      query,
      vocabulary,
      scorer=fuzz.token_sort_ratio,
      processor=utils.default_process,
      score_cutoff=self.threshold * 100,
    )
    if result is None:
      return None
    return result[0]
