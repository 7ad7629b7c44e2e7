"""
Dog Formatter
v2.0.0 - Tagged payloads

Turns raw listings from any source into the canonical Dog:

  normalize(StoreRaw(...))         - row from our own store
  normalize(RescueGroupsRaw(...))  - RescueGroups v5 animal + included side-table
  normalize(PetfinderRaw(...))     - Petfinder v2 animal

Missing optional fields fall back to documented defaults (breed "Mixed
Breed", age/size/gender/city/state "Unknown") and never raise. Photos are
flattened to one URL per picture, best resolution first; a listing with
none gets the placeholder photo.
"""
import html
import json
import re
from typing import Any, Dict, Iterable, List, Optional

from bs4 import BeautifulSoup

from config import PLACEHOLDER_PHOTO_URL, PROVIDERS, STORE_PRIORITY
from schema import (
  Dog, DogStatus, Breed, Location, Attributes, Compatibility, Provenance,
  RawRecord, StoreRaw, RescueGroupsRaw, PetfinderRaw,
  parse_tri_state, parse_timestamp,
)

# Largest first
PHOTO_RESOLUTIONS = ["full", "original", "large", "medium", "small", "thumbnail"]

MIXED_BREED_NAMES = {"mixed breed", "mixed", "mutt", "mix"}

_CONTROL_CHARS = re.compile(r"[\u0000-\u001F\u007F-\u009F]")
_WHITESPACE = re.compile(r"\s+")


def normalize(raw: RawRecord) -> Dog:
  """Normalize a tagged raw payload into a canonical Dog"""
  formatter = _FORMATTERS.get(raw.source_kind)
  if formatter is None:
    raise ValueError(f"Unknown source kind: {raw.source_kind}")

  dog = formatter(raw)

  if not dog.photos:
    dog.photos = [PLACEHOLDER_PHOTO_URL]
  return dog


# ============================================
# Shared helpers
# ============================================

def _first(data: Dict[str, Any], *keys: str) -> Any:
  """First key present with a non-empty value (False and 0 count as present)"""
  for key in keys:
    value = data.get(key)
    if value is not None and value != "":
      return value
  return None


def _text(value: Any) -> Optional[str]:
  if value is None:
    return None
  text = str(value).strip()
  return text or None


def _float(value: Any) -> Optional[float]:
  if value is None or value == "":
    return None
  try:
    return float(value)
  except (TypeError, ValueError):
    return None


def best_photo_url(photo: Any) -> Optional[str]:
  """
  Pick the highest-resolution URL out of one photo entry.

  Handles flat strings, resolution-keyed dicts ({"large": "..."}) and
  nested resolution dicts ({"large": {"url": "..."}}).
  """
  if not photo:
    return None
  if isinstance(photo, str):
    return photo.strip() or None
  if not isinstance(photo, dict):
    return None

  for resolution in PHOTO_RESOLUTIONS:
    value = photo.get(resolution)
    if isinstance(value, dict):
      value = value.get("url")
    if isinstance(value, str) and value.strip():
      return value.strip()

  url = photo.get("url")
  if isinstance(url, str) and url.strip():
    return url.strip()
  return None


def _photo_order(photo: Any) -> float:
  # Entries without a usable order go last
  order = _float(photo.get("order")) if isinstance(photo, dict) else None
  return order if order is not None else 99


def flatten_photos(photos: Optional[Iterable[Any]]) -> List[str]:
  """One URL per photo, in listing order (honoring an 'order' key), no repeats"""
  if not photos:
    return []

  entries = list(photos)
  if any(isinstance(p, dict) and "order" in p for p in entries):
    entries = sorted(entries, key=_photo_order)

  urls = []
  seen = set()
  for entry in entries:
    url = best_photo_url(entry)
    if url and url not in seen:
      seen.add(url)
      urls.append(url)
  return urls


def clean_description(text: Optional[str]) -> Optional[str]:
  """Strip HTML (and tracking-pixel images), entities and control characters"""
  if not text:
    return None

  text = str(text)
  if "<" in text or "&" in text:
    soup = BeautifulSoup(text, "html.parser")
    for img in soup.find_all("img"):
      img.decompose()
    text = html.unescape(soup.get_text(" "))

  text = _CONTROL_CHARS.sub(" ", text)
  text = _WHITESPACE.sub(" ", text).strip()
  return text or None


def truncate_description(description: Optional[str], max_length: int = 150) -> str:
  """
  Shorten a description for list views, preferring a sentence boundary.

  Detail views always get the full text; this is only for summaries.
  """
  if not description:
    return ""
  if len(description) <= max_length:
    return description

  truncated = description[:max_length]
  last_sentence = truncated.rfind(".")
  last_space = truncated.rfind(" ")

  if last_sentence > max_length * 0.7:
    return description[:last_sentence + 1]
  elif last_space > max_length * 0.8:
    return description[:last_space] + "..."
  else:
    return truncated + "..."


def to_summary_dict(dog: Dog, max_length: int = 150) -> Dict[str, Any]:
  """Dog as a dict with the description truncated for result lists"""
  result = dog.to_dict()
  result["description"] = truncate_description(dog.description, max_length)
  return result


def _make_breed(primary: Any, secondary: Any, mixed: Any) -> Breed:
  primary = _text(primary) or "Mixed Breed"
  secondary = _text(secondary)
  is_mixed = bool(parse_tri_state(mixed)) or bool(secondary) or primary.lower() in MIXED_BREED_NAMES
  return Breed(primary=primary, secondary=secondary, mixed=is_mixed)


def _colors(*values: Any) -> List[str]:
  return [str(v).strip() for v in values if v and str(v).strip()]


def _provider_priority(provider: str) -> int:
  return PROVIDERS.get(provider, {}).get("priority", 99)


# ============================================
# Store rows
# ============================================

def _load_json_list(value: Any) -> List[Any]:
  if not value:
    return []
  if isinstance(value, list):
    return value
  try:
    loaded = json.loads(value)
  except (TypeError, ValueError):
    return []
  return loaded if isinstance(loaded, list) else []


def _format_store(raw: StoreRaw) -> Dog:
  row = raw.row

  score = row.get("visibility_score")
  return Dog(
    provider=row.get("provider") or "store",
    native_id=raw.native_id,
    name=_text(row.get("name")) or "Unknown",
    breed=_make_breed(row.get("primary_breed"), row.get("secondary_breed"), row.get("is_mixed")),
    age=row.get("age"),
    size=row.get("size"),
    gender=row.get("gender"),
    colors=[str(c) for c in _load_json_list(row.get("colors_json")) if c],
    energy_level=_text(row.get("energy_level")),
    photos=flatten_photos(_load_json_list(row.get("photos_json"))),
    description=_text(row.get("description")),
    location=Location(
      city=_text(row.get("city")) or "Unknown",
      state=_text(row.get("state")) or "Unknown",
      postcode=_text(row.get("postcode")),
      latitude=_float(row.get("latitude")),
      longitude=_float(row.get("longitude")),
    ),
    organization_id=_text(row.get("organization_id")) or "",
    external_url=_text(row.get("url")) or "",
    attributes=Attributes(
      house_trained=parse_tri_state(row.get("house_trained")),
      special_needs=parse_tri_state(row.get("special_needs")),
      spayed_neutered=parse_tri_state(row.get("spayed_neutered")),
      shots_current=parse_tri_state(row.get("shots_current")),
    ),
    compatibility=Compatibility(
      children=parse_tri_state(row.get("good_with_children")),
      dogs=parse_tri_state(row.get("good_with_dogs")),
      cats=parse_tri_state(row.get("good_with_cats")),
    ),
    provenance=Provenance(source_provider="store", source_priority=STORE_PRIORITY),
    visibility_score=float(score) if score is not None else None,
    status=DogStatus.from_string(row.get("status")),
    published_at=parse_timestamp(row.get("published_at")),
    last_updated=parse_timestamp(row.get("last_updated")),
  )


# ============================================
# RescueGroups v5 (JSON:API with side-table)
# ============================================

def _relationship_refs(animal: Dict[str, Any], rel_type: str) -> List[Dict[str, Any]]:
  """Relationship refs of one type; a to-one relationship carries a single dict"""
  relationship = (animal.get("relationships") or {}).get(rel_type)
  data = relationship.get("data") if isinstance(relationship, dict) else None
  if isinstance(data, dict):
    data = [data]
  if not isinstance(data, list):
    return []
  return [ref for ref in data if isinstance(ref, dict)]


def _related(animal: Dict[str, Any], included: List[Dict[str, Any]], rel_type: str) -> List[Dict[str, Any]]:
  """Resolve relationship refs of one type against the included side-table, in ref order"""
  refs = _relationship_refs(animal, rel_type)
  if not refs or not included:
    return []

  index = {
    (item.get("type"), str(item.get("id"))): item
    for item in included
    if isinstance(item, dict)
  }
  resolved = []
  for ref in refs:
    item = index.get((ref.get("type") or rel_type, str(ref.get("id"))))
    if item:
      resolved.append(item)
  return resolved


def _rescuegroups_photos(animal: Dict[str, Any], included: List[Dict[str, Any]], attrs: Dict[str, Any]) -> List[str]:
  pictures = []
  for pic in _related(animal, included, "pictures"):
    pic_attrs = dict(pic.get("attributes") or {})
    pictures.append(pic_attrs)
  photos = flatten_photos(pictures)

  if not photos:
    photos = flatten_photos(attrs.get("pictures") or [])

  if not photos:
    thumbnail = _first(attrs, "pictureThumbnailUrl", "thumbnailUrl")
    if thumbnail:
      photos = [str(thumbnail)]
  return photos


def _rescuegroups_location(animal: Dict[str, Any], included: List[Dict[str, Any]], attrs: Dict[str, Any]) -> Location:
  city = _text(attrs.get("animalLocationCity"))
  state = _text(attrs.get("animalLocationState"))
  postcode = _text(attrs.get("animalLocationPostalcode"))
  latitude = longitude = None

  if not (city or state):
    places = _related(animal, included, "locations") or _related(animal, included, "orgs")
    if places:
      loc = places[0].get("attributes") or {}
      citystate = str(loc.get("citystate") or "")
      parts = [p.strip() for p in citystate.split(",")] if citystate else []
      city = _text(loc.get("city")) or (parts[0] if parts else None)
      state = _text(loc.get("state")) or (parts[1] if len(parts) > 1 else None)
      postcode = postcode or _text(_first(loc, "postalcode", "postalCode", "zip"))
      latitude = _float(_first(loc, "lat", "latitude"))
      longitude = _float(_first(loc, "lon", "lng", "longitude"))

  return Location(
    city=city or "Unknown",
    state=state or "Unknown",
    postcode=postcode,
    latitude=latitude,
    longitude=longitude,
  )


def _format_rescuegroups(raw: RescueGroupsRaw) -> Dog:
  animal = raw.animal or {}
  included = raw.included or []
  attrs = animal.get("attributes") or {}

  orgs = _related(animal, included, "orgs")
  org_refs = _relationship_refs(animal, "orgs")
  if orgs:
    org_id = str(orgs[0].get("id"))
  elif org_refs:
    org_id = str(org_refs[0].get("id"))
  else:
    org_id = ""

  native_id = raw.native_id
  url = _text(attrs.get("url")) or (f"https://www.rescuegroups.org/animals/{native_id}" if native_id else "")

  return Dog(
    provider="rescuegroups",
    native_id=native_id,
    name=_text(attrs.get("name")) or "Unknown",
    breed=_make_breed(
      attrs.get("breedPrimary"),
      attrs.get("breedSecondary"),
      _first(attrs, "isBreedMixed", "breedMixed"),
    ),
    age=attrs.get("ageGroup"),
    size=attrs.get("sizeGroup"),
    gender=attrs.get("sex"),
    colors=_colors(_first(attrs, "colorDetails", "coatColor")),
    energy_level=_text(attrs.get("energyLevel")),
    photos=_rescuegroups_photos(animal, included, attrs),
    description=clean_description(_first(attrs, "descriptionText", "descriptionHtml")),
    location=_rescuegroups_location(animal, included, attrs),
    organization_id=org_id,
    external_url=url,
    attributes=Attributes(
      house_trained=parse_tri_state(_first(attrs, "isHousetrained", "houseTrained")),
      special_needs=parse_tri_state(_first(attrs, "isSpecialNeeds", "specialNeeds")),
      spayed_neutered=parse_tri_state(_first(attrs, "isAltered", "spayedNeutered")),
      shots_current=parse_tri_state(_first(attrs, "isCurrentVaccinations", "shotsCurrent")),
    ),
    compatibility=Compatibility(
      children=parse_tri_state(_first(attrs, "isKidsOk", "goodWithChildren")),
      dogs=parse_tri_state(_first(attrs, "isDogsOk", "goodWithDogs")),
      cats=parse_tri_state(_first(attrs, "isCatsOk", "goodWithCats")),
    ),
    provenance=Provenance(source_provider="rescuegroups", source_priority=_provider_priority("rescuegroups")),
    status=DogStatus.from_string(attrs.get("status")),
    published_at=parse_timestamp(_first(attrs, "availableDate", "createdDate", "created")),
    last_updated=parse_timestamp(_first(attrs, "updatedDate", "updated")),
  )


# ============================================
# Petfinder v2
# ============================================

def _petfinder_energy(tags: Any) -> Optional[str]:
  for tag in tags or []:
    tag_lower = str(tag).lower()
    if "high energy" in tag_lower or "energetic" in tag_lower:
      return "High"
    if "low energy" in tag_lower or "couch potato" in tag_lower:
      return "Low"
  return None


def _format_petfinder(raw: PetfinderRaw) -> Dog:
  animal = raw.animal or {}
  breeds = animal.get("breeds") or {}
  colors = animal.get("colors") or {}
  attributes = animal.get("attributes") or {}
  environment = animal.get("environment") or {}
  address = (animal.get("contact") or {}).get("address") or {}

  return Dog(
    provider="petfinder",
    native_id=raw.native_id,
    name=_text(animal.get("name")) or "Unknown",
    breed=_make_breed(breeds.get("primary"), breeds.get("secondary"), breeds.get("mixed")),
    age=animal.get("age"),
    size=animal.get("size"),
    gender=animal.get("gender"),
    colors=_colors(colors.get("primary"), colors.get("secondary"), colors.get("tertiary")),
    energy_level=_petfinder_energy(animal.get("tags")),
    photos=flatten_photos(animal.get("photos") or []),
    description=clean_description(animal.get("description")),
    location=Location(
      city=_text(address.get("city")) or "Unknown",
      state=_text(address.get("state")) or "Unknown",
      postcode=_text(address.get("postcode")),
      latitude=_float(_first(address, "latitude", "lat")),
      longitude=_float(_first(address, "longitude", "lon")),
    ),
    organization_id=_text(animal.get("organization_id")) or "",
    external_url=_text(animal.get("url")) or "",
    attributes=Attributes(
      house_trained=parse_tri_state(attributes.get("house_trained")),
      special_needs=parse_tri_state(attributes.get("special_needs")),
      spayed_neutered=parse_tri_state(attributes.get("spayed_neutered")),
      shots_current=parse_tri_state(attributes.get("shots_current")),
    ),
    compatibility=Compatibility(
      children=parse_tri_state(environment.get("children")),
      dogs=parse_tri_state(environment.get("dogs")),
      cats=parse_tri_state(environment.get("cats")),
    ),
    provenance=Provenance(source_provider="petfinder", source_priority=_provider_priority("petfinder")),
    status=DogStatus.from_string(animal.get("status")),
    published_at=parse_timestamp(animal.get("published_at")),
    last_updated=parse_timestamp(animal.get("status_changed_at")),
  )


_FORMATTERS = {
  StoreRaw.source_kind: _format_store,
  RescueGroupsRaw.source_kind: _format_rescuegroups,
  PetfinderRaw.source_kind: _format_petfinder,
}
