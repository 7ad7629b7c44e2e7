"""
Canonical Dog Schema
v2.0.0 - Multi-provider listings

This is the single source of truth for dog data structure.
Every provider payload and every store row is normalized into a Dog
before it is scored, merged, ranked, or persisted.

Design Principles:
- One record shape regardless of where the listing came from
- Tri-state facts (True / False / None) - a missing answer is never False
- photos is always a list, never None
- status is soft-delete only; removed dogs stay in the store
"""
import re
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime, timezone
from enum import Enum

from config import PLACEHOLDER_PHOTO_URL


class DogStatus(str, Enum):
  """Listing lifecycle values"""
  ADOPTABLE = "adoptable"
  PENDING = "pending"
  ADOPTED = "adopted"
  REMOVED = "removed"

  @classmethod
  def from_string(cls, value: Optional[str]) -> "DogStatus":
    """Convert provider status text to DogStatus, handling variations"""
    if not value:
      return cls.ADOPTABLE

    value_lower = str(value).lower().strip()

    if value_lower in ["adoptable", "available", "available for adoption"]:
      return cls.ADOPTABLE
    elif value_lower in ["pending", "adoption pending", "hold", "on hold"]:
      return cls.PENDING
    elif value_lower in ["adopted", "found"]:
      return cls.ADOPTED
    elif value_lower in ["removed", "deleted", "inactive"]:
      return cls.REMOVED
    else:
      return cls.ADOPTABLE


class AgeGroup(str, Enum):
  BABY = "Baby"
  YOUNG = "Young"
  ADULT = "Adult"
  SENIOR = "Senior"
  UNKNOWN = "Unknown"

  @classmethod
  def from_string(cls, value: Optional[str]) -> "AgeGroup":
    if not value:
      return cls.UNKNOWN

    value_lower = str(value).lower().strip()

    if value_lower in ["baby", "puppy", "pup"]:
      return cls.BABY
    elif value_lower in ["young", "juvenile", "adolescent"]:
      return cls.YOUNG
    elif value_lower == "adult":
      return cls.ADULT
    elif value_lower in ["senior", "elderly"]:
      return cls.SENIOR
    else:
      return cls.UNKNOWN


class SizeGroup(str, Enum):
  SMALL = "Small"
  MEDIUM = "Medium"
  LARGE = "Large"
  EXTRA_LARGE = "ExtraLarge"
  UNKNOWN = "Unknown"

  @classmethod
  def from_string(cls, value: Optional[str]) -> "SizeGroup":
    if not value:
      return cls.UNKNOWN

    # "Extra Large", "extra-large", "X-Large", "xlarge" all collapse here
    value_key = str(value).lower().replace(" ", "").replace("-", "").replace("_", "")

    if value_key in ["small", "s"]:
      return cls.SMALL
    elif value_key in ["medium", "m"]:
      return cls.MEDIUM
    elif value_key in ["large", "l"]:
      return cls.LARGE
    elif value_key in ["extralarge", "xlarge", "xl"]:
      return cls.EXTRA_LARGE
    else:
      return cls.UNKNOWN


class Gender(str, Enum):
  MALE = "Male"
  FEMALE = "Female"
  UNKNOWN = "Unknown"

  @classmethod
  def from_string(cls, value: Optional[str]) -> "Gender":
    if not value:
      return cls.UNKNOWN

    value_lower = str(value).lower().strip()

    if value_lower in ["male", "m"]:
      return cls.MALE
    elif value_lower in ["female", "f"]:
      return cls.FEMALE
    else:
      return cls.UNKNOWN


_TRUE_STRINGS = {"yes", "y", "true", "t", "1"}
_FALSE_STRINGS = {"no", "n", "false", "f", "0"}


def parse_tri_state(value: Any) -> Optional[bool]:
  """
  Map a provider yes/no encoding to True, False or None (unknown).

  Booleans pass through, "yes"/"true"/"1" and "no"/"false"/"0" strings
  are recognized, and anything else - including absence - is None.
  """
  if value is None:
    return None
  if isinstance(value, bool):
    return value
  if isinstance(value, int):
    if value in (0, 1):
      return bool(value)
    return None

  value_lower = str(value).lower().strip()
  if value_lower in _TRUE_STRINGS:
    return True
  if value_lower in _FALSE_STRINGS:
    return False
  return None


@dataclass
class Breed:
  primary: str = "Mixed Breed"
  secondary: Optional[str] = None
  mixed: bool = False


@dataclass
class Location:
  city: str = "Unknown"
  state: str = "Unknown"
  postcode: Optional[str] = None
  latitude: Optional[float] = None
  longitude: Optional[float] = None


@dataclass
class Attributes:
  """Tri-state health/training facts (None = unknown)"""
  house_trained: Optional[bool] = None
  special_needs: Optional[bool] = None
  spayed_neutered: Optional[bool] = None
  shots_current: Optional[bool] = None


@dataclass
class Compatibility:
  """Tri-state 'good with' facts (None = unknown)"""
  children: Optional[bool] = None
  dogs: Optional[bool] = None
  cats: Optional[bool] = None


@dataclass
class Provenance:
  source_provider: str
  source_priority: int


@dataclass
class Dog:
  """
  Canonical dog record.

  Identity is (provider, native_id); dog_id joins them for display and
  lookups. visibility_score stays None until the scorer fills it in.
  """

  # ===== IDENTITY =====
  provider: str                  # Provider that owns native_id
  native_id: str                 # Provider's own id
  name: str = "Unknown"
  species: str = "dog"

  # ===== CORE ATTRIBUTES =====
  breed: Breed = field(default_factory=Breed)
  age: AgeGroup = AgeGroup.UNKNOWN
  size: SizeGroup = SizeGroup.UNKNOWN
  gender: Gender = Gender.UNKNOWN
  colors: List[str] = field(default_factory=list)
  energy_level: Optional[str] = None

  # ===== LISTING =====
  photos: List[str] = field(default_factory=list)
  description: Optional[str] = None
  location: Location = field(default_factory=Location)
  organization_id: str = ""
  external_url: str = ""

  # ===== TRI-STATE FACTS =====
  attributes: Attributes = field(default_factory=Attributes)
  compatibility: Compatibility = field(default_factory=Compatibility)

  # ===== RANKING =====
  provenance: Optional[Provenance] = None
  visibility_score: Optional[float] = None

  # ===== LIFECYCLE =====
  status: DogStatus = DogStatus.ADOPTABLE
  published_at: Optional[datetime] = None
  last_updated: Optional[datetime] = None

  def __post_init__(self):
    if self.photos is None:
      self.photos = []
    if self.colors is None:
      self.colors = []
    self.native_id = str(self.native_id)
    if not isinstance(self.age, AgeGroup):
      self.age = AgeGroup.from_string(self.age)
    if not isinstance(self.size, SizeGroup):
      self.size = SizeGroup.from_string(self.size)
    if not isinstance(self.gender, Gender):
      self.gender = Gender.from_string(self.gender)
    if not isinstance(self.status, DogStatus):
      self.status = DogStatus.from_string(self.status)
    if self.provenance is None:
      self.provenance = Provenance(source_provider=self.provider, source_priority=99)

  @property
  def dog_id(self) -> str:
    return make_dog_id(self.provider, self.native_id)

  @property
  def real_photos(self) -> List[str]:
    """Photos without the placeholder substitution"""
    return [url for url in self.photos if url != PLACEHOLDER_PHOTO_URL]

  @property
  def source_priority(self) -> int:
    return self.provenance.source_priority

  def to_dict(self) -> Dict[str, Any]:
    """Full JSON-friendly representation (description never truncated)"""
    result = asdict(self)
    result["dog_id"] = self.dog_id
    result["age"] = self.age.value
    result["size"] = self.size.value
    result["gender"] = self.gender.value
    result["status"] = self.status.value
    result["published_at"] = self.published_at.isoformat() if self.published_at else None
    result["last_updated"] = self.last_updated.isoformat() if self.last_updated else None
    return result


def make_dog_id(provider: str, native_id: str) -> str:
  """Generate the display id: provider tag + provider-native id"""
  return f"{provider}_{native_id}"


def split_dog_id(dog_id: str, known_providers) -> Tuple[Optional[str], str]:
  """
  Split a dog id into (provider, native_id).

  Ids without a known provider prefix come back as (None, dog_id) so the
  caller can try every source.
  """
  dog_id = (dog_id or "").strip()
  if "_" in dog_id:
    prefix, rest = dog_id.split("_", 1)
    if prefix in known_providers and rest:
      return prefix, rest
  return None, dog_id


def get_current_timestamp() -> datetime:
  """Returns current UTC time (timezone-aware)"""
  return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
  """Parse provider/store timestamps; unparseable input is None"""
  if value is None or value == "":
    return None
  if isinstance(value, datetime):
    parsed = value
  else:
    text = str(value).strip()
    if text.endswith("Z"):
      text = text[:-1] + "+00:00"
    # Petfinder sends "+0000" offsets
    text = re.sub(r"([+-]\d{2})(\d{2})$", r"\1:\2", text)
    try:
      parsed = datetime.fromisoformat(text)
    except ValueError:
      return None
  if parsed.tzinfo is None:
    parsed = parsed.replace(tzinfo=timezone.utc)
  return parsed
