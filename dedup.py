"""
Cross-provider duplicate detection

The same dog is often cross-posted by a rescue to several listing sites,
each with its own id. Two records are treated as the same dog when:

  names match AND (states match OR (primary breeds match AND (ages match OR genders match)))

This is a heuristic: two different "Max" labs in one state will collapse.
When records match, the one from the more trusted source (lower
source_priority) is kept whole and the other is dropped.
"""
import re
from typing import List, Optional

from config import DEDUP_RULES
from schema import Dog

UNKNOWN = "unknown"

_NAME_STRIP = re.compile(DEDUP_RULES["name_strip_pattern"])


def normalize_name(name: Optional[str]) -> str:
  return _NAME_STRIP.sub("", (name or "").lower())


def _field_matches(a: Optional[str], b: Optional[str]) -> bool:
  a = (a or "").strip().lower()
  b = (b or "").strip().lower()
  if not a or not b:
    return False
  if a == UNKNOWN and not DEDUP_RULES["unknown_values_match"]:
    return False
  return a == b


def is_same_dog(a: Dog, b: Dog) -> bool:
  """True if two records look like the same animal"""
  if a.dog_id == b.dog_id:
    return True

  name_a = normalize_name(a.name)
  if not name_a or name_a == UNKNOWN or name_a != normalize_name(b.name):
    return False

  if _field_matches(a.location.state, b.location.state):
    return True

  if _field_matches(a.breed.primary, b.breed.primary):
    return (
      _field_matches(a.age.value, b.age.value)
      or _field_matches(a.gender.value, b.gender.value)
    )

  return False


def merge(existing: List[Dog], incoming: List[Dog]) -> List[Dog]:
  """
  Merge two record lists, dropping duplicates.

  Records are considered in trust order (lowest source_priority first,
  ties by position) and each one is kept only if it matches nothing
  already kept. Survivors come back in their original order, so
  merge(merge(a, b), []) == merge(a, b).
  """
  combined = list(existing) + list(incoming)
  by_trust = sorted(range(len(combined)), key=lambda i: (combined[i].source_priority, i))

  kept_indices = []
  for index in by_trust:
    candidate = combined[index]
    if any(is_same_dog(candidate, combined[k]) for k in kept_indices):
      continue
    kept_indices.append(index)

  return [combined[i] for i in sorted(kept_indices)]
