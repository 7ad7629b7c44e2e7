"""
Raw listing payloads, tagged by where they came from.

The formatter dispatches on source_kind instead of sniffing fields, so
every payload is wrapped in exactly one of these before normalization.
"""
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Union


@dataclass(frozen=True)
class StoreRaw:
  """A row read back from the persisted store (dict of column -> value)"""
  row: Dict[str, Any]
  source_kind: ClassVar[str] = "store"

  @property
  def native_id(self) -> str:
    return str(self.row.get("native_id") or "")


@dataclass(frozen=True)
class RescueGroupsRaw:
  """
  One RescueGroups v5 animal resource plus the response's `included`
  side-table, which holds the pictures, locations and orgs the animal
  points at through its relationships.
  """
  animal: Dict[str, Any]
  included: List[Dict[str, Any]] = field(default_factory=list)
  source_kind: ClassVar[str] = "rescuegroups"

  @property
  def native_id(self) -> str:
    return str(self.animal.get("id") or "")


@dataclass(frozen=True)
class PetfinderRaw:
  """One Petfinder v2 animal object"""
  animal: Dict[str, Any]
  source_kind: ClassVar[str] = "petfinder"

  @property
  def native_id(self) -> str:
    return str(self.animal.get("id") or "")


RawRecord = Union[StoreRaw, RescueGroupsRaw, PetfinderRaw]
