"""
Schema Package
v2.0.0 - Multi-provider listings

Contains all data models for the dog visibility engine.

Modules:
- dog_schema: Canonical Dog record and its enums/value types
- raw_records: Tagged raw payloads (store row, RescueGroups, Petfinder)
- sync_run: Sync audit records
- search_criteria: Validated search input shared by providers and sync
"""

from .dog_schema import (
  Dog,
  DogStatus,
  AgeGroup,
  SizeGroup,
  Gender,
  Breed,
  Location,
  Attributes,
  Compatibility,
  Provenance,
  parse_tri_state,
  make_dog_id,
  split_dog_id,
  get_current_timestamp,
  parse_timestamp,
)

from .raw_records import (
  RawRecord,
  StoreRaw,
  RescueGroupsRaw,
  PetfinderRaw,
)

from .sync_run import (
  SyncRun,
  SyncStatus,
  SyncSummary,
)

from .search_criteria import (
  ParsedLocation,
  SearchCriteria,
)

__all__ = [
  # Dog schema
  'Dog',
  'DogStatus',
  'AgeGroup',
  'SizeGroup',
  'Gender',
  'Breed',
  'Location',
  'Attributes',
  'Compatibility',
  'Provenance',
  'parse_tri_state',
  'make_dog_id',
  'split_dog_id',
  'get_current_timestamp',
  'parse_timestamp',

  # Raw payloads
  'RawRecord',
  'StoreRaw',
  'RescueGroupsRaw',
  'PetfinderRaw',

  # Sync audit
  'SyncRun',
  'SyncStatus',
  'SyncSummary',

  # Search input
  'ParsedLocation',
  'SearchCriteria',
]
