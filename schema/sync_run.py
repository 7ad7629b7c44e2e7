"""
Sync run audit records
v1.0.0

One SyncRun per provider pass. Rows are written when the pass starts
(in_progress) and finalized once when it ends; they are never deleted.
"""
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class SyncStatus(str, Enum):
  IN_PROGRESS = "in_progress"
  COMPLETED = "completed"
  FAILED = "failed"


@dataclass
class SyncRun:
  provider: str
  started_at: datetime
  filters_applied: List[str] = field(default_factory=list)
  pages_fetched: int = 0
  dogs_added: int = 0
  dogs_updated: int = 0
  dogs_removed: int = 0
  errors: int = 0
  status: SyncStatus = SyncStatus.IN_PROGRESS
  error_message: Optional[str] = None
  finished_at: Optional[datetime] = None
  id: Optional[int] = None

  def fail(self, message: str):
    self.status = SyncStatus.FAILED
    self.error_message = message

  def to_dict(self) -> Dict[str, Any]:
    return {
      "id": self.id,
      "provider": self.provider,
      "started_at": self.started_at.isoformat(),
      "finished_at": self.finished_at.isoformat() if self.finished_at else None,
      "filters_applied": list(self.filters_applied),
      "pages_fetched": self.pages_fetched,
      "dogs_added": self.dogs_added,
      "dogs_updated": self.dogs_updated,
      "dogs_removed": self.dogs_removed,
      "errors": self.errors,
      "status": self.status.value,
      "error_message": self.error_message,
    }


@dataclass
class SyncSummary:
  """Result of one run_sync() call across all providers"""
  started_at: datetime
  runs: List[SyncRun] = field(default_factory=list)
  finished_at: Optional[datetime] = None

  @property
  def dogs_added(self) -> int:
    return sum(run.dogs_added for run in self.runs)

  @property
  def dogs_updated(self) -> int:
    return sum(run.dogs_updated for run in self.runs)

  @property
  def dogs_removed(self) -> int:
    return sum(run.dogs_removed for run in self.runs)

  @property
  def failed_providers(self) -> List[str]:
    return [run.provider for run in self.runs if run.status != SyncStatus.COMPLETED]

  @property
  def status(self) -> str:
    if not self.runs:
      return SyncStatus.FAILED.value
    if not self.failed_providers:
      return SyncStatus.COMPLETED.value
    if len(self.failed_providers) == len(self.runs):
      return SyncStatus.FAILED.value
    return "partial"

  def to_dict(self) -> Dict[str, Any]:
    return {
      "started_at": self.started_at.isoformat(),
      "finished_at": self.finished_at.isoformat() if self.finished_at else None,
      "status": self.status,
      "dogs_added": self.dogs_added,
      "dogs_updated": self.dogs_updated,
      "dogs_removed": self.dogs_removed,
      "runs": [run.to_dict() for run in self.runs],
    }
