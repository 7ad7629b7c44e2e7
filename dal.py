"""
Data Access Layer (DAL)
v2.0.0 - Persisted listing store

Durable store for canonical Dog records and sync audit rows. Everything
that reads or writes listings goes through this layer.

Design Principles:
- Natural key is (provider, native_id); every write is an idempotent upsert
- Removal is soft: status flips to 'removed', rows are never deleted
- Queries filter and sort in SQL, highest visibility score first
- sqlite3 errors surface as PersistenceFailure

Usage:
  from dal import get_dal

  dal = get_dal()
  dal.upsert(dog)
  dogs = dal.query(criteria, limit=10)
"""
import sqlite3
import json
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from config import DB_PATH
from errors import PersistenceFailure
from formatter import normalize
from schema import (
  Dog, DogStatus, SearchCriteria, StoreRaw,
  SyncRun, SyncStatus,
  get_current_timestamp, parse_timestamp,
)

INSERTED = "inserted"
UPDATED = "updated"

SORT_ORDERS = {
  "visibility": "visibility_score DESC, rowid ASC",
  "recent": "last_updated DESC, rowid ASC",
}


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
  """UTC ISO-8601 with fixed precision so stored strings sort chronologically"""
  if value is None:
    return None
  if value.tzinfo is None:
    value = value.replace(tzinfo=timezone.utc)
  return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _tri_state(value: Optional[bool]) -> Optional[int]:
  if value is None:
    return None
  return 1 if value else 0


def breed_search_term(breed: str) -> str:
  """User breed text as a LIKE term: lowercase, trailing plural 's' dropped"""
  term = breed.strip().lower()
  if len(term) > 3 and term.endswith("s"):
    term = term[:-1]
  return f"%{term}%"


class DAL:
  """
  Data Access Layer - the persisted store.

  Responsibilities:
  - Upsert / read canonical dogs
  - Filtered, sorted, paginated queries
  - Soft removal of stale listings
  - Sync run audit trail
  """

  def __init__(self, db_path: str = DB_PATH, clock: Callable[[], datetime] = get_current_timestamp):
    self.db_path = db_path
    self.clock = clock

  # ============================================
  # Database Connection Management
  # ============================================

  @contextmanager
  def _get_connection(self):
    """Get database connection with automatic cleanup"""
    try:
      conn = sqlite3.connect(self.db_path, timeout=30)
    except sqlite3.Error as e:
      raise PersistenceFailure(f"Could not open store at {self.db_path}: {e}") from e
    conn.row_factory = sqlite3.Row
    try:
      yield conn
      conn.commit()
    except sqlite3.Error as e:
      conn.rollback()
      raise PersistenceFailure(f"Store error: {e}") from e
    except Exception:
      conn.rollback()
      raise
    finally:
      conn.close()

  def init_database(self):
    """Initialize database schema"""
    with self._get_connection() as conn:
      cursor = conn.cursor()

      cursor.execute("""
        CREATE TABLE IF NOT EXISTS animals (
          dog_id TEXT PRIMARY KEY,
          provider TEXT NOT NULL,
          native_id TEXT NOT NULL,
          name TEXT NOT NULL,
          primary_breed TEXT,
          secondary_breed TEXT,
          is_mixed INTEGER DEFAULT 0,
          age TEXT,
          size TEXT,
          gender TEXT,
          colors_json TEXT,
          energy_level TEXT,
          photos_json TEXT,
          description TEXT,
          city TEXT,
          state TEXT,
          postcode TEXT,
          latitude REAL,
          longitude REAL,
          organization_id TEXT,
          url TEXT,
          -- Tri-state: 1 / 0 / NULL (unknown)
          house_trained INTEGER,
          special_needs INTEGER,
          spayed_neutered INTEGER,
          shots_current INTEGER,
          good_with_children INTEGER,
          good_with_dogs INTEGER,
          good_with_cats INTEGER,
          visibility_score REAL,
          status TEXT NOT NULL DEFAULT 'adoptable',
          published_at TEXT,
          date_first_seen TEXT NOT NULL,
          last_updated TEXT NOT NULL,
          UNIQUE (provider, native_id)
        )
      """)

      cursor.execute("""
        CREATE TABLE IF NOT EXISTS sync_runs (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          provider TEXT NOT NULL,
          started_at TEXT NOT NULL,
          finished_at TEXT,
          filters_applied_json TEXT,
          pages_fetched INTEGER DEFAULT 0,
          dogs_added INTEGER DEFAULT 0,
          dogs_updated INTEGER DEFAULT 0,
          dogs_removed INTEGER DEFAULT 0,
          errors INTEGER DEFAULT 0,
          status TEXT NOT NULL,
          error_message TEXT
        )
      """)

      cursor.execute("CREATE INDEX IF NOT EXISTS idx_animals_score ON animals(visibility_score DESC)")
      cursor.execute("CREATE INDEX IF NOT EXISTS idx_animals_status ON animals(status)")
      cursor.execute("CREATE INDEX IF NOT EXISTS idx_animals_state ON animals(state)")
      cursor.execute("CREATE INDEX IF NOT EXISTS idx_animals_updated ON animals(last_updated)")
      cursor.execute("CREATE INDEX IF NOT EXISTS idx_animals_native ON animals(native_id)")

  # ============================================
  # Dog Operations
  # ============================================

  def _row_to_dog(self, row: sqlite3.Row) -> Dog:
    return normalize(StoreRaw(row=dict(row)))

  def get_by_natural_key(self, provider: str, native_id: str) -> Optional[Dog]:
    """Get a single dog by (provider, native_id)"""
    with self._get_connection() as conn:
      cursor = conn.cursor()
      cursor.execute(
        "SELECT * FROM animals WHERE provider = ? AND native_id = ?",
        (provider, str(native_id))
      )
      row = cursor.fetchone()

      if not row:
        return None
      return self._row_to_dog(row)

  def find_by_native_id(self, native_id: str) -> List[Dog]:
    """Dogs from any provider carrying this native id"""
    with self._get_connection() as conn:
      cursor = conn.cursor()
      cursor.execute(
        "SELECT * FROM animals WHERE native_id = ? ORDER BY rowid",
        (str(native_id),)
      )
      return [self._row_to_dog(row) for row in cursor.fetchall()]

  def upsert(self, dog: Dog, now: Optional[datetime] = None) -> str:
    """
    Insert or refresh a dog by natural key.
    Returns "inserted" or "updated". date_first_seen survives updates.
    """
    now_text = format_timestamp(now or self.clock())

    values = {
      "dog_id": dog.dog_id,
      "provider": dog.provider,
      "native_id": dog.native_id,
      "name": dog.name,
      "primary_breed": dog.breed.primary,
      "secondary_breed": dog.breed.secondary,
      "is_mixed": 1 if dog.breed.mixed else 0,
      "age": dog.age.value,
      "size": dog.size.value,
      "gender": dog.gender.value,
      "colors_json": json.dumps(dog.colors),
      "energy_level": dog.energy_level,
      "photos_json": json.dumps(dog.real_photos),
      "description": dog.description,
      "city": dog.location.city,
      "state": dog.location.state,
      "postcode": dog.location.postcode,
      "latitude": dog.location.latitude,
      "longitude": dog.location.longitude,
      "organization_id": dog.organization_id,
      "url": dog.external_url,
      "house_trained": _tri_state(dog.attributes.house_trained),
      "special_needs": _tri_state(dog.attributes.special_needs),
      "spayed_neutered": _tri_state(dog.attributes.spayed_neutered),
      "shots_current": _tri_state(dog.attributes.shots_current),
      "good_with_children": _tri_state(dog.compatibility.children),
      "good_with_dogs": _tri_state(dog.compatibility.dogs),
      "good_with_cats": _tri_state(dog.compatibility.cats),
      "visibility_score": dog.visibility_score,
      "status": dog.status.value,
      "published_at": format_timestamp(dog.published_at),
      "last_updated": now_text,
    }

    with self._get_connection() as conn:
      cursor = conn.cursor()
      cursor.execute(
        "SELECT dog_id FROM animals WHERE provider = ? AND native_id = ?",
        (dog.provider, dog.native_id)
      )
      existing = cursor.fetchone()

      if existing:
        assignments = ", ".join(f"{column} = ?" for column in values if column != "dog_id")
        params = [v for column, v in values.items() if column != "dog_id"]
        cursor.execute(
          f"UPDATE animals SET {assignments} WHERE provider = ? AND native_id = ?",
          params + [dog.provider, dog.native_id]
        )
        return UPDATED

      values["date_first_seen"] = now_text
      columns = ", ".join(values)
      placeholders = ", ".join("?" * len(values))
      cursor.execute(
        f"INSERT INTO animals ({columns}) VALUES ({placeholders})",
        list(values.values())
      )
      return INSERTED

  def _build_where(
    self,
    filters: Optional[SearchCriteria],
    include_removed: bool = False,
    scored_only: bool = False,
  ) -> Tuple[str, list]:
    clauses = []
    params = []

    if not include_removed:
      clauses.append("status = ?")
      params.append(DogStatus.ADOPTABLE.value)
    if scored_only:
      clauses.append("visibility_score IS NOT NULL")

    if filters:
      location = filters.location
      if location and location.postcode:
        clauses.append("postcode = ?")
        params.append(location.postcode)
      elif location:
        clauses.append("LOWER(city) = ? AND UPPER(state) = ?")
        params.extend([location.city.lower(), location.state.upper()])

      if filters.breed:
        term = breed_search_term(filters.breed)
        clauses.append("(LOWER(primary_breed) LIKE ? OR LOWER(secondary_breed) LIKE ?)")
        params.extend([term, term])

      if filters.age:
        clauses.append("age = ?")
        params.append(filters.age.value)
      if filters.size:
        clauses.append("size = ?")
        params.append(filters.size.value)
      if filters.gender:
        clauses.append("gender = ?")
        params.append(filters.gender.value)
      if filters.special_needs:
        clauses.append("special_needs = 1")

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params

  def query(
    self,
    filters: Optional[SearchCriteria] = None,
    sort: str = "visibility",
    limit: Optional[int] = None,
    offset: int = 0,
    scored_only: bool = False,
  ) -> List[Dog]:
    """Adoptable dogs matching filters, highest visibility score first"""
    order_by = SORT_ORDERS.get(sort)
    if order_by is None:
      raise ValueError(f"Unknown sort: {sort}")

    where, params = self._build_where(filters, scored_only=scored_only)
    sql = f"SELECT * FROM animals {where} ORDER BY {order_by}"
    if limit is not None:
      sql += " LIMIT ? OFFSET ?"
      params.extend([limit, offset])

    with self._get_connection() as conn:
      cursor = conn.cursor()
      cursor.execute(sql, params)
      return [self._row_to_dog(row) for row in cursor.fetchall()]

  def count(self, filters: Optional[SearchCriteria] = None) -> int:
    where, params = self._build_where(filters)
    with self._get_connection() as conn:
      cursor = conn.cursor()
      cursor.execute(f"SELECT COUNT(*) FROM animals {where}", params)
      return cursor.fetchone()[0]

  def mark_stale_as_removed(self, threshold: datetime, provider: Optional[str] = None) -> int:
    """Soft-remove adoptable dogs not refreshed since threshold. Returns count."""
    sql = "UPDATE animals SET status = ? WHERE status = ? AND last_updated < ?"
    params = [DogStatus.REMOVED.value, DogStatus.ADOPTABLE.value, format_timestamp(threshold)]
    if provider:
      sql += " AND provider = ?"
      params.append(provider)

    with self._get_connection() as conn:
      cursor = conn.cursor()
      cursor.execute(sql, params)
      removed = cursor.rowcount

    if removed:
      label = f"{provider} " if provider else ""
      print(f"  🏠 Marked {removed} stale {label}listing(s) as removed")
    return removed

  def get_stats(self) -> Dict[str, Dict[str, int]]:
    """Dog counts per provider and status"""
    stats: Dict[str, Dict[str, int]] = {}
    with self._get_connection() as conn:
      cursor = conn.cursor()
      cursor.execute("SELECT provider, status, COUNT(*) AS n FROM animals GROUP BY provider, status")
      for row in cursor.fetchall():
        stats.setdefault(row["provider"], {})[row["status"]] = row["n"]
    return stats

  # ============================================
  # Sync Run Audit
  # ============================================

  def record_sync_run(self, run: SyncRun) -> SyncRun:
    """Insert an in-progress sync run; sets run.id"""
    with self._get_connection() as conn:
      cursor = conn.cursor()
      cursor.execute("""
        INSERT INTO sync_runs (provider, started_at, filters_applied_json, status)
        VALUES (?, ?, ?, ?)
      """, (
        run.provider,
        format_timestamp(run.started_at),
        json.dumps(run.filters_applied),
        run.status.value,
      ))
      run.id = cursor.lastrowid
    return run

  def finalize_sync_run(self, run: SyncRun):
    """Write the final counters and status for a sync run"""
    if run.finished_at is None:
      run.finished_at = self.clock()

    with self._get_connection() as conn:
      cursor = conn.cursor()
      cursor.execute("""
        UPDATE sync_runs SET
          finished_at = ?, filters_applied_json = ?, pages_fetched = ?,
          dogs_added = ?, dogs_updated = ?, dogs_removed = ?, errors = ?,
          status = ?, error_message = ?
        WHERE id = ?
      """, (
        format_timestamp(run.finished_at),
        json.dumps(run.filters_applied),
        run.pages_fetched,
        run.dogs_added,
        run.dogs_updated,
        run.dogs_removed,
        run.errors,
        run.status.value,
        run.error_message,
        run.id,
      ))

  def recent_sync_runs(self, limit: int = 10) -> List[SyncRun]:
    with self._get_connection() as conn:
      cursor = conn.cursor()
      cursor.execute("SELECT * FROM sync_runs ORDER BY id DESC LIMIT ?", (limit,))
      rows = cursor.fetchall()

    runs = []
    for row in rows:
      runs.append(SyncRun(
        id=row["id"],
        provider=row["provider"],
        started_at=parse_timestamp(row["started_at"]),
        finished_at=parse_timestamp(row["finished_at"]),
        filters_applied=json.loads(row["filters_applied_json"] or "[]"),
        pages_fetched=row["pages_fetched"],
        dogs_added=row["dogs_added"],
        dogs_updated=row["dogs_updated"],
        dogs_removed=row["dogs_removed"],
        errors=row["errors"],
        status=SyncStatus(row["status"]),
        error_message=row["error_message"],
      ))
    return runs


# Create a default instance for easy importing
_default_dal: Optional[DAL] = None

def get_dal() -> DAL:
  """Get the default DAL instance (schema created on first use)"""
  global _default_dal
  if _default_dal is None:
    _default_dal = DAL()
    _default_dal.init_database()
  return _default_dal
