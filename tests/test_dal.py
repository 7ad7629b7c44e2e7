"""Tests for the persisted store."""
import sqlite3
from datetime import timedelta

import pytest

from config import PLACEHOLDER_PHOTO_URL
from dal import DAL, INSERTED, UPDATED, breed_search_term, format_timestamp
from errors import PersistenceFailure
from schema import (
  Attributes, Breed, Compatibility, DogStatus, Location, ParsedLocation, SearchCriteria,
  SizeGroup, SyncRun, SyncStatus,
)

from helpers import NOW, make_dog


def column(store, dog, name):
  conn = sqlite3.connect(store.db_path)
  try:
    return conn.execute(
      f"SELECT {name} FROM animals WHERE provider = ? AND native_id = ?",
      (dog.provider, dog.native_id)
    ).fetchone()[0]
  finally:
    conn.close()


class TestUpsert:

  def test_insert_then_update_keeps_first_seen(self, store):
    dog = make_dog(native_id="10", name="Rex", visibility_score=12.0)
    assert store.upsert(dog, now=NOW - timedelta(days=5)) == INSERTED
    first_seen = column(store, dog, "date_first_seen")

    dog.name = "Rexy"
    dog.visibility_score = 30.0
    assert store.upsert(dog) == UPDATED

    assert column(store, dog, "date_first_seen") == first_seen
    assert column(store, dog, "last_updated") == format_timestamp(NOW)
    stored = store.get_by_natural_key("rescuegroups", "10")
    assert stored.name == "Rexy"
    assert stored.visibility_score == 30.0
    assert store.count() == 1

  def test_same_native_id_different_providers(self, store):
    store.upsert(make_dog(native_id="5", provider="rescuegroups"))
    store.upsert(make_dog(native_id="5", provider="petfinder", priority=3))
    assert store.count() == 2
    assert {d.provider for d in store.find_by_native_id("5")} == {"rescuegroups", "petfinder"}

  def test_round_trip(self, store):
    dog = make_dog(
      native_id="7",
      breed=Breed(primary="Beagle", secondary="Basset Hound", mixed=True),
      colors=["Tricolor"],
      energy_level="Low",
      location=Location(city="Austin", state="TX", postcode="78701", latitude=30.2, longitude=-97.7),
      attributes=Attributes(house_trained=True, special_needs=None, spayed_neutered=False),
      compatibility=Compatibility(children=None, dogs=True, cats=False),
      published_at=NOW - timedelta(days=3),
    )
    store.upsert(dog)

    stored = store.get_by_natural_key("rescuegroups", "7")
    assert stored.dog_id == "rescuegroups_7"
    assert stored.breed == dog.breed
    assert stored.colors == ["Tricolor"]
    assert stored.location == dog.location
    assert stored.attributes == dog.attributes
    assert stored.compatibility == dog.compatibility
    assert stored.published_at == dog.published_at
    assert stored.last_updated == NOW
    assert stored.photos == dog.photos
    assert stored.provenance.source_provider == "store"

  def test_placeholder_photo_not_stored(self, store):
    dog = make_dog(native_id="8", photos=[PLACEHOLDER_PHOTO_URL])
    store.upsert(dog)
    assert column(store, dog, "photos_json") == "[]"
    assert store.get_by_natural_key("rescuegroups", "8").real_photos == []

  def test_missing(self, store):
    assert store.get_by_natural_key("petfinder", "nope") is None
    assert store.find_by_native_id("nope") == []


class TestQuery:

  @pytest.fixture
  def stocked(self, store):
    store.upsert(make_dog(native_id="1", name="Low", visibility_score=10.0))
    store.upsert(make_dog(native_id="2", name="High", visibility_score=90.0,
                          breed=Breed(primary="Beagle"), size="Large"))
    store.upsert(make_dog(native_id="3", name="Mid", visibility_score=50.0,
                          location=Location(city="Austin", state="TX", postcode="78701")))
    store.upsert(make_dog(native_id="4", name="Gone", visibility_score=99.0, status=DogStatus.REMOVED))
    store.upsert(make_dog(native_id="5", name="Special", visibility_score=40.0,
                          attributes=Attributes(special_needs=True)))
    return store

  def test_sorted_by_score_and_excludes_removed(self, stocked):
    assert [d.name for d in stocked.query()] == ["High", "Mid", "Special", "Low"]
    assert stocked.count() == 4

  def test_pagination(self, stocked):
    assert [d.name for d in stocked.query(limit=2, offset=1)] == ["Mid", "Special"]

  def test_location_filters(self, stocked):
    by_zip = SearchCriteria(location=ParsedLocation(postcode="78701"))
    by_city = SearchCriteria(location=ParsedLocation(city="Denver", state="CO"))
    assert [d.name for d in stocked.query(by_zip)] == ["Mid"]
    assert stocked.count(by_city) == 3

  def test_breed_plural_and_case(self, stocked):
    labs = SearchCriteria(breed="Labradors")
    assert {d.name for d in stocked.query(labs)} == {"Low", "Mid", "Special"}
    assert [d.name for d in stocked.query(SearchCriteria(breed="beagle"))] == ["High"]
    assert breed_search_term("Labs") == "%lab%"
    assert breed_search_term("Pug") == "%pug%"

  def test_facets(self, stocked):
    assert [d.name for d in stocked.query(SearchCriteria(size=SizeGroup.LARGE))] == ["High"]
    assert [d.name for d in stocked.query(SearchCriteria(special_needs=True))] == ["Special"]

  def test_unknown_sort(self, stocked):
    with pytest.raises(ValueError):
      stocked.query(sort="random")

  def test_stats(self, stocked):
    assert stocked.get_stats() == {"rescuegroups": {"adoptable": 4, "removed": 1}}


class TestStaleRemoval:

  def test_marks_only_old_rows_for_provider(self, store):
    old = NOW - timedelta(days=40)
    store.upsert(make_dog(native_id="old-rg"), now=old)
    store.upsert(make_dog(native_id="old-pf", provider="petfinder", priority=3), now=old)
    store.upsert(make_dog(native_id="fresh-rg"), now=NOW)

    removed = store.mark_stale_as_removed(NOW - timedelta(days=30), provider="rescuegroups")

    assert removed == 1
    assert store.get_by_natural_key("rescuegroups", "old-rg").status == DogStatus.REMOVED
    assert store.get_by_natural_key("petfinder", "old-pf").status == DogStatus.ADOPTABLE
    assert store.get_by_natural_key("rescuegroups", "fresh-rg").status == DogStatus.ADOPTABLE
    assert store.count() == 2

  def test_removal_is_not_deletion(self, store):
    store.upsert(make_dog(native_id="x"), now=NOW - timedelta(days=60))
    assert store.mark_stale_as_removed(NOW - timedelta(days=30)) == 1
    assert store.mark_stale_as_removed(NOW - timedelta(days=30)) == 0
    assert store.get_by_natural_key("rescuegroups", "x") is not None


class TestSyncRuns:

  def test_record_and_finalize(self, store):
    run = store.record_sync_run(SyncRun(provider="petfinder", started_at=NOW))
    assert run.id is not None

    run.filters_applied = ["default", "recent"]
    run.pages_fetched = 4
    run.dogs_added = 7
    run.status = SyncStatus.COMPLETED
    store.finalize_sync_run(run)

    [saved] = store.recent_sync_runs()
    assert saved.id == run.id
    assert saved.filters_applied == ["default", "recent"]
    assert saved.pages_fetched == 4
    assert saved.dogs_added == 7
    assert saved.status == SyncStatus.COMPLETED
    assert saved.finished_at == NOW

  def test_in_progress_row_visible(self, store):
    store.record_sync_run(SyncRun(provider="rescuegroups", started_at=NOW))
    [saved] = store.recent_sync_runs()
    assert saved.status == SyncStatus.IN_PROGRESS
    assert saved.finished_at is None


class TestFailures:

  def test_unopenable_store(self, broken_store):
    with pytest.raises(PersistenceFailure):
      broken_store.query()
    with pytest.raises(PersistenceFailure):
      broken_store.upsert(make_dog())

  def test_missing_schema(self, tmp_path):
    dal = DAL(str(tmp_path / "empty.db"))
    with pytest.raises(PersistenceFailure):
      dal.count()
