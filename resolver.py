#!/usr/bin/env python3
"""
Source Waterfall Resolver
v2.0.0 - Store first, providers on demand

Answers searches from our own store when it has enough matches, and only
then fans out to the external providers (in priority order, bounded
worker pool). Provider results are normalized, scored, deduplicated
against what we already have, ranked most-overlooked first and paginated.

Usage:
  python resolver.py --location "Austin, TX" --breed lab
  python resolver.py --location 80202 --age senior --page-size 20
  python resolver.py --id petfinder_123456
  python resolver.py --spotlight
  python resolver.py --rural [--location 72801]
"""
import argparse
import json
import random
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Union

from config import RURAL_SWEEP, RURAL_ZIPS, SPOTLIGHT, WATERFALL
from dal import DAL, get_dal
from dedup import merge
from errors import (
  DogEngineError, InvalidInput, NoResultsFound, PersistenceFailure,
  ProviderRateLimited, ProviderUnavailable,
)
from formatter import normalize, to_summary_dict
from providers import PROVIDER_CLASSES, build_providers
from scoring import ensure_score
from search_normalizer import BreedMatcher, build_criteria, parse_location, validate_pagination
from schema import Dog, ParsedLocation, SearchCriteria, get_current_timestamp, split_dog_id

STORE = "store"


@dataclass
class SearchResult:
  animals: List[Dog] = field(default_factory=list)
  total: int = 0
  sources_used: List[str] = field(default_factory=list)

  def to_dict(self) -> Dict:
    """List payload: descriptions truncated for display"""
    length = WATERFALL["summary_description_length"]
    return {
      "animals": [to_summary_dict(dog, length) for dog in self.animals],
      "total": self.total,
      "sources_used": list(self.sources_used),
    }


def rank(dogs: List[Dog]) -> List[Dog]:
  """Most overlooked first; ties keep their merge order"""
  return sorted(dogs, key=lambda d: -(d.visibility_score or 0.0))


class Resolver:
  """
  Waterfall over the persisted store and the provider clients.

  Provider clients (and their rate limiters / token caches) are created
  once and shared by every search this resolver serves.
  """

  def __init__(
    self,
    store: Optional[DAL] = None,
    providers: Optional[list] = None,
    now: Callable[[], datetime] = get_current_timestamp,
    max_workers: int = WATERFALL["max_workers"],
  ):
    self.store = store or get_dal()
    self.providers = sorted(
      build_providers() if providers is None else providers,
      key=lambda p: p.priority
    )
    self.now = now
    self.max_wait = WATERFALL["search_max_wait"]
    self.breed_matchers = {
      provider.key: BreedMatcher(self._breed_fetcher(provider))
      for provider in self.providers
    }
    self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="provider")

  def _breed_fetcher(self, provider):
    return lambda: provider.list_known_breeds(max_wait=self.max_wait)

  def close(self):
    self._executor.shutdown(wait=False, cancel_futures=True)

  def __enter__(self):
    return self

  def __exit__(self, exc_type, exc, tb):
    self.close()

  # ============================================
  # Search
  # ============================================

  def _query_store(self, criteria: SearchCriteria, limit=None, offset=0):
    """(total, dogs) from the store; a failing store reads as empty"""
    try:
      total = self.store.count(criteria)
      dogs = self.store.query(criteria, limit=limit, offset=offset)
    except PersistenceFailure as e:
      print(f"  ⚠️  Store unavailable, falling through to providers: {e}")
      return 0, []
    return total, dogs

  def _search_provider(self, provider, criteria: SearchCriteria, limit: int) -> List[Dog]:
    """Runs on a worker thread: query one provider and normalize its records"""
    provider_criteria = criteria
    if criteria.breed:
      matched = self.breed_matchers[provider.key].match(criteria.breed)
      provider_criteria = criteria.for_provider(matched)

    page = provider.search(
      provider_criteria,
      page=1,
      limit=limit,
      max_wait=self.max_wait,
    )

    now = self.now()
    dogs = []
    for raw in page.records:
      try:
        dogs.append(ensure_score(normalize(raw), now))
      except Exception as e:
        print(f"  ⚠️  Skipping unreadable {provider.name} record: {e}")
    return dogs

  def _fan_out(self, criteria: SearchCriteria, timeout: float, limit: int, merged: List[Dog]):
    """
    Query every provider at once and merge what comes back into merged.

    Returns (merged, sources_used, rate_limited) where rate_limited maps
    provider key to its retry-after. Providers still running after timeout
    are abandoned; a failing provider is skipped.
    """
    futures = {
      provider.key: self._executor.submit(self._search_provider, provider, criteria, limit)
      for provider in self.providers
    }
    _, not_done = wait(list(futures.values()), timeout=timeout)

    sources_used = []
    rate_limited = {}

    for provider in self.providers:
      future = futures[provider.key]

      if future in not_done:
        future.cancel()
        print(f"  ⏱️  {provider.name} timed out, skipping")
        continue

      try:
        dogs = future.result()
      except ProviderRateLimited as e:
        print(f"  ⏳ {provider.name} rate limited: {e}")
        rate_limited[provider.key] = e.retry_after
        continue
      except ProviderUnavailable as e:
        print(f"  ❌ {provider.name} unavailable: {e}")
        continue
      except Exception as e:
        print(f"  ❌ {provider.name} failed: {e}")
        continue

      if dogs:
        sources_used.append(provider.key)
        merged = merge(merged, dogs)

    return merged, sources_used, rate_limited

  def _raise_empty(self, sources_tried: List[str], rate_limited: Dict[str, float]):
    if self.providers and len(rate_limited) == len(self.providers):
      raise ProviderRateLimited(",".join(rate_limited), min(rate_limited.values()))
    raise NoResultsFound(sources_tried)

  def search(
    self,
    criteria: Union[SearchCriteria, Dict, None] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    timeout: Optional[float] = None,
  ) -> SearchResult:
    """
    Ranked, paginated search.

    criteria may be a SearchCriteria or a dict of raw filters (location,
    breed, age, size, gender, special_needs, radius). Raises InvalidInput
    before touching any source, NoResultsFound when every source came up
    empty, and ProviderRateLimited only when every provider was limited.
    """
    page, page_size = validate_pagination(page, page_size)
    if not isinstance(criteria, SearchCriteria):
      criteria = build_criteria(**(criteria or {}))
    if timeout is None:
      timeout = WATERFALL["search_timeout"]

    offset = (page - 1) * page_size
    sufficient = min(page_size, WATERFALL["store_sufficient_results"])

    # 1. Store
    store_total, store_page = self._query_store(criteria, limit=page_size, offset=offset)
    if store_total >= sufficient:
      now = self.now()
      return SearchResult(
        animals=[ensure_score(dog, now) for dog in store_page],
        total=store_total,
        sources_used=[STORE],
      )

    # Too few to page through, so take them all for merging
    if store_total and offset:
      store_total, store_dogs = self._query_store(criteria)
    else:
      store_dogs = store_page
    now = self.now()
    store_dogs = [ensure_score(dog, now) for dog in store_dogs]

    sources_used = [STORE] if store_dogs else []
    sources_tried = [STORE] + [provider.key for provider in self.providers]

    # 2. Providers (bounded fan-out, abandoned after timeout)
    merged, provider_sources, rate_limited = self._fan_out(
      criteria, timeout, WATERFALL["provider_fetch_limit"], list(store_dogs)
    )
    sources_used.extend(provider_sources)

    # 3. Rank and paginate
    if not merged:
      self._raise_empty(sources_tried, rate_limited)

    ranked = rank(merged)
    return SearchResult(
      animals=ranked[offset:offset + page_size],
      total=len(ranked),
      sources_used=sources_used,
    )

  # ============================================
  # Spotlight and rural sweep
  # ============================================

  def spotlight(self, today: Optional[date] = None) -> Optional[Dog]:
    """
    Dog of the day: rotates through the top-scored adoptable dogs in the
    store, one per day of the year. None when the store has no scored dogs.
    """
    today = today or self.now().date()
    pool = self.store.query(limit=SPOTLIGHT["pool_size"], scored_only=True)
    if not pool:
      return None
    return pool[today.timetuple().tm_yday % len(pool)]

  def rural_sweep(
    self,
    postcode: Optional[str] = None,
    rng: random.Random = random,
    timeout: Optional[float] = None,
  ) -> SearchResult:
    """
    Most overlooked dogs within reach of one rural ZIP (a random one from
    RURAL_ZIPS unless given). Providers only, top scores first.
    """
    if postcode:
      location = parse_location(postcode)
      if not location or not location.postcode:
        raise InvalidInput("Rural sweep needs a ZIP code", field="postcode", value=postcode)
    else:
      location = ParsedLocation(postcode=rng.choice(RURAL_ZIPS))
    if timeout is None:
      timeout = WATERFALL["search_timeout"]

    print(f"  📍 Rural sweep around {location.postcode}")
    criteria = SearchCriteria(location=location, radius=RURAL_SWEEP["radius"])
    merged, sources_used, rate_limited = self._fan_out(criteria, timeout, RURAL_SWEEP["fetch_limit"], [])
    if not merged:
      self._raise_empty([provider.key for provider in self.providers], rate_limited)

    top = rank(merged)[:RURAL_SWEEP["top_n"]]
    return SearchResult(animals=top, total=len(top), sources_used=sources_used)

  # ============================================
  # Lookup
  # ============================================

  def get_by_id(self, dog_id: str) -> Optional[Dog]:
    """
    Full record for one dog, or None if no source has it.

    Store first, then providers in priority order; stops at the first hit.
    A provider-prefixed id ("petfinder_123") only asks that provider.
    """
    known = set(PROVIDER_CLASSES) | {p.key for p in self.providers}
    provider_key, native_id = split_dog_id(dog_id, known)
    if not native_id:
      raise InvalidInput("Dog id is required", field="dog_id", value=dog_id)

    try:
      if provider_key:
        dog = self.store.get_by_natural_key(provider_key, native_id)
      else:
        matches = self.store.find_by_native_id(native_id)
        dog = matches[0] if matches else None
    except PersistenceFailure as e:
      print(f"  ⚠️  Store unavailable for lookup: {e}")
      dog = None

    if dog:
      return ensure_score(dog, self.now())

    for provider in self.providers:
      if provider_key and provider.key != provider_key:
        continue
      try:
        raw = provider.get_by_id(native_id, max_wait=self.max_wait)
      except (ProviderRateLimited, ProviderUnavailable) as e:
        print(f"  ❌ {provider.name} lookup failed: {e}")
        continue
      if raw:
        return ensure_score(normalize(raw), self.now())

    return None


def print_results(result: SearchResult):
  print("\n" + "=" * 60)
  print(f"🐕 {result.total} dog(s) | sources: {', '.join(result.sources_used)}")
  print("=" * 60)
  for dog in result.animals:
    print(f"  ⭐ {dog.visibility_score:5.1f} | {dog.name} | {dog.breed.primary} | "
          f"{dog.age.value} {dog.size.value} | {dog.location.city}, {dog.location.state} | {dog.dog_id}")


def main():
  parser = argparse.ArgumentParser(description="Search adoptable dogs, most overlooked first")
  parser.add_argument("--location", type=str, help="ZIP code or 'City, ST'")
  parser.add_argument("--breed", type=str)
  parser.add_argument("--age", type=str)
  parser.add_argument("--size", type=str)
  parser.add_argument("--gender", type=str)
  parser.add_argument("--special-needs", action="store_true")
  parser.add_argument("--radius", type=int)
  parser.add_argument("--page", type=int, default=1)
  parser.add_argument("--page-size", type=int, default=WATERFALL["default_page_size"])
  parser.add_argument("--id", type=str, help="Look up a single dog by id")
  parser.add_argument("--spotlight", action="store_true", help="Show today's spotlight dog")
  parser.add_argument("--rural", action="store_true", help="Most overlooked dogs near a rural ZIP (--location to pick one)")
  parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")

  args = parser.parse_args()

  with Resolver() as resolver:
    try:
      if args.id:
        dog = resolver.get_by_id(args.id)
        if dog is None:
          print(f"❓ No dog found with id {args.id}")
          return 1
        print(json.dumps(dog.to_dict(), indent=2))
        return 0

      if args.spotlight:
        dog = resolver.spotlight()
        if dog is None:
          print("❓ No scored dogs in the store yet")
          return 1
        print(json.dumps(dog.to_dict(), indent=2))
        return 0

      if args.rural:
        result = resolver.rural_sweep(postcode=args.location)
      else:
        result = resolver.search(
          {
            "location": args.location,
            "breed": args.breed,
            "age": args.age,
            "size": args.size,
            "gender": args.gender,
            "special_needs": args.special_needs,
            "radius": args.radius,
          },
          page=args.page,
          page_size=args.page_size,
        )
    except InvalidInput as e:
      print(f"❌ {e.reason}")
      return 2
    except DogEngineError as e:
      print(f"❌ {e.message}")
      return 1

  if args.json:
    print(json.dumps(result.to_dict(), indent=2))
  else:
    print_results(result)
  return 0


if __name__ == "__main__":
  raise SystemExit(main())
