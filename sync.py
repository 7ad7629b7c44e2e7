#!/usr/bin/env python3
"""
Dog Listing Sync - Main Runner
v2.0.0 - Multi-provider diversity crawl

Crawls every configured provider across a fixed list of diversity filters
(size, age, special needs, recency windows) so the store covers far more
of each catalog than one capped query would. Each record is normalized,
scored and upserted by (provider, native_id). Listings a completed pass
didn't refresh for `stale_after_days` are soft-removed.

Provider passes run concurrently (each provider has its own rate limit);
filters within a pass run one after another. One provider failing never
stops another, and every pass leaves a sync_runs audit row.

Usage:
  python sync.py                        # Sync all configured providers
  python sync.py --provider petfinder   # Sync one provider
  python sync.py --report               # Show recent sync runs and store counts
"""
import argparse
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from config import SYNC
from dal import DAL, INSERTED, get_dal
from errors import DogEngineError, PersistenceFailure
from formatter import normalize
from providers import PROVIDER_CLASSES, build_providers
from scoring import score
from schema import (
  AgeGroup, SizeGroup, SearchCriteria, SyncRun, SyncStatus, SyncSummary,
  get_current_timestamp,
)

BUDGET_EXCEEDED = "runtime budget exceeded"


class RuntimeBudgetExceeded(Exception):
  """The sync ran past max_runtime_seconds"""


def criteria_from_filter(filter_def: Dict) -> SearchCriteria:
  """Turn one diversity filter from config into SearchCriteria"""
  between = filter_def.get("updated_between_days")
  return SearchCriteria(
    size=SizeGroup.from_string(filter_def["size"]) if filter_def.get("size") else None,
    age=AgeGroup.from_string(filter_def["age"]) if filter_def.get("age") else None,
    special_needs=True if filter_def.get("special_needs") else None,
    updated_within_days=filter_def.get("updated_within_days"),
    updated_between_days=tuple(between) if between else None,
  )


class SyncPass:
  """One provider's crawl across all diversity filters"""

  def __init__(self, provider, store: DAL, run: SyncRun, deadline: float,
               now: Callable[[], datetime], monotonic: Callable[[], float]):
    self.provider = provider
    self.store = store
    self.run = run
    self.deadline = deadline
    self.now = now
    self.monotonic = monotonic
    self.seen_ids = set()

  def execute(self):
    print(f"\n{'─' * 40}")
    print(f"📍 {self.provider.name}")
    print(f"{'─' * 40}")

    for filter_def in SYNC["diversity_filters"]:
      criteria = criteria_from_filter(filter_def)
      if self.provider.translate_filter(criteria) is None:
        print(f"  ⏭️  {filter_def['name']}: not supported by {self.provider.name}")
        continue

      self.run.filters_applied.append(filter_def["name"])
      self._crawl_filter(filter_def["name"], criteria)

  def _crawl_filter(self, name: str, criteria: SearchCriteria):
    before = len(self.seen_ids)

    for page_number in range(1, SYNC["max_pages_per_filter"] + 1):
      if self.monotonic() >= self.deadline:
        raise RuntimeBudgetExceeded(BUDGET_EXCEEDED)

      page = self.provider.search(criteria, page=page_number, max_wait=SYNC["sync_max_wait"])
      self.run.pages_fetched += 1

      for raw in page.records:
        if not raw.native_id or raw.native_id in self.seen_ids:
          continue
        self.seen_ids.add(raw.native_id)
        self._save(raw)

      if not page.has_more:
        break

    print(f"  ✅ {name}: {len(self.seen_ids) - before} new this run")

  def _save(self, raw):
    now = self.now()
    try:
      dog = normalize(raw)
      dog.visibility_score = score(dog, now)
    except Exception as e:
      self.run.errors += 1
      print(f"  ❌ Could not read {self.provider.name} record {raw.native_id}: {e}")
      return

    try:
      outcome = self.store.upsert(dog, now=now)
    except PersistenceFailure as e:
      self.run.errors += 1
      print(f"  ❌ Could not save {dog.dog_id}: {e}")
      return

    if outcome == INSERTED:
      self.run.dogs_added += 1
      print(f"  🆕 {dog.name} ({dog.dog_id})")
    else:
      self.run.dogs_updated += 1


def _resolve_providers(providers) -> list:
  if providers is None:
    return build_providers()
  resolved = []
  for provider in providers:
    if isinstance(provider, str):
      resolved.extend(build_providers([provider]))
    else:
      resolved.append(provider)
  return sorted(resolved, key=lambda p: p.priority)


def _run_pass(provider, store: DAL, deadline: float, now, monotonic) -> SyncRun:
  """Crawl one provider; never raises, always returns its SyncRun"""
  run = SyncRun(provider=provider.key, started_at=now())
  try:
    store.record_sync_run(run)
  except PersistenceFailure as e:
    print(f"  ⚠️  Could not record sync run start for {provider.name}: {e}")

  start_time = time.time()
  try:
    SyncPass(provider, store, run, deadline, now, monotonic).execute()
  except RuntimeBudgetExceeded:
    run.fail(BUDGET_EXCEEDED)
    print(f"  ⏱️  {provider.name}: {BUDGET_EXCEEDED}, stopping")
  except DogEngineError as e:
    run.fail(e.message)
    print(f"  ❌ {provider.name} pass failed: {e.message}")
  except Exception as e:
    run.fail(str(e))
    print(f"  ❌ Error: {e}")
    traceback.print_exc()

  duration = time.time() - start_time
  print(f"\n  📊 {provider.name}: {run.dogs_added} new, {run.dogs_updated} updated, "
        f"{run.pages_fetched} pages, {duration:.1f}s")
  return run


def run_sync(
  providers: Optional[list] = None,
  store: Optional[DAL] = None,
  now: Callable[[], datetime] = get_current_timestamp,
  monotonic: Callable[[], float] = time.monotonic,
  max_runtime_seconds: Optional[float] = None,
) -> SyncSummary:
  """
  Run a full sync of all (or the given) providers.

  providers may be provider keys or client instances. Returns a
  SyncSummary with one SyncRun per provider pass.
  """
  store = store or get_dal()
  providers = _resolve_providers(providers)
  if max_runtime_seconds is None:
    max_runtime_seconds = SYNC["max_runtime_seconds"]

  summary = SyncSummary(started_at=now())
  deadline = monotonic() + max_runtime_seconds

  print("\n" + "=" * 60)
  print("🐕 DOG LISTING SYNC - Starting")
  print(f"   Time: {summary.started_at.strftime('%Y-%m-%d %H:%M:%S')} UTC")
  print(f"   Providers: {', '.join(p.name for p in providers) or 'none configured'}")
  print("=" * 60)

  if not providers:
    return summary

  with ThreadPoolExecutor(max_workers=SYNC["max_workers"], thread_name_prefix="sync") as executor:
    futures = [
      executor.submit(_run_pass, provider, store, deadline, now, monotonic)
      for provider in providers
    ]
    summary.runs = [future.result() for future in futures]

  # Stale removal, only for passes that got all the way through
  threshold = now() - timedelta(days=SYNC["stale_after_days"])
  for run in summary.runs:
    if run.status == SyncStatus.FAILED:
      continue
    try:
      run.dogs_removed = store.mark_stale_as_removed(threshold, provider=run.provider)
      run.status = SyncStatus.COMPLETED
    except PersistenceFailure as e:
      run.fail(f"stale removal failed: {e}")

  for run in summary.runs:
    run.finished_at = now()
    if run.id is None:
      continue
    try:
      store.finalize_sync_run(run)
    except PersistenceFailure as e:
      print(f"  ⚠️  Could not record sync run result for {run.provider}: {e}")

  summary.finished_at = now()

  print("\n" + "=" * 60)
  print("📊 SYNC COMPLETE")
  print("=" * 60)
  print(f"   Status: {summary.status}")
  print(f"   New dogs: {summary.dogs_added}")
  print(f"   Updated: {summary.dogs_updated}")
  print(f"   Removed: {summary.dogs_removed}")
  if summary.failed_providers:
    print(f"   Failed: {len(summary.failed_providers)}")
    for run in summary.runs:
      if run.status == SyncStatus.FAILED:
        print(f"     - {run.provider}: {run.error_message}")

  return summary


def show_report(limit: int = 10):
  """Show recent sync runs and store counts"""
  dal = get_dal()

  print("\n" + "=" * 60)
  print("🐕 DOG LISTING SYNC - Recent Runs")
  print("=" * 60)

  runs = dal.recent_sync_runs(limit=limit)
  if not runs:
    print("  No sync runs recorded")
  for run in runs:
    status_emoji = {"completed": "✅", "failed": "❌", "in_progress": "⏳"}.get(run.status.value, "❓")
    date_str = run.started_at.strftime("%Y-%m-%d %H:%M") if run.started_at else "?"
    print(f"  {status_emoji} [{date_str}] {run.provider}: +{run.dogs_added} ~{run.dogs_updated} "
          f"-{run.dogs_removed} ({run.pages_fetched} pages, {run.errors} errors)")
    if run.error_message:
      print(f"      {run.error_message}")

  print("\n📋 STORE")
  print("-" * 40)
  for provider, counts in dal.get_stats().items():
    breakdown = ", ".join(f"{status}: {n}" for status, n in sorted(counts.items()))
    print(f"  {provider}: {breakdown}")


def main():
  parser = argparse.ArgumentParser(description="Dog Listing Sync v2.0")
  parser.add_argument("--provider", choices=sorted(PROVIDER_CLASSES), help="Sync a single provider")
  parser.add_argument("--report", action="store_true", help="Show recent sync runs")

  args = parser.parse_args()

  if args.report:
    show_report()
    return 0

  summary = run_sync(providers=[args.provider] if args.provider else None)
  return 0 if summary.status == SyncStatus.COMPLETED.value else 1


if __name__ == "__main__":
  raise SystemExit(main())
