"""
Test doubles: fake HTTP session, fake provider, fake clock and raw payload builders
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import ClassVar

import requests

from config import PROVIDERS
from providers import ProviderPage
from schema import (
  Dog, Breed, Location, Provenance, PetfinderRaw, RescueGroupsRaw,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
  """Manually advanced clock; sleep() advances it too"""

  def __init__(self, start: float = 1000.0):
    self.value = start
    self.sleeps = []

  def __call__(self) -> float:
    return self.value

  def advance(self, seconds: float):
    self.value += seconds

  def sleep(self, seconds: float):
    self.sleeps.append(seconds)
    self.value += seconds


class FakeResponse:
  def __init__(self, status_code=200, payload=None, headers=None):
    self.status_code = status_code
    self._payload = payload
    self.headers = headers or {}

  def json(self):
    if isinstance(self._payload, Exception):
      raise self._payload
    return self._payload


class FakeSession:
  """
  Stands in for requests.Session.

  handler(method, url, kwargs) returns a FakeResponse (or raises a
  requests exception). Every call is recorded in .calls.
  """

  def __init__(self, handler):
    self.handler = handler
    self.headers = {}
    self.calls = []

  def request(self, method, url, **kwargs):
    self.calls.append((method, url, kwargs))
    return self.handler(method, url, kwargs)

  def calls_to(self, fragment):
    return [call for call in self.calls if fragment in call[1]]


def fast_config(key, **overrides):
  """Provider config with rate limits that never block a test"""
  config = dict(PROVIDERS[key])
  config.update({"max_requests": 1000, "window_seconds": 1.0, "min_interval": 0.0})
  config.update(overrides)
  return config


def network_error(*args):
  raise requests.ConnectionError("connection refused")


class FakeProvider:
  """Provider client double with call counters"""

  def __init__(self, key, priority, records=None, pages=None, error=None, by_id=None,
               breeds=None, unsupported_special_needs=False):
    self.key = key
    self.name = key.title()
    self.priority = priority
    self.pages = pages if pages is not None else [ProviderPage(records=list(records or []))]
    self.error = error
    self.by_id = by_id or {}
    self.breeds = breeds or []
    self.unsupported_special_needs = unsupported_special_needs
    self.search_calls = []
    self.get_calls = []
    self.breed_calls = 0

  def is_configured(self):
    return True

  def translate_filter(self, criteria):
    if self.unsupported_special_needs and criteria.special_needs:
      return None
    return {}

  def search(self, criteria, page=1, limit=None, max_wait=0.0):
    self.search_calls.append((criteria, page))
    if self.error:
      raise self.error
    if page <= len(self.pages):
      return self.pages[page - 1]
    return ProviderPage()

  def get_by_id(self, native_id, max_wait=0.0):
    self.get_calls.append(native_id)
    if self.error:
      raise self.error
    return self.by_id.get(native_id)

  def list_known_breeds(self, max_wait=0.0):
    self.breed_calls += 1
    return list(self.breeds)


@dataclass(frozen=True)
class UnreadableRaw:
  """Raw record no formatter knows how to read"""
  native_id: str = "bad"
  source_kind: ClassVar[str] = "mystery"


def rg_animal(native_id, name, breed="Labrador Retriever", city="Austin", state="TX",
              age="Adult", sex="Male", size="Large", **attrs):
  """Minimal RescueGroups v5 animal wrapped as a raw record"""
  attributes = {
    "name": name,
    "breedPrimary": breed,
    "ageGroup": age,
    "sex": sex,
    "sizeGroup": size,
    "animalLocationCity": city,
    "animalLocationState": state,
    "descriptionText": f"{name} is a sweet dog who loves long walks and naps in the sun.",
  }
  attributes.update(attrs)
  return RescueGroupsRaw(animal={"type": "animals", "id": str(native_id), "attributes": attributes})


def pf_animal(native_id, name, breed="Labrador Retriever", city="Austin", state="TX",
              age="Adult", gender="Male", size="Large", **fields):
  """Minimal Petfinder v2 animal wrapped as a raw record"""
  animal = {
    "id": native_id,
    "type": "Dog",
    "name": name,
    "breeds": {"primary": breed, "secondary": None, "mixed": False},
    "age": age,
    "gender": gender,
    "size": size,
    "contact": {"address": {"city": city, "state": state}},
    "photos": [],
    "status": "adoptable",
  }
  animal.update(fields)
  return PetfinderRaw(animal=animal)


def make_dog(native_id="1", name="Rex", provider="rescuegroups", priority=2, **kwargs) -> Dog:
  """Canonical dog with quiet defaults (scores 0.0 unless overridden)"""
  defaults = dict(
    breed=Breed(primary="Labrador Retriever"),
    age="Young",
    size="Small",
    gender="Female",
    photos=["https://img/1.jpg", "https://img/2.jpg", "https://img/3.jpg"],
    description="x" * 200,
    location=Location(city="Denver", state="CO", postcode="80202"),
  )
  defaults.update(kwargs)
  return Dog(
    provider=provider,
    native_id=native_id,
    name=name,
    provenance=Provenance(source_provider=provider, source_priority=priority),
    **defaults,
  )
