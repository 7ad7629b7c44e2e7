"""Tests for search input normalization and breed matching."""
import pytest

from errors import InvalidInput, ProviderUnavailable
from schema import AgeGroup, Gender, ParsedLocation, SizeGroup
from search_normalizer import (
  BreedMatcher, build_criteria, normalize_age, normalize_breed_text, normalize_gender,
  normalize_radius, normalize_size, parse_location, validate_pagination,
)

from helpers import FakeClock

VOCABULARY = ["Beagle", "Golden Retriever", "Labrador Retriever", "Siberian Husky"]


class TestParseLocation:

  @pytest.mark.parametrize("text,expected", [
    ("80202", ParsedLocation(postcode="80202")),
    ("80202-1234", ParsedLocation(postcode="80202")),
    ("Austin, TX", ParsedLocation(city="Austin", state="TX")),
    ("austin tx", ParsedLocation(city="Austin", state="TX")),
    ("new york ny", ParsedLocation(city="New York", state="NY")),
    ("Portland, Oregon", ParsedLocation(city="Portland", state="OR")),
    ("St. Louis, MO", ParsedLocation(city="St. Louis", state="MO")),
    ("Denver, CO 80202", ParsedLocation(postcode="80202")),
    ("Rural Hall, NC", ParsedLocation(city="Rural Hall", state="NC")),
    ("rural hall nc", ParsedLocation(city="Rural Hall", state="NC")),
  ])
  def test_accepted(self, text, expected):
    assert parse_location(text) == expected

  @pytest.mark.parametrize("text", [
    "rural",
    "Anywhere",
    "you pick",
    "near me",
    "dogs near me",
    "somewhere rural",
    "12",
    "Austin, ZZ",
    "Austin",
    "rural TX",
    "Rural, Texas",
    "anywhere in montana",
  ])
  def test_rejected(self, text):
    with pytest.raises(InvalidInput) as exc_info:
      parse_location(text)
    assert exc_info.value.field == "location"

  def test_empty_means_no_filter(self):
    assert parse_location(None) is None
    assert parse_location("   ") is None


class TestFilters:

  def test_enums(self):
    assert normalize_age("puppy") == AgeGroup.BABY
    assert normalize_size("XL") == SizeGroup.EXTRA_LARGE
    assert normalize_size("Extra Large") == SizeGroup.EXTRA_LARGE
    assert normalize_gender("f") == Gender.FEMALE

  def test_any_means_none(self):
    assert normalize_age("any") is None
    assert normalize_size(None) is None
    assert normalize_gender("No preference") is None

  def test_unknown_enum_rejected(self):
    with pytest.raises(InvalidInput):
      normalize_age("ancient")
    with pytest.raises(InvalidInput):
      normalize_size("gigantic")

  def test_radius(self):
    assert normalize_radius("25") == 25
    assert normalize_radius(None) is None
    for bad in (0, 501, "far"):
      with pytest.raises(InvalidInput):
        normalize_radius(bad)

  def test_breed_text(self):
    assert normalize_breed_text("  golden   retriever, ") == "golden retriever"
    assert normalize_breed_text("any") is None

  def test_pagination(self):
    assert validate_pagination(1, None) == (1, 10)
    assert validate_pagination("2", "5") == (2, 5)
    for page, page_size in ((0, 10), (1, 0), (1, 101), ("x", 10)):
      with pytest.raises(InvalidInput):
        validate_pagination(page, page_size)

  def test_build_criteria_defaults_radius_for_location(self):
    criteria = build_criteria(location="80202", breed="Labs", size="large", special_needs=False)
    assert criteria.location == ParsedLocation(postcode="80202")
    assert criteria.radius == 100
    assert criteria.breed == "Labs"
    assert criteria.size == SizeGroup.LARGE
    assert criteria.special_needs is None

  def test_build_criteria_without_location(self):
    criteria = build_criteria(special_needs=True)
    assert criteria.location is None
    assert criteria.radius is None
    assert criteria.special_needs is True


class TestBreedMatcher:

  def _matcher(self, breeds=VOCABULARY, clock=None):
    calls = []

    def fetch():
      calls.append(1)
      if isinstance(breeds, Exception):
        raise breeds
      return list(breeds)

    return BreedMatcher(fetch, threshold=0.6, cache_ttl=60, clock=clock or FakeClock()), calls

  def test_exact_is_case_insensitive(self):
    matcher, _ = self._matcher()
    assert matcher.match("beagle") == "Beagle"

  def test_alias(self):
    matcher, _ = self._matcher()
    assert matcher.match("Labs") == "Labrador Retriever"
    assert matcher.match("huskies") == "Siberian Husky"

  def test_fuzzy(self):
    matcher, _ = self._matcher()
    assert matcher.match("golden retriver") == "Golden Retriever"
    assert matcher.match("retriever labrador") == "Labrador Retriever"

  def test_no_match_means_no_filter(self):
    matcher, _ = self._matcher()
    assert matcher.match("qwxz") is None
    assert matcher.match("") is None
    assert matcher.match(None) is None

  def test_vocabulary_cached_until_ttl(self):
    clock = FakeClock()
    matcher, calls = self._matcher(clock=clock)
    matcher.match("beagle")
    matcher.match("golden retriver")
    assert len(calls) == 1

    clock.advance(61)
    matcher.match("beagle")
    assert len(calls) == 2

  def test_fetch_failure_is_not_cached(self):
    matcher, calls = self._matcher(breeds=ProviderUnavailable("petfinder", "down"))
    assert matcher.match("golden retriver") is None
    assert matcher.match("beagle") is None
    assert len(calls) == 2

  def test_alias_without_vocabulary(self):
    matcher, _ = self._matcher(breeds=[])
    assert matcher.match("lab") == "Labrador Retriever"
    assert matcher.match("golden retriver") is None
