"""Tests for the provider clients against a fake HTTP session."""
from datetime import timedelta

import pytest

from errors import AuthRefreshFailure, ProviderRateLimited, ProviderUnavailable
from providers import PetfinderProvider, RescueGroupsProvider, build_providers, get_provider
from providers.base_provider import parse_retry_after
from schema import AgeGroup, Gender, ParsedLocation, PetfinderRaw, RescueGroupsRaw, SearchCriteria, SizeGroup

from helpers import NOW, FakeResponse, FakeSession, fast_config, network_error


def rescuegroups(handler, **kwargs):
  return RescueGroupsProvider(
    api_key="rg-key",
    provider_config=fast_config("rescuegroups"),
    session=FakeSession(handler),
    now=lambda: NOW,
    **kwargs,
  )


def petfinder(handler, **kwargs):
  return PetfinderProvider(
    client_id="pf-id",
    client_secret="pf-secret",
    provider_config=fast_config("petfinder"),
    session=FakeSession(handler),
    now=lambda: NOW,
    **kwargs,
  )


class PetfinderApi:
  """Routes token and API calls; api_statuses are consumed one per API call"""

  def __init__(self, api_statuses=None, payload=None, headers=None):
    self.api_statuses = list(api_statuses or [])
    self.payload = payload if payload is not None else {"animals": [], "pagination": {"total_pages": 1}}
    self.headers = headers or {}
    self.tokens_issued = 0

  def __call__(self, method, url, kwargs):
    if url.endswith("/oauth2/token"):
      self.tokens_issued += 1
      return FakeResponse(200, {"access_token": f"tok-{self.tokens_issued}", "expires_in": 3600})
    status = self.api_statuses.pop(0) if self.api_statuses else 200
    return FakeResponse(status, self.payload if status == 200 else {}, self.headers)


class TestRescueGroups:

  def test_search_request_and_parsing(self):
    payload = {
      "meta": {"count": 250, "pages": 3},
      "data": [
        {"type": "animals", "id": "1", "attributes": {"name": "Ace"}},
        {"type": "animals", "id": "2", "attributes": {"name": "Bea"}},
      ],
      "included": [{"type": "pictures", "id": "9", "attributes": {"large": {"url": "https://p.jpg"}}}],
    }
    provider = rescuegroups(lambda m, u, k: FakeResponse(200, payload))
    criteria = SearchCriteria(location=ParsedLocation(postcode="78701"), radius=50, size=SizeGroup.LARGE)

    page = provider.search(criteria, page=1, limit=25)

    method, url, kwargs = provider.session.calls[0]
    assert method == "POST"
    assert url.endswith("/animals/search/available/dogs")
    assert kwargs["headers"]["Authorization"] == "rg-key"
    assert kwargs["params"] == {"include": "orgs,locations,pictures", "limit": 25, "page": 1}
    assert kwargs["json"]["data"]["filterRadius"] == {"miles": 50, "postalcode": "78701"}
    assert {"fieldName": "animals.sizeGroup", "operation": "equals", "criteria": "Large"} in kwargs["json"]["data"]["filters"]

    assert [r.native_id for r in page.records] == ["1", "2"]
    assert all(isinstance(r, RescueGroupsRaw) for r in page.records)
    assert page.records[0].included == payload["included"]
    assert page.has_more is True
    assert page.total == 250

  def test_last_page(self):
    payload = {"meta": {"pages": 2}, "data": []}
    provider = rescuegroups(lambda m, u, k: FakeResponse(200, payload))
    assert provider.search(SearchCriteria(), page=2).has_more is False

  def test_filters_for_city_breed_and_windows(self):
    provider = rescuegroups(lambda m, u, k: FakeResponse(200, {}))
    body = provider.translate_filter(SearchCriteria(
      location=ParsedLocation(city="Austin", state="TX"),
      provider_breed="Beagle",
      age=AgeGroup.SENIOR,
      gender=Gender.FEMALE,
      special_needs=True,
      updated_between_days=(60, 180),
    ))
    filters = body["data"]["filters"]
    assert "filterRadius" not in body["data"]
    assert {"fieldName": "locations.city", "operation": "equals", "criteria": "Austin"} in filters
    assert {"fieldName": "animals.breedPrimary", "operation": "contains", "criteria": "Beagle"} in filters
    assert {"fieldName": "animals.ageGroup", "operation": "equals", "criteria": "Senior"} in filters
    assert {"fieldName": "animals.sex", "operation": "equals", "criteria": "Female"} in filters
    assert {"fieldName": "animals.isSpecialNeeds", "operation": "equals", "criteria": True} in filters
    oldest = (NOW - timedelta(days=180)).strftime("%Y-%m-%d")
    newest = (NOW - timedelta(days=60)).strftime("%Y-%m-%d")
    assert {"fieldName": "animals.updatedDate", "operation": "greaterthan", "criteria": oldest} in filters
    assert {"fieldName": "animals.updatedDate", "operation": "lessthan", "criteria": newest} in filters

  def test_get_by_id(self):
    payload = {"data": [{"type": "animals", "id": "44", "attributes": {"name": "Gus"}}], "included": []}
    provider = rescuegroups(lambda m, u, k: FakeResponse(200, payload))
    raw = provider.get_by_id("44")
    assert raw.native_id == "44"
    assert provider.session.calls[0][1].endswith("/animals/44")

  def test_get_by_id_not_found(self):
    provider = rescuegroups(lambda m, u, k: FakeResponse(404, {}))
    assert provider.get_by_id("404") is None

  def test_server_error(self):
    provider = rescuegroups(lambda m, u, k: FakeResponse(503, {}))
    with pytest.raises(ProviderUnavailable) as exc_info:
      provider.search(SearchCriteria())
    assert exc_info.value.status_code == 503

  def test_network_error(self):
    provider = rescuegroups(network_error)
    with pytest.raises(ProviderUnavailable):
      provider.search(SearchCriteria())

  def test_invalid_json(self):
    provider = rescuegroups(lambda m, u, k: FakeResponse(200, ValueError("bad json")))
    with pytest.raises(ProviderUnavailable):
      provider.search(SearchCriteria())

  def test_429_sets_retry_after_and_blocks_limiter(self):
    provider = rescuegroups(lambda m, u, k: FakeResponse(429, {}, {"Retry-After": "12"}))
    with pytest.raises(ProviderRateLimited) as exc_info:
      provider.search(SearchCriteria())
    assert exc_info.value.retry_after == 12.0

    # The limiter now refuses locally without another HTTP call
    with pytest.raises(ProviderRateLimited):
      provider.search(SearchCriteria())
    assert len(provider.session.calls) == 1

  def test_breed_list(self):
    payload = {"data": [{"attributes": {"name": "Beagle"}}, {"attributes": {"name": "Boxer"}}, {"attributes": {}}]}
    provider = rescuegroups(lambda m, u, k: FakeResponse(200, payload))
    assert provider.list_known_breeds() == ["Beagle", "Boxer"]


class TestPetfinder:

  def test_search_uses_bearer_token_and_params(self):
    api = PetfinderApi(payload={
      "animals": [{"id": 1, "name": "Ace"}, {"id": 2, "name": "Bea"}],
      "pagination": {"current_page": 1, "total_pages": 4, "total_count": 80},
    })
    provider = petfinder(api)
    criteria = SearchCriteria(
      location=ParsedLocation(city="Austin", state="TX"),
      radius=50,
      provider_breed="Labrador Retriever",
      size=SizeGroup.EXTRA_LARGE,
      age=AgeGroup.BABY,
    )

    page = provider.search(criteria, page=1, limit=20)

    token_call, api_call = provider.session.calls
    assert token_call[1].endswith("/oauth2/token")
    assert token_call[2]["data"]["grant_type"] == "client_credentials"
    assert api_call[2]["headers"]["Authorization"] == "Bearer tok-1"
    params = api_call[2]["params"]
    assert params["type"] == "dog"
    assert params["status"] == "adoptable"
    assert params["location"] == "Austin, TX"
    assert params["distance"] == 50
    assert params["breed"] == "Labrador Retriever"
    assert params["size"] == "xlarge"
    assert params["age"] == "baby"
    assert params["limit"] == 20

    assert [r.native_id for r in page.records] == ["1", "2"]
    assert all(isinstance(r, PetfinderRaw) for r in page.records)
    assert page.has_more is True
    assert page.total == 80

  def test_token_reused_across_calls(self):
    api = PetfinderApi()
    provider = petfinder(api)
    provider.search(SearchCriteria())
    provider.search(SearchCriteria())
    assert api.tokens_issued == 1

  def test_single_401_refreshes_once(self):
    api = PetfinderApi(api_statuses=[401, 200])
    provider = petfinder(api)

    page = provider.search(SearchCriteria())

    assert page.records == []
    assert api.tokens_issued == 2
    assert provider.session.calls[-1][2]["headers"]["Authorization"] == "Bearer tok-2"

  def test_repeated_401_is_bounded(self):
    api = PetfinderApi(api_statuses=[401, 401, 401, 401])
    provider = petfinder(api)

    with pytest.raises(AuthRefreshFailure):
      provider.search(SearchCriteria())

    assert api.tokens_issued == 2
    assert len(provider.session.calls_to("/animals")) == 2

  def test_auth_failure_is_provider_unavailable(self):
    assert issubclass(AuthRefreshFailure, ProviderUnavailable)

  def test_rejected_credentials(self):
    provider = petfinder(lambda m, u, k: FakeResponse(401, {}))
    with pytest.raises(AuthRefreshFailure):
      provider.search(SearchCriteria())

  def test_special_needs_not_expressible(self):
    provider = petfinder(PetfinderApi())
    assert provider.translate_filter(SearchCriteria(special_needs=True)) is None
    assert provider.search(SearchCriteria(special_needs=True)).records == []
    assert provider.session.calls == []

  def test_recency_window(self):
    provider = petfinder(PetfinderApi())
    params = provider.translate_filter(SearchCriteria(updated_within_days=30))
    assert params["after"] == (NOW - timedelta(days=30)).isoformat()

  def test_429(self):
    provider = petfinder(PetfinderApi(api_statuses=[429], headers={"Retry-After": "5"}))
    with pytest.raises(ProviderRateLimited) as exc_info:
      provider.search(SearchCriteria())
    assert exc_info.value.retry_after == 5.0

  def test_get_by_id(self):
    api = PetfinderApi(payload={"animal": {"id": 77, "type": "Dog", "name": "Moose"}})
    provider = petfinder(api)
    raw = provider.get_by_id("77")
    assert raw.native_id == "77"

  def test_get_by_id_other_species(self):
    api = PetfinderApi(payload={"animal": {"id": 78, "type": "Cat", "name": "Tom"}})
    assert petfinder(api).get_by_id("78") is None

  def test_get_by_id_not_found(self):
    provider = petfinder(PetfinderApi(api_statuses=[404]))
    assert provider.get_by_id("1") is None

  def test_breed_list(self):
    api = PetfinderApi(payload={"breeds": [{"name": "Akita"}, {"name": "Beagle"}]})
    assert petfinder(api).list_known_breeds() == ["Akita", "Beagle"]


class TestRegistry:

  def test_get_provider(self):
    provider = get_provider("petfinder", client_id="a", client_secret="b")
    assert isinstance(provider, PetfinderProvider)
    assert provider.is_configured()
    assert get_provider("nope") is None

  def test_unconfigured_providers_skipped(self, monkeypatch):
    monkeypatch.setattr("providers.rescuegroups.RESCUEGROUPS_API_KEY", "")
    monkeypatch.setattr("providers.petfinder.PETFINDER_CLIENT_ID", "")
    monkeypatch.setattr("providers.petfinder.PETFINDER_CLIENT_SECRET", "")
    assert build_providers() == []

  def test_configured_providers_in_priority_order(self, monkeypatch):
    monkeypatch.setattr("providers.rescuegroups.RESCUEGROUPS_API_KEY", "k")
    monkeypatch.setattr("providers.petfinder.PETFINDER_CLIENT_ID", "i")
    monkeypatch.setattr("providers.petfinder.PETFINDER_CLIENT_SECRET", "s")
    assert [p.key for p in build_providers(["petfinder", "rescuegroups"])] == ["rescuegroups", "petfinder"]


def test_parse_retry_after():
  assert parse_retry_after("30") == 30.0
  assert parse_retry_after(None) == 60.0
  assert parse_retry_after("Wed, 21 Oct 2026 07:28:00 GMT") == 60.0
