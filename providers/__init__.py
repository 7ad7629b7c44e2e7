"""
External listing provider clients
"""
from providers.base_provider import BaseProvider, ProviderPage
from providers.rescuegroups import RescueGroupsProvider
from providers.petfinder import PetfinderProvider

PROVIDER_CLASSES = {
  "rescuegroups": RescueGroupsProvider,
  "petfinder": PetfinderProvider,
}


def get_provider(provider_key: str, **kwargs):
  """Get a client for a provider key (None if unknown)"""
  provider_class = PROVIDER_CLASSES.get(provider_key)
  if provider_class:
    return provider_class(**kwargs)
  return None


def build_providers(keys=None) -> list:
  """Configured provider clients in waterfall order (lowest priority number first)"""
  providers = []
  for key in keys or PROVIDER_CLASSES:
    provider = get_provider(key)
    if provider is None:
      print(f"⚠️  Unknown provider: {key}")
      continue
    if not provider.is_configured():
      print(f"⚠️  {provider.name} credentials not set, skipping")
      continue
    providers.append(provider)
  return sorted(providers, key=lambda p: p.priority)


__all__ = [
  "BaseProvider",
  "ProviderPage",
  "RescueGroupsProvider",
  "PetfinderProvider",
  "PROVIDER_CLASSES",
  "get_provider",
  "build_providers",
]
