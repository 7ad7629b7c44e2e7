"""
Configuration for the dog visibility engine
"""
import os

# Database configuration
DB_PATH = os.environ.get("DOGS_DB_PATH", "dogs.db")

# Provider credentials (set as environment variables)
RESCUEGROUPS_API_KEY = os.environ.get("RESCUEGROUPS_API_KEY", "")
PETFINDER_CLIENT_ID = os.environ.get("PETFINDER_CLIENT_ID", "")
PETFINDER_CLIENT_SECRET = os.environ.get("PETFINDER_CLIENT_SECRET", "")

# Source trust ranking (lower = more trusted, wins dedup)
STORE_PRIORITY = 1

# External listing providers, in waterfall order
PROVIDERS = {
  "rescuegroups": {
    "name": "RescueGroups",
    "base_url": "https://api.rescuegroups.org/v5/public",
    "priority": 2,
    "max_requests": 10,      # requests per window
    "window_seconds": 1.0,
    "min_interval": 0.1,     # seconds between requests
    "page_limit": 100,
  },
  "petfinder": {
    "name": "Petfinder",
    "base_url": "https://api.petfinder.com/v2",
    "priority": 3,
    "max_requests": 50,
    "window_seconds": 60.0,
    "min_interval": 1.0,
    "page_limit": 100,
    "token_refresh_margin": 300,  # refresh bearer 5 minutes before expiry
  },
}

# Shown when a listing has no photos at all
PLACEHOLDER_PHOTO_URL = "https://barkbase.org/images/dog-placeholder.png"

# Visibility ("invisibility") score weights
# Higher score = more overlooked. Results are ranked DESCENDING.
VISIBILITY_WEIGHTS = {
  # Time listed: points per day, capped
  "days_listed_per_day": 2,
  "days_listed_max": 30,

  # Photo scarcity by real photo count (3+ = 0)
  "photos": {0: 40, 1: 20, 2: 10},

  # Description scarcity: (max length exclusive, points), first match wins
  "description_bands": [(1, 30), (50, 20), (150, 10)],

  "age": {
    "Senior": 20,
    "Adult": 10,
    "Young": 0,
    "Baby": 0,
    "Unknown": 5,
  },

  "size": {
    "ExtraLarge": 10,
    "Large": 7,
    "Medium": 3,
    "Small": 0,
    "Unknown": 2,
  },

  "rare_breed": 12,
  "mixed_breed": 8,

  "special_needs": 15,
  "not_good_with_children": 8,
  "not_good_with_dogs": 6,
  "not_good_with_cats": 4,
  "not_house_trained": 5,
  "not_spayed_neutered": 4,
  "shots_not_current": 6,

  "medical_keywords": 15,
  "high_energy": 8,
  "male": 6,
  "dark_coat": 12,
  "rural_location": 8,
}

POPULAR_BREEDS = [
  "golden retriever", "labrador retriever", "german shepherd", "bulldog",
  "poodle", "beagle", "rottweiler", "yorkshire terrier", "dachshund",
  "siberian husky", "boxer", "border collie", "australian shepherd",
]

MEDICAL_KEYWORDS = ["medical", "surgery", "treatment", "medication"]
DARK_COAT_KEYWORDS = ["black", "dark"]
RURAL_CITY_KEYWORDS = ["rural", "county", "township", "ville"]
RURAL_ZIP_PREFIXES = ["59", "69", "73", "88", "04", "13"]
SMALL_TOWN_NAME_LENGTH = 6  # city names shorter than this read as small towns

# Cross-provider duplicate detection
DEDUP_RULES = {
  "unknown_values_match": False,  # "Unknown" state/age/gender never match
  "name_strip_pattern": r"[^a-z0-9]",
}

# Search waterfall
WATERFALL = {
  "store_sufficient_results": 3,  # store alone answers when >= min(page_size, this)
  "default_page_size": 10,
  "max_page_size": 100,
  "provider_fetch_limit": 50,
  "search_max_wait": 2.0,         # longest a search will wait on a rate limiter
  "search_timeout": 20.0,         # provider calls still running after this are abandoned
  "max_workers": 4,
  "default_radius": 100,
  "summary_description_length": 150,
}

# Dog of the day: rotates daily through the top-scored adoptable dogs
SPOTLIGHT = {
  "pool_size": 10,
}

# Rural sweep: provider search around a random rural ZIP for the most overlooked dogs
RURAL_SWEEP = {
  "radius": 100,
  "fetch_limit": 100,
  "top_n": 10,
}

RURAL_ZIPS = [
  # Texas
  "77833", "79065", "76801", "76401", "76520", "78934",
  # Arkansas
  "72801", "72501", "71923", "71601", "72653",
  # Alabama
  "35640", "36904", "36784", "36027", "35960",
  # Mississippi
  "39483", "39046", "39701", "38701", "38930",
  # Georgia
  "31750", "39840", "31036", "30540", "30830",
  # Louisiana
  "71235", "71270", "70748", "71463", "70529",
  # Oklahoma
  "74825", "74743", "73662", "74937", "73844",
  # Kentucky
  "42748", "41049", "42141", "41858", "42633",
  # Tennessee
  "38583", "37688", "38226", "37387", "38057",
  # Carolinas
  "27529", "27205", "28139", "29554", "29170", "29031",
  # West Virginia and Virginia
  "25403", "26062", "24731", "24501", "23927",
  # Mountain West
  "59715", "59870", "59322", "82414", "82633", "83025", "83318", "84515", "84540", "89049", "89408",
  # Pacific Northwest
  "97420", "97759", "98943", "99161",
  # Plains
  "58201", "58472", "57601", "57626", "68930", "68738", "67901", "67736",
  # Midwest
  "50424", "52169", "65775", "63558", "62471", "61729",
]

BREED_MATCH = {
  "threshold": 0.6,
  "cache_ttl_seconds": 24 * 60 * 60,
}

# Search terms that map straight onto provider breed names
BREED_ALIASES = {
  "lab": "Labrador Retriever",
  "labs": "Labrador Retriever",
  "labrador": "Labrador Retriever",
  "chihuahuas": "Chihuahua",
  "german shepherds": "German Shepherd Dog",
  "german shepherd": "German Shepherd Dog",
  "pit bull": "Pit Bull Terrier",
  "pit bulls": "Pit Bull Terrier",
  "pitbull": "Pit Bull Terrier",
  "golden retrievers": "Golden Retriever",
  "huskies": "Siberian Husky",
  "husky": "Siberian Husky",
}

# Batch ingestion
SYNC = {
  "diversity_filters": [
    {"name": "default", "updated_within_days": 90},
    {"name": "recent", "updated_within_days": 30},
    {"name": "older", "updated_between_days": (60, 180)},
    {"name": "very_old", "updated_between_days": (180, 365)},
    {"name": "small_dogs", "size": "Small"},
    {"name": "medium_dogs", "size": "Medium"},
    {"name": "large_dogs", "size": "Large"},
    {"name": "extra_large_dogs", "size": "ExtraLarge"},
    {"name": "puppies", "age": "Baby"},
    {"name": "adults", "age": "Adult"},
    {"name": "seniors", "age": "Senior"},
    {"name": "special_needs", "special_needs": True},
  ],
  "max_pages_per_filter": 5,
  "stale_after_days": 30,
  "max_runtime_seconds": 45 * 60,
  "sync_max_wait": 60.0,
  "max_workers": 2,
}

# User agent for provider requests
USER_AGENT = "BarkBase/1.0 (+https://barkbase.org)"
