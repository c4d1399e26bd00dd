import sys
import os

# Add project root to sys.path
sys.path.append(os.path.join(os.path.dirname(__file__), "../"))

from recipefinder.db import init_db
from recipefinder.errors import ResolverError
from recipefinder.services.generation_cache import GenerationCacheStore
from recipefinder.settings import settings


def purge_generation_cache():
    print(f"Connecting to {settings.database_url}...")
    init_db()
    store = GenerationCacheStore()

    try:
        removed = store.purge_expired()
        print(f"Removed {removed} expired generation cache entries.")
    except ResolverError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    purge_generation_cache()
