import pytest

from recipefinder.models import GenerationCacheEntry
from recipefinder.services.generation_cache import GenerationCacheResolver, GenerationCacheStore
from recipefinder.services.ingredient_normalize import normalize_ingredients


@pytest.fixture
def store(session_factory, clock):
    return GenerationCacheStore(session_factory, clock=clock)


def test_put_sets_thirty_day_expiry(store, recipe_factory, db_session):
    query = normalize_ingredients(["egg", "rice"])
    store.put(query, [recipe_factory("g1", ["egg", "rice"])], tokens_used=120)

    row = db_session.get(GenerationCacheEntry, query.key)
    assert row.tokens_used == 120
    assert row.ingredients == ["egg", "rice"]
    assert (row.expires_at - row.created_at).days == 30


def test_get_returns_recipes_until_expiry(store, recipe_factory, clock):
    query = normalize_ingredients(["egg", "rice"])
    store.put(query, [recipe_factory("g1", ["egg", "rice"])])

    clock.advance(days=29)
    recipes = store.get(query.key)
    assert [r.id for r in recipes] == ["g1"]
    assert recipes[0].source == "generation_cache"

    clock.advance(days=1)
    assert store.get(query.key) is None


def test_purge_expired(store, recipe_factory, clock):
    store.put(normalize_ingredients(["egg"]), [recipe_factory("a", ["egg"])])
    clock.advance(days=10)
    store.put(normalize_ingredients(["rice"]), [recipe_factory("b", ["rice"])])
    clock.advance(days=25)

    assert store.purge_expired() == 1
    assert store.get(normalize_ingredients(["rice"]).key) is not None


@pytest.mark.asyncio
async def test_resolver_scores_cached_recipes(store, scorer, recipe_factory):
    query = normalize_ingredients(["egg", "rice"])
    store.put(query, [
        recipe_factory("g1", ["egg", "rice"]),
        recipe_factory("g2", ["egg", "rice", "soy sauce"]),
        recipe_factory("g3", ["flour", "milk"]),
    ])

    bundle = await GenerationCacheResolver(store, scorer).resolve(query)
    assert [m.recipe.id for m in bundle.exact_matches] == ["g1"]
    assert [m.recipe.id for m in bundle.near_matches] == ["g2"]


@pytest.mark.asyncio
async def test_resolver_miss(store, scorer):
    assert await GenerationCacheResolver(store, scorer).resolve(normalize_ingredients(["egg"])) is None
