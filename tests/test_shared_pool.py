import pytest
from unittest.mock import MagicMock

from recipefinder.core.background import BackgroundRunner
from recipefinder.errors import NetworkUnavailable, StorageUnavailable
from recipefinder.models import PooledRecipe
from recipefinder.services.ingredient_normalize import normalize_ingredients
from recipefinder.services.shared_pool import PoolStore, SharedPoolResolver


@pytest.fixture
def store(session_factory):
    return PoolStore(session_factory)


@pytest.fixture
def seeded(store, recipe_factory):
    """Three pool recipes generated for different combinations."""
    omelette = recipe_factory("x", ["egg", "cheese"], name="Omelette", ai_generated=True)
    menemen = recipe_factory("y", ["tomato", "onion", "egg", "pepper"], name="Menemen", ai_generated=True)
    rice = recipe_factory("z", ["rice", "butter"], name="Pilaf", ai_generated=True)
    return {
        "omelette": store.add_generated([omelette], normalize_ingredients(["egg", "cheese"]), user_id="u1")[0],
        "menemen": store.add_generated([menemen], normalize_ingredients(["tomato", "onion", "egg", "pepper"]))[0],
        "rice": store.add_generated([rice], normalize_ingredients(["rice", "butter"]))[0],
    }


def test_add_generated_records_combination(store, seeded, db_session):
    row = db_session.get(PooledRecipe, seeded["omelette"].id)
    assert row.popularity_score == 1.0
    assert row.created_by_user_id == "u1"
    assert sorted(c.ingredient for c in row.combination) == ["cheese", "egg"]
    assert row.original_ingredients == ["egg", "cheese"]


def test_find_containing_all(store, seeded):
    found = store.find_containing_all(["egg", "tomato"])
    assert [r.name for r in found] == ["Menemen"]
    assert found[0].source == "shared_pool"


def test_find_overlapping(store, seeded):
    found = store.find_overlapping(["egg", "cheese", "milk", "flour"], 2)
    assert [r.name for r in found] == ["Omelette"]


def test_find_candidates_dedupes(store, seeded):
    found = store.find_candidates(["egg", "cheese"], 1)
    names = [r.name for r in found]
    assert names.count("Omelette") == 1
    assert set(names) == {"Omelette", "Menemen"}


def test_increment_popularity_is_additive(store, seeded, db_session):
    rid = seeded["rice"].id
    store.increment_popularity({rid: 1.0})
    store.increment_popularity({rid: 0.5})
    assert db_session.get(PooledRecipe, rid).popularity_score == pytest.approx(2.5)


@pytest.mark.asyncio
async def test_resolver_skips_non_entitled_without_lookup(scorer):
    store = MagicMock()
    resolver = SharedPoolResolver(store, scorer)
    assert await resolver.resolve(normalize_ingredients(["egg"]), entitled=False) is None
    store.find_candidates.assert_not_called()


@pytest.mark.asyncio
async def test_resolver_hit_bumps_popularity(store, seeded, scorer, db_session):
    runner = BackgroundRunner("test")
    resolver = SharedPoolResolver(store, scorer, background=runner)

    bundle = await resolver.resolve(normalize_ingredients(["egg", "cheese"]), entitled=True)
    assert [m.recipe.name for m in bundle.exact_matches] == ["Omelette"]
    assert [m.recipe.name for m in bundle.near_matches] == ["Menemen"]

    await runner.drain()
    db_session.expire_all()
    assert db_session.get(PooledRecipe, seeded["omelette"].id).popularity_score == pytest.approx(2.0)
    assert db_session.get(PooledRecipe, seeded["menemen"].id).popularity_score == pytest.approx(1.5)


@pytest.mark.asyncio
async def test_popularity_failure_does_not_fail_read(scorer, recipe_factory):
    store = MagicMock()
    store.find_candidates.return_value = [recipe_factory("a", ["egg"])]
    store.increment_popularity.side_effect = StorageUnavailable("pool down")
    runner = BackgroundRunner("test")
    resolver = SharedPoolResolver(store, scorer, background=runner)

    bundle = await resolver.resolve(normalize_ingredients(["egg"]), entitled=True)
    assert bundle.total() == 1
    await runner.drain()
    store.increment_popularity.assert_called_once_with({"a": 1.0})


@pytest.mark.asyncio
async def test_network_failure_propagates(scorer):
    store = MagicMock()
    store.find_candidates.side_effect = NetworkUnavailable("unreachable")
    resolver = SharedPoolResolver(store, scorer)
    with pytest.raises(NetworkUnavailable):
        await resolver.resolve(normalize_ingredients(["egg"]), entitled=True)


def test_min_overlap_rounds_up(scorer):
    resolver = SharedPoolResolver(MagicMock(), scorer, overlap_ratio=0.5)
    assert resolver.min_overlap(normalize_ingredients(["a", "b", "c"])) == 2
    assert resolver.min_overlap(normalize_ingredients(["a"])) == 1
