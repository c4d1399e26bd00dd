import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from recipefinder.errors import GenerationFailed, QuotaExceeded, StorageUnavailable
from recipefinder.models import PooledRecipe
from recipefinder.schemas import GeneratedRecipes, SearchRequest, UserProfileHints
from recipefinder.services.entitlements import SqlEntitlementService
from recipefinder.services.generation import GenerationOrchestrator
from recipefinder.services.generation_cache import GenerationCacheStore
from recipefinder.services.ingredient_normalize import normalize_ingredients
from recipefinder.services.recipe_generator import MockRecipeGenerator
from recipefinder.services.shared_pool import PoolStore


@pytest.fixture
def entitlements(session_factory):
    return SqlEntitlementService(session_factory, daily_limit=20, free_credits=1)


@pytest.fixture
def pool_store(session_factory):
    return PoolStore(session_factory)


@pytest.fixture
def cache_store(session_factory, clock):
    return GenerationCacheStore(session_factory, clock=clock)


@pytest.mark.asyncio
async def test_generate_persists_to_pool_and_cache(entitlements, pool_store, cache_store, db_session):
    generator = MockRecipeGenerator(tokens_per_call=500)
    orchestrator = GenerationOrchestrator(entitlements, generator, pool_store, cache_store, timeout=5)
    query = normalize_ingredients(["chicken", "rice"])

    result = await orchestrator.generate(query, "u1")

    assert len(result.recipes) == 3
    assert all(r.source == "generated" for r in result.recipes)
    assert result.total_tokens_used == 500
    assert result.estimated_cost == pytest.approx(0.001)

    rows = db_session.query(PooledRecipe).all()
    assert len(rows) == 3
    assert {r.combination_key for r in rows} == {query.key}
    assert {r.id for r in rows} == {r.id for r in result.recipes}

    cached = cache_store.get(query.key)
    assert [r.id for r in cached] == [r.id for r in result.recipes]


@pytest.mark.asyncio
async def test_quota_consumed_before_call_and_exceeded_skips_generator(entitlements, pool_store, cache_store):
    generator = MockRecipeGenerator()
    orchestrator = GenerationOrchestrator(entitlements, generator, pool_store, cache_store)
    query = normalize_ingredients(["egg"])

    await orchestrator.generate(query, "u1")
    with pytest.raises(QuotaExceeded):
        await orchestrator.generate(query, "u1")
    assert generator.calls == 1


@pytest.mark.asyncio
async def test_timeout_is_generation_failed_and_quota_not_refunded(entitlements, pool_store, cache_store):
    async def slow(request):
        await asyncio.sleep(1)

    generator = MagicMock()
    generator.generate = slow
    orchestrator = GenerationOrchestrator(entitlements, generator, pool_store, cache_store, timeout=0.01)

    with pytest.raises(GenerationFailed):
        await orchestrator.generate(normalize_ingredients(["egg"]), "u1")

    quota = await entitlements.get_quota("u1")
    assert quota.credits_remaining == 0


@pytest.mark.asyncio
async def test_service_error_is_generation_failed(entitlements, pool_store, cache_store):
    generator = MagicMock()
    generator.generate = AsyncMock(side_effect=RuntimeError("boom"))
    orchestrator = GenerationOrchestrator(entitlements, generator, pool_store, cache_store)

    with pytest.raises(GenerationFailed):
        await orchestrator.generate(normalize_ingredients(["egg"]), "u1")


@pytest.mark.asyncio
async def test_persistence_failure_does_not_fail_generation(entitlements, cache_store):
    pool_store = MagicMock()
    pool_store.add_generated.side_effect = StorageUnavailable("pool down")
    orchestrator = GenerationOrchestrator(entitlements, MockRecipeGenerator(), pool_store, cache_store)
    query = normalize_ingredients(["egg", "rice"])

    result = await orchestrator.generate(query, "u1")
    assert len(result.recipes) == 3
    # Falls back to the generator's own ids
    assert cache_store.get(query.key) is not None


@pytest.mark.asyncio
async def test_hints_flow_into_generation_request(entitlements, pool_store, cache_store, recipe_factory):
    generator = MagicMock()
    generator.generate = AsyncMock(return_value=GeneratedRecipes(recipes=[recipe_factory("g", ["egg"])]))
    orchestrator = GenerationOrchestrator(entitlements, generator, pool_store, cache_store)
    hints = SearchRequest(
        ingredients=["egg"],
        locale="tr",
        meal_time="breakfast",
        user_profile=UserProfileHints(recipe_history=7),
        exclude_ingredients=["pork"],
    )

    await orchestrator.generate(normalize_ingredients(["egg"]), "u1", hints)

    request = generator.generate.await_args.args[0]
    assert request.ingredients == ["egg"]
    assert request.locale == "tr"
    assert request.meal_time == "breakfast"
    assert request.user_profile.recipe_history == 7
    assert request.exclude_ingredients == ["pork"]
