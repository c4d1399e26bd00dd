import pytest
from unittest.mock import AsyncMock, MagicMock

from recipefinder.core.text import clean_md, clean_steps
from recipefinder.errors import GenerationFailed
from recipefinder.schemas import GenerationRequest, UserProfileHints
from recipefinder.services.recipe_generator import (
    GeminiRecipeGenerator,
    GeneratedRecipeDraft,
    GeneratedRecipeList,
    MockRecipeGenerator,
    build_prompt,
    estimate_cost,
    prompt_strategy,
)


def test_prompt_strategy_by_history():
    assert prompt_strategy(None) == "conservative"
    assert prompt_strategy(UserProfileHints(recipe_history=4)) == "conservative"
    assert prompt_strategy(UserProfileHints(recipe_history=5)) == "balanced"
    assert prompt_strategy(UserProfileHints(recipe_history=19)) == "balanced"
    assert prompt_strategy(UserProfileHints(recipe_history=20)) == "adventurous"


def test_build_prompt_includes_hints():
    request = GenerationRequest(
        ingredients=["egg", "tomato"],
        meal_time="breakfast",
        user_profile=UserProfileHints(dietary_restrictions=["vegetarian"], favorite_categories=["turkish"], recipe_history=25),
        exclude_ingredients=["mushroom"],
    )
    prompt = build_prompt(request)
    assert prompt.startswith("For BREAKFAST:")
    assert "egg, tomato" in prompt
    assert "Diet: vegetarian" in prompt
    assert "Favorite cuisines: turkish" in prompt
    assert "ADVENTUROUS" in prompt
    assert "Do not use: mushroom" in prompt


def test_estimate_cost():
    assert estimate_cost(1500, 0.002) == pytest.approx(0.003)


def test_clean_steps():
    assert clean_steps(["1. **Chop** onions", "2) Fry\n3. Serve", "", "Serve"]) == ["Chop onions", "Fry", "Serve"]
    assert clean_md("## Menemen") == "Menemen"


@pytest.mark.asyncio
async def test_mock_generator_is_deterministic():
    generator = MockRecipeGenerator()
    request = GenerationRequest(ingredients=["chicken", "rice"])
    first = await generator.generate(request)
    second = await generator.generate(request)
    assert [r.id for r in first.recipes] == [r.id for r in second.recipes]
    assert first.recipes[0].ingredients == ["chicken", "rice"]
    assert all(r.ai_generated for r in first.recipes)


@pytest.fixture
def fake_client():
    client = MagicMock()
    client.is_available.return_value = True
    return client


@pytest.mark.asyncio
async def test_gemini_generator_sanitizes_output(fake_client):
    drafts = GeneratedRecipeList(recipes=[
        GeneratedRecipeDraft(
            name="**Egg Fried Rice**",
            ingredients=["Egg", "- Rice", ""],
            instructions=["1. Cook rice", "2. Fry with egg"],
            difficulty="kolay",
            preparation_time=-3,
        ),
        GeneratedRecipeDraft(name="", ingredients=["egg"]),
    ])
    fake_client.generate_structured = AsyncMock(return_value=(drafts, 2000))

    result = await GeminiRecipeGenerator(client=fake_client, cost_per_1k=0.002).generate(
        GenerationRequest(ingredients=["egg", "rice"])
    )

    assert len(result.recipes) == 1
    recipe = result.recipes[0]
    assert recipe.name == "Egg Fried Rice"
    assert recipe.ingredients == ["egg", "rice"]
    assert recipe.instructions == ["Cook rice", "Fry with egg"]
    assert recipe.difficulty == "medium"
    assert recipe.preparation_time is None
    assert recipe.source == "generated"
    assert result.total_tokens_used == 2000
    assert result.estimated_cost == pytest.approx(0.004)


@pytest.mark.asyncio
async def test_gemini_generator_failures(fake_client):
    request = GenerationRequest(ingredients=["egg"])

    fake_client.generate_structured = AsyncMock(side_effect=RuntimeError("429 quota"))
    with pytest.raises(GenerationFailed):
        await GeminiRecipeGenerator(client=fake_client).generate(request)

    fake_client.generate_structured = AsyncMock(return_value=(None, 0))
    with pytest.raises(GenerationFailed):
        await GeminiRecipeGenerator(client=fake_client).generate(request)

    fake_client.is_available.return_value = False
    with pytest.raises(GenerationFailed):
        await GeminiRecipeGenerator(client=fake_client).generate(request)
