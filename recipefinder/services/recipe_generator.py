import hashlib
import logging
import uuid
from typing import List, Optional, Protocol

from pydantic import BaseModel, Field

from ..core.ai_client import AIClient, ai_client
from ..core.text import clamp, clean_md, clean_steps
from ..errors import GenerationFailed
from ..schemas import GeneratedRecipes, GenerationRequest, Recipe, UserProfileHints
from ..settings import settings

logger = logging.getLogger("recipefinder.ai")

RECIPES_PER_REQUEST = 3

MEAL_TIME_PROMPTS = {
    "breakfast": "For BREAKFAST:",
    "lunch": "For LUNCH:",
    "dinner": "For DINNER:",
    "snack": "For a SNACK:",
}

SYSTEM_PROMPT = """
You are an experienced home cook. Suggest practical, tasty recipes that use the
given ingredients. Output ONLY valid JSON matching the provided schema. No markdown,
no prose, no code fences.

RULES:
- description is one sentence (max 100 characters).
- ingredients are plain names, lowercase, one per entry.
- instructions are short steps, one action each, starting with a verb.
- difficulty is one of: easy, medium, hard.
"""


class GeneratedRecipeDraft(BaseModel):
    name: str
    description: Optional[str] = None
    ingredients: List[str] = Field(default_factory=list)
    instructions: List[str] = Field(default_factory=list)
    preparation_time: Optional[int] = Field(None, description="Minutes.")
    servings: Optional[int] = None
    difficulty: Optional[str] = Field(None, description="easy, medium or hard")
    category: Optional[str] = None
    recommendation_type: Optional[str] = Field(None, description="preference or discovery")
    tips: Optional[str] = None


class GeneratedRecipeList(BaseModel):
    recipes: List[GeneratedRecipeDraft]


class RecipeGenerator(Protocol):
    async def generate(self, request: GenerationRequest) -> GeneratedRecipes: ...


def prompt_strategy(profile: Optional[UserProfileHints]) -> str:
    history = profile.recipe_history if profile else 0
    if history >= 20:
        return "adventurous"
    if history >= 5:
        return "balanced"
    return "conservative"


def build_prompt(request: GenerationRequest) -> str:
    """Adaptive prompt: the more recipes a user has tried, the more discovery picks."""
    strategy = prompt_strategy(request.user_profile)
    meal_prompt = MEAL_TIME_PROMPTS.get(request.meal_time or "", "")

    prompt = f"{meal_prompt} Suggest {RECIPES_PER_REQUEST} recipes using these ingredients: {', '.join(request.ingredients)}".strip()

    profile = request.user_profile
    if profile:
        prompt += "\n\nUSER PROFILE:"
        if profile.dietary_restrictions:
            prompt += f"\n- Diet: {', '.join(profile.dietary_restrictions)}"
        if profile.favorite_categories:
            prompt += f"\n- Favorite cuisines: {', '.join(profile.favorite_categories)}"
        if profile.cooking_level:
            prompt += f"\n- Cooking level: {profile.cooking_level}"

    prompt += f"\n\nRECIPE MIX ({strategy.upper()}):"
    if strategy == "conservative":
        prompt += "\n- 3 recipes: fully in line with the user's preferences"
    elif strategy == "balanced":
        prompt += "\n- 2 recipes: in line with the user's preferences"
        prompt += "\n- 1 recipe: a discovery from a different cuisine"
    else:
        prompt += "\n- 1 recipe: in line with the user's preferences"
        prompt += "\n- 2 recipes: new experiences to explore"

    if request.exclude_ingredients:
        prompt += f"\nDo not use: {', '.join(request.exclude_ingredients)}"

    if request.locale and request.locale != "en":
        prompt += f"\nWrite all text in the language with code '{request.locale}'."

    return prompt


def estimate_cost(tokens: int, cost_per_1k: Optional[float] = None) -> float:
    rate = cost_per_1k if cost_per_1k is not None else settings.generation_cost_per_1k_tokens
    return (tokens / 1000) * rate


def _sanitize(draft: GeneratedRecipeDraft) -> Optional[Recipe]:
    """Map an AI draft to a Recipe. Drafts without a name or ingredients are dropped."""
    name = clean_md(draft.name)
    ingredients = [clean_md(i).lower() for i in draft.ingredients]
    ingredients = [i for i in ingredients if i]
    if not name or not ingredients:
        return None

    difficulty = (draft.difficulty or "").strip().lower()
    if difficulty not in ("easy", "medium", "hard"):
        difficulty = "medium"

    description = clean_md(draft.description or "")
    prep = draft.preparation_time if draft.preparation_time and draft.preparation_time > 0 else None
    servings = draft.servings if draft.servings and draft.servings > 0 else None

    return Recipe(
        id=f"gen-{uuid.uuid4().hex[:12]}",
        name=clamp(name, 120),
        description=clamp(description, 100) if description else None,
        ingredients=ingredients,
        instructions=clean_steps(draft.instructions),
        preparation_time=prep,
        servings=servings,
        difficulty=difficulty,
        category=clean_md(draft.category or "") or "main_course",
        tips=clean_md(draft.tips or "") or None,
        source="generated",
        ai_generated=True,
    )


class GeminiRecipeGenerator:
    def __init__(self, client: Optional[AIClient] = None, model: Optional[str] = None, cost_per_1k: Optional[float] = None):
        self.client = client or ai_client
        self.model = model
        self.cost_per_1k = cost_per_1k

    async def generate(self, request: GenerationRequest) -> GeneratedRecipes:
        if not self.client.is_available():
            raise GenerationFailed("Recipe generation is not configured")

        prompt = build_prompt(request)
        try:
            parsed, tokens = await self.client.generate_structured(
                prompt=prompt,
                response_model=GeneratedRecipeList,
                model=self.model,
                system_instruction=SYSTEM_PROMPT,
            )
        except Exception as e:
            raise GenerationFailed(f"Recipe generation failed: {e}") from e

        if parsed is None:
            raise GenerationFailed("Empty response from AI service")

        recipes = [r for r in map(_sanitize, parsed.recipes) if r is not None]
        if not recipes:
            raise GenerationFailed("AI response contained no usable recipes")

        cost = estimate_cost(tokens, self.cost_per_1k)
        logger.info(f"Generated {len(recipes)} recipes ({tokens} tokens, ${cost:.4f})")
        return GeneratedRecipes(recipes=recipes, total_tokens_used=tokens, estimated_cost=cost)


class MockRecipeGenerator:
    """Deterministic generator for local development and tests."""

    # (suffix, description, difficulty, minutes, extra pantry staples)
    TEMPLATES = [
        ("Skillet", "Quick pan-cooked {main} with what you have.", "easy", 15, []),
        ("Bake", "Oven-baked {main} with simple seasoning.", "medium", 35, ["salt"]),
        ("Soup", "Warming {main} soup.", "easy", 25, ["salt", "water"]),
    ]

    def __init__(self, tokens_per_call: int = 0):
        self.tokens_per_call = tokens_per_call
        self.calls = 0

    async def generate(self, request: GenerationRequest) -> GeneratedRecipes:
        self.calls += 1
        ingredients = [i for i in request.ingredients if i not in request.exclude_ingredients]
        if not ingredients:
            raise GenerationFailed("No usable ingredients for generation")

        main = ingredients[0]
        digest = hashlib.sha256("|".join(sorted(ingredients)).encode("utf-8")).hexdigest()[:8]
        recipes = []
        for idx, (kind, desc, difficulty, minutes, staples) in enumerate(self.TEMPLATES):
            extra = [s for s in staples if s not in ingredients]
            recipes.append(Recipe(
                id=f"mock-{digest}-{idx}",
                name=f"{main.title()} {kind}",
                description=desc.format(main=main),
                ingredients=list(ingredients) + extra,
                instructions=[
                    f"Prepare the {', '.join(ingredients)}.",
                    "Cook until done.",
                    "Season to taste and serve.",
                ],
                preparation_time=minutes,
                servings=2,
                difficulty=difficulty,
                category="main_course",
                source="generated",
                ai_generated=True,
            ))

        tokens = self.tokens_per_call
        return GeneratedRecipes(recipes=recipes, total_tokens_used=tokens, estimated_cost=estimate_cost(tokens))


def get_recipe_generator() -> RecipeGenerator:
    if settings.ai_mode == "gemini":
        return GeminiRecipeGenerator()
    return MockRecipeGenerator()
