"""Pydantic schemas for the recipe finder.

Covers:
- Recipes and scored match results
- Device cache entries
- Search requests / responses
- Generation requests / responses
- Quota state and search history
"""

from datetime import datetime
from typing import Optional, Literal

from pydantic import BaseModel, ConfigDict, Field


Source = Literal["device_cache", "shared_pool", "generation_cache", "generated", "static"]
Difficulty = Literal["easy", "medium", "hard"]
MealTime = Literal["breakfast", "lunch", "dinner", "snack"]


# --- Ingredients ---

class IngredientSet(BaseModel):
    """Normalized, deduplicated ingredients plus their combination key."""
    model_config = ConfigDict(frozen=True)

    items: tuple[str, ...]
    key: str


# --- Recipe ---

class Recipe(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    ingredients: list[str] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)
    preparation_time: Optional[int] = Field(None, ge=0)  # minutes
    servings: Optional[int] = Field(None, ge=0)
    difficulty: Optional[Difficulty] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    missing_ingredients: Optional[list[str]] = None
    popularity_score: Optional[float] = None
    source: Source = "static"
    ai_generated: bool = False
    tips: Optional[str] = None


class MatchResult(BaseModel):
    recipe: Recipe
    matching_count: int
    missing_count: int
    match_ratio: float
    priority: float


class MatchBundle(BaseModel):
    exact_matches: list[MatchResult] = Field(default_factory=list)
    near_matches: list[MatchResult] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.exact_matches and not self.near_matches

    def total(self) -> int:
        return len(self.exact_matches) + len(self.near_matches)


# --- Device cache ---

class CacheEntry(BaseModel):
    key: str
    ingredients: list[str]
    bundle: MatchBundle
    source: Source
    created_at: datetime
    expires_at: datetime


class CacheStats(BaseModel):
    entries: int
    stale_entries: int
    by_source: dict[str, int]


# --- Search ---

class UserProfileHints(BaseModel):
    dietary_restrictions: list[str] = Field(default_factory=list)
    favorite_categories: list[str] = Field(default_factory=list)
    cooking_level: Optional[str] = None
    recipe_history: int = Field(0, ge=0)  # recipes the user has tried


class SearchRequest(BaseModel):
    ingredients: list[str]
    user_id: Optional[str] = None
    allow_generation: bool = False
    require_generation: bool = False
    locale: Optional[str] = None
    meal_time: Optional[MealTime] = None
    user_profile: Optional[UserProfileHints] = None
    exclude_ingredients: list[str] = Field(default_factory=list)


class IngredientSuggestion(BaseModel):
    """A missing ingredient and the returned recipes that need it."""
    ingredient: str
    recipes: list[str]
    priority: float


class SearchResponse(BaseModel):
    exact_matches: list[MatchResult]
    near_matches: list[MatchResult]
    source: Source
    cached_source: Optional[Source] = None  # origin tier of a device cache hit
    is_cached: bool = False
    is_stale: bool = False
    combination_key: str
    ingredients: list[str]
    response_time_ms: int = 0
    suggested_ingredients: list[IngredientSuggestion] = Field(default_factory=list)


# --- Generation ---

class GenerationRequest(BaseModel):
    ingredients: list[str]
    locale: str = "en"
    meal_time: Optional[MealTime] = None
    user_profile: Optional[UserProfileHints] = None
    exclude_ingredients: list[str] = Field(default_factory=list)


class GeneratedRecipes(BaseModel):
    recipes: list[Recipe]
    total_tokens_used: int = 0
    estimated_cost: float = 0.0  # USD


# --- Quota ---

class QuotaState(BaseModel):
    user_id: str
    is_entitled: bool
    credits_remaining: int
    daily_generations_used: int
    daily_generation_limit: int


# --- History ---

class SearchHistoryEntry(BaseModel):
    id: str
    ingredients: list[str]
    source: Source
    exact_count: int
    near_count: int
    results_count: int
    response_time_ms: int
    used_generation: bool = False
    timestamp: datetime


class IngredientPreferences(BaseModel):
    frequent_ingredients: list[str] = Field(default_factory=list)
    search_count: int = 0
    last_search_at: Optional[datetime] = None
