"""SQLAlchemy ORM models for the recipe finder.

Tables:
- pooled_recipes: Community pool of generated recipes, ranked by popularity
- pooled_recipe_ingredients: Ingredient combination each pooled recipe was generated for
- generation_cache: Short-lived generation outputs keyed by combination key
- user_quotas: Entitlement flag, credits and daily generation usage per user
- credit_transactions: Ledger of quota consumption and grants
"""

from __future__ import annotations

import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Text,
    Integer,
    Boolean,
    Float,
    ForeignKey,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON

from .db import Base


def generate_uuid() -> str:
    return str(uuid.uuid4())


class PooledRecipe(Base):
    """Recipe shared across users, originally produced by generation."""
    __tablename__ = "pooled_recipes"
    __table_args__ = (
        Index("ix_pooled_recipes_combination_key", "combination_key"),
        Index("ix_pooled_recipes_popularity", "popularity_score"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ingredients: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    instructions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    preparation_time: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    servings: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    difficulty: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tips: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    popularity_score: Mapped[float] = mapped_column(
        Float, nullable=False, default=1.0, server_default="1"
    )
    # Query the recipe was generated for
    combination_key: Mapped[str] = mapped_column(String(64), nullable=False)
    original_ingredients: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    ai_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by_user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    combination: Mapped[list["PooledRecipeIngredient"]] = relationship(
        "PooledRecipeIngredient", back_populates="recipe", cascade="all, delete-orphan"
    )


class PooledRecipeIngredient(Base):
    """One member of a pooled recipe's ingredient combination."""
    __tablename__ = "pooled_recipe_ingredients"
    __table_args__ = (
        Index("ix_pooled_recipe_ingredients_ingredient", "ingredient"),
        UniqueConstraint("recipe_id", "ingredient", name="uq_pooled_recipe_ingredient"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pooled_recipes.id", ondelete="CASCADE"), nullable=False
    )
    ingredient: Mapped[str] = mapped_column(String(120), nullable=False)  # Normalized

    recipe: Mapped["PooledRecipe"] = relationship("PooledRecipe", back_populates="combination")


class GenerationCacheEntry(Base):
    """Generation output for one combination key. Shared by all users."""
    __tablename__ = "generation_cache"
    __table_args__ = (
        Index("ix_generation_cache_expires_at", "expires_at"),
    )

    combination_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    ingredients: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    recipes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserQuota(Base):
    """Quota state. Entitled (premium) users spend a daily allowance, others spend credits."""
    __tablename__ = "user_quotas"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    is_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    credits_remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_generations_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_generation_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_daily_reset: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    lifetime_credits_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"
    __table_args__ = (
        Index("ix_credit_transactions_user_id", "user_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)  # spend | daily | grant
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(40), nullable=False, default="recipe_generation")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
