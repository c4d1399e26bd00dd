import hashlib
import re
from typing import Iterable

from ..errors import InvalidQuery
from ..schemas import IngredientSet

KEY_LENGTH = 16


def normalize_ingredient(name: str) -> str:
    """
    Canonical form of a single ingredient name.

    Rules:
    - Trim
    - Lowercase
    - Whitespace collapse

    Synonyms are NOT collapsed here; that is the scorer's job.
    """
    if not name:
        return ""
    return re.sub(r"\s+", " ", name.strip().lower())


def combination_key(items: Iterable[str]) -> str:
    """Digest of the sorted members. Order and duplicates do not matter."""
    joined = "|".join(sorted(set(items)))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:KEY_LENGTH]


def normalize_ingredients(raw: Iterable[str]) -> IngredientSet:
    """
    Normalize a raw user list into an IngredientSet.

    Keeps first-occurrence order for display; the key is order independent.
    Raises InvalidQuery if nothing is left.
    """
    seen: list[str] = []
    for name in raw or []:
        if not isinstance(name, str):
            continue
        norm = normalize_ingredient(name)
        if norm and norm not in seen:
            seen.append(norm)

    if not seen:
        raise InvalidQuery("At least one ingredient is required")

    return IngredientSet(items=tuple(seen), key=combination_key(seen))
