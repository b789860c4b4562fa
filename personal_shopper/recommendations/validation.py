"""
Boundary validation for preference updates.

``validate_preferences`` never raises: it returns a ``PreferenceValidation``
holding either the cleaned ``PreferenceSet`` or the error that explains why
the update is rejected. Only valid preferences reach the engine.
"""
from __future__ import annotations

from dataclasses import dataclass

from .errors import InvalidPreferenceError
from .models import PreferenceSet, PriceRange

MAX_CATEGORIES = 20
MAX_BRANDS = 20
MAX_STYLE_TAGS = 10
MAX_PRICE = 999_999.99


@dataclass(frozen=True)
class PreferenceValidation:
    preferences: PreferenceSet | None = None
    error: InvalidPreferenceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _clean(values: list[str]) -> tuple[list[str], bool]:
    """Strip entries and drop case-insensitive repeats, keeping first spelling."""
    seen: set[str] = set()
    cleaned: list[str] = []
    has_blank = False
    for value in values:
        item = value.strip()
        if not item:
            has_blank = True
            continue
        if item.lower() in seen:
            continue
        seen.add(item.lower())
        cleaned.append(item)
    return cleaned, has_blank


def validate_preferences(payload: PreferenceSet) -> PreferenceValidation:
    errors: list[str] = []

    categories, blank_category = _clean(payload.categories)
    brands, blank_brand = _clean(payload.brands)
    style_tags, blank_style = _clean(payload.style_tags)

    if blank_category:
        errors.append("Categories must not be blank")
    if blank_brand:
        errors.append("Brands must not be blank")
    if blank_style:
        errors.append("Style tags must not be blank")

    if len(categories) > MAX_CATEGORIES:
        errors.append(f"Too many categories (maximum {MAX_CATEGORIES})")
    if len(brands) > MAX_BRANDS:
        errors.append(f"Too many brands (maximum {MAX_BRANDS})")
    if len(style_tags) > MAX_STYLE_TAGS:
        errors.append(f"Too many style tags (maximum {MAX_STYLE_TAGS})")

    price_range = payload.price_range
    if price_range is not None:
        if price_range.min < 0:
            errors.append("Minimum price cannot be negative")
        if price_range.max < price_range.min:
            errors.append("Maximum price must be greater than or equal to minimum price")
        if price_range.min > MAX_PRICE or price_range.max > MAX_PRICE:
            errors.append(f"Price range cannot exceed {MAX_PRICE:,.2f}")

    if errors:
        return PreferenceValidation(error=InvalidPreferenceError(errors))

    return PreferenceValidation(
        preferences=PreferenceSet(
            categories=categories,
            price_range=PriceRange(min=price_range.min, max=price_range.max) if price_range else None,
            brands=brands,
            style_tags=style_tags,
        )
    )
