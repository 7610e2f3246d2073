"""Learner preferences consumed by the due-card selector."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from backend.srs.categories import (
    ALL_CATEGORIES,
    DEFAULT_DIFFICULTIES,
    Category,
    Difficulty,
    parse_category,
    parse_difficulty,
)


@dataclass(frozen=True)
class UserPreferences:
    """Which categories to practise first, and at what difficulty."""

    preferred_categories: tuple[Category, ...] = ()  # Highest priority first
    preferred_difficulties: Mapping[Category, Difficulty] = field(default_factory=dict)

    def priority_of(self, category: Category | None) -> int | None:
        """Return the category's position in the preference list, or None if not preferred."""
        if category is None or category is Category.OTHER:
            return None
        try:
            return self.preferred_categories.index(category)
        except ValueError:
            return None

    def difficulty_for(self, category: Category) -> Difficulty:
        return self.preferred_difficulties.get(
            category, DEFAULT_DIFFICULTIES.get(category, Difficulty.INTERMEDIATE)
        )

    @classmethod
    def from_raw(
        cls,
        categories: Iterable[str],
        difficulties: Mapping[str, str] | None = None,
    ) -> "UserPreferences":
        """Build preferences from stored strings, dropping unknown categories."""
        ordered: list[Category] = []
        for value in categories:
            category = parse_category(value)
            if category is not Category.OTHER and category not in ordered:
                ordered.append(category)

        parsed: dict[Category, Difficulty] = {}
        for key, value in (difficulties or {}).items():
            category = parse_category(key)
            if category is not Category.OTHER:
                parsed[category] = parse_difficulty(value)

        return cls(preferred_categories=tuple(ordered), preferred_difficulties=parsed)


def default_preferences() -> UserPreferences:
    """Every category, in canonical order, at its default difficulty."""
    return UserPreferences(
        preferred_categories=ALL_CATEGORIES,
        preferred_difficulties=dict(DEFAULT_DIFFICULTIES),
    )
