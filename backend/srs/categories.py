"""Question categories and difficulty tiers.

Categories form a closed set shared by the question bank, the preferences
provider and the due-card selector. Anything unrecognised maps to
``Category.OTHER``, which never counts as a preferred category.
"""

from enum import Enum


class Category(Enum):
    """Topic a question belongs to."""

    STATISTICS = "statistics"
    MACHINE_LEARNING = "machine-learning"
    PYTHON_PANDAS = "python-pandas"
    SQL = "sql"
    AB_TESTING = "ab-testing"
    VISUALIZATION = "visualization"
    FEATURE_ENGINEERING = "feature-engineering"
    LLM_FUNDAMENTALS = "llm-fundamentals"
    ML_INFRASTRUCTURE = "ml-infrastructure"
    DATA_PLATFORMS = "data-platforms"
    FUNDAMENTALS = "fundamentals"
    DEVOPS = "devops"
    OTHER = "other"


class Difficulty(Enum):
    """How demanding a question is."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


# Every real category, in canonical display order
ALL_CATEGORIES: tuple[Category, ...] = tuple(c for c in Category if c is not Category.OTHER)

CATEGORY_LABELS: dict[Category, str] = {
    Category.STATISTICS: "Statistics & Probability",
    Category.MACHINE_LEARNING: "Machine Learning",
    Category.PYTHON_PANDAS: "Python/Pandas",
    Category.SQL: "SQL",
    Category.AB_TESTING: "A/B Testing",
    Category.VISUALIZATION: "Data Visualization",
    Category.FEATURE_ENGINEERING: "Feature Engineering",
    Category.LLM_FUNDAMENTALS: "LLM Fundamentals",
    Category.ML_INFRASTRUCTURE: "ML Infrastructure",
    Category.DATA_PLATFORMS: "Data Platforms",
    Category.FUNDAMENTALS: "CS Fundamentals",
    Category.DEVOPS: "DevOps",
    Category.OTHER: "Other",
}

DEFAULT_DIFFICULTIES: dict[Category, Difficulty] = {
    category: Difficulty.INTERMEDIATE for category in ALL_CATEGORIES
}
DEFAULT_DIFFICULTIES[Category.FUNDAMENTALS] = Difficulty.BEGINNER


def parse_category(value: str | Category | None) -> Category:
    """Map a stored category string to a Category, falling back to OTHER."""
    if isinstance(value, Category):
        return value
    if value is None:
        return Category.OTHER
    try:
        return Category(value.strip().lower())
    except ValueError:
        return Category.OTHER


def parse_difficulty(value: str | Difficulty | None) -> Difficulty:
    """Map a stored difficulty string to a Difficulty (default intermediate)."""
    if isinstance(value, Difficulty):
        return value
    try:
        return Difficulty((value or "").strip().lower())
    except ValueError:
        return Difficulty.INTERMEDIATE


def category_label(category: Category) -> str:
    return CATEGORY_LABELS.get(category, category.value)
