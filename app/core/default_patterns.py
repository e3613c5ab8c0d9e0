from typing import Any, Dict, FrozenSet, List, Tuple

# ---------------------------------------------------------------------------
# Global token relevance tables (used when no override matches a token)
# ---------------------------------------------------------------------------

# Level 0: generic adjectives, numerals and other low-value tokens
LOW_VALUE_TOKENS: FrozenSet[str] = frozenset(
    {
        "best",
        "top",
        "great",
        "good",
        "new",
        "latest",
        "free",
        "premium",
        "pro",
        "plus",
        "lite",
        "one",
        "two",
        "three",
    }
)

# Level 3: language names and core intent verbs
LANGUAGE_TOKENS: FrozenSet[str] = frozenset(
    {
        "english",
        "spanish",
        "french",
        "german",
        "italian",
        "chinese",
        "japanese",
        "korean",
        "portuguese",
        "russian",
        "arabic",
        "hindi",
        "mandarin",
    }
)

CORE_INTENT_VERBS: FrozenSet[str] = frozenset(
    {
        "learn",
        "speak",
        "study",
        "master",
        "practice",
        "improve",
        "understand",
        "read",
        "write",
        "listen",
        "teach",
    }
)

# Level 2: strong domain nouns
DOMAIN_NOUNS: FrozenSet[str] = frozenset(
    {
        "lesson",
        "lessons",
        "course",
        "courses",
        "class",
        "classes",
        "grammar",
        "vocabulary",
        "pronunciation",
        "conversation",
        "fluency",
        "language",
        "languages",
        "learning",
        "app",
        "application",
        "tutorial",
        "training",
        "education",
        "skill",
        "skills",
        "method",
        "techniques",
        "guide",
    }
)

# ---------------------------------------------------------------------------
# Base stopwords; every resolved stopword set is a superset of this
# ---------------------------------------------------------------------------

BASE_STOPWORDS: FrozenSet[str] = frozenset(
    {
        "a",
        "an",
        "and",
        "are",
        "as",
        "at",
        "be",
        "by",
        "for",
        "from",
        "has",
        "in",
        "is",
        "it",
        "its",
        "of",
        "on",
        "or",
        "that",
        "the",
        "this",
        "to",
        "was",
        "were",
        "will",
        "with",
        "your",
        "you",
        "our",
        "we",
    }
)

# ---------------------------------------------------------------------------
# Global hook categories (used when a ruleset carries no hook patterns)
# ---------------------------------------------------------------------------

GLOBAL_HOOK_CATEGORIES: Dict[str, Dict[str, Any]] = {
    "learning_educational": {
        "keywords": ("learn", "discover", "explore", "understand", "master"),
        "weight": 1.0,
    },
    "outcome_benefit": {
        "keywords": ("achieve", "improve", "transform", "unlock", "boost"),
        "weight": 1.0,
    },
    "status_authority": {
        "keywords": ("award winning", "#1", "trusted by", "recommended", "top rated"),
        "weight": 1.0,
    },
    "ease_of_use": {
        "keywords": ("easy", "simple", "intuitive", "effortless", "step by step"),
        "weight": 1.0,
    },
    "time_to_result": {
        "keywords": ("instant", "fast", "quick", "in minutes", "right away"),
        "weight": 1.0,
    },
    "trust_safety": {
        "keywords": ("secure", "safe", "private", "verified", "protected"),
        "weight": 1.0,
    },
}

# ---------------------------------------------------------------------------
# Default recommendation texts, overridable per layer by id
# ---------------------------------------------------------------------------

DEFAULT_RECOMMENDATION_MESSAGES: Dict[str, str] = {
    "missing_high_value_keyword": (
        "Your {element} has no high-value keywords. Add at least one term "
        "that describes what the app does."
    ),
    "high_noise_ratio": (
        "Most words in your {element} are filler. Replace generic words "
        "with searchable terms."
    ),
    "underused_characters": (
        "Your {element} uses {used} of {limit} characters. Use the remaining "
        "space for relevant keywords."
    ),
    "missing_hook": (
        "Your description has no hooks. Lead with an outcome, an ease-of-use "
        "or a trust statement."
    ),
    "low_keyword_coverage": (
        "Your description repeats few of the keywords from the title and "
        "subtitle. Reinforce them in the first paragraph."
    ),
}

# ---------------------------------------------------------------------------
# Vertical detection tables
# ---------------------------------------------------------------------------

# App store category → vertical id
CATEGORY_VERTICALS: Dict[str, str] = {
    "education": "language_learning",
    "finance": "finance",
    "business": "finance",
    "health & fitness": "health",
    "medical": "health",
    "productivity": "productivity",
    "entertainment": "entertainment",
    "lifestyle": "rewards",
    "shopping": "rewards",
    "social networking": "dating",
}

# Vertical id → signature keywords matched against title/subtitle/description
VERTICAL_SIGNATURES: Dict[str, Tuple[str, ...]] = {
    "language_learning": (
        "learn",
        "language",
        "spanish",
        "french",
        "vocabulary",
        "fluent",
        "lessons",
    ),
    "rewards": ("earn", "cash", "rewards", "gift cards", "cashback", "get paid"),
    "finance": ("invest", "bank", "budget", "savings", "stocks", "money"),
    "dating": ("dating", "singles", "match", "love", "date"),
    "productivity": ("tasks", "to-do", "organize", "notes", "calendar", "planner"),
    "health": ("fitness", "workout", "health", "calories", "sleep", "meditation"),
    "entertainment": ("watch", "stream", "movies", "shows", "music", "episodes"),
}

# App store category → verticals an app in that category may resolve to
EXPECTED_VERTICALS_BY_CATEGORY: Dict[str, List[str]] = {
    "education": ["language_learning", "base"],
    "finance": ["finance", "base"],
    "business": ["finance", "productivity", "base"],
    "entertainment": ["entertainment", "rewards", "base"],
    "lifestyle": ["rewards", "health", "dating", "base"],
    "health & fitness": ["health", "base"],
    "medical": ["health", "base"],
    "shopping": ["rewards", "base"],
    "productivity": ["productivity", "base"],
    "social networking": ["dating", "base"],
}

# Region subtag exceptions and language-only fallbacks for market detection
REGION_MARKETS: Dict[str, str] = {"gb": "uk"}
LANGUAGE_MARKETS: Dict[str, str] = {
    "en": "us",
    "de": "de",
    "fr": "fr",
    "es": "es",
    "ja": "jp",
    "ko": "kr",
}
