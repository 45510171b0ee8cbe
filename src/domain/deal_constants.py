"""Lookup tables for deal extraction and engagement tracking.

Store and category detection are data-driven: each table is an ordered list of
(pattern, label) pairs and the first matching pattern wins.
"""

from typing import Final, NamedTuple

PRICE_PATTERN: Final[str] = r"\$\d+(\.\d{2})?"
"""US dollar price with optional cents (e.g., $19 or $19.99)."""

URL_STRIP_PATTERN: Final[str] = (
    r"https?://(www\.)?[-a-zA-Z0-9@:%._\+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"([-a-zA-Z0-9()@:%_\+.~#?&/=]*)"
)
"""URLs removed from message text before deriving a title."""

URL_TOKEN_PATTERN: Final[str] = r"https?://[^\s]+"
"""Bare http(s) tokens, used when a message has no link entities."""

TITLE_MAX_LENGTH: Final[int] = 100
TITLE_ELLIPSIS: Final[str] = "..."

DEFAULT_CATEGORY: Final[str] = "Other"

STORE_TABLE: Final[tuple[tuple[str, str], ...]] = (
    ("amazon", "Amazon"),
    ("walmart", "Walmart"),
    ("target", "Target"),
    ("best buy", "Best Buy"),
    ("home depot", "Home Depot"),
    ("costco", "Costco"),
    ("ebay", "eBay"),
    ("lowes", "Lowes"),
    ("macys", "Macys"),
    ("walgreens", "Walgreens"),
    ("cvs", "CVS"),
)

_CATEGORY_KEYWORDS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    (
        "Electronics",
        (
            "electronics",
            "smartphone",
            "laptop",
            "computer",
            "tablet",
            "headphone",
            "earbuds",
            "camera",
            "tv",
            "monitor",
        ),
    ),
    (
        "Kitchen",
        (
            "kitchen",
            "cookware",
            "appliance",
            "blender",
            "mixer",
            "microwave",
            "oven",
            "knife",
            "pot",
            "pan",
        ),
    ),
    (
        "Home",
        (
            "home",
            "furniture",
            "décor",
            "decor",
            "bedroom",
            "bathroom",
            "living room",
            "rug",
            "curtain",
            "sheet",
        ),
    ),
    (
        "Clothing",
        (
            "clothing",
            "dress",
            "shirt",
            "pants",
            "jacket",
            "shoes",
            "fashion",
            "apparel",
            "t-shirt",
            "outfit",
        ),
    ),
    (
        "Beauty",
        (
            "beauty",
            "makeup",
            "skin care",
            "skincare",
            "moisturizer",
            "sunscreen",
            "foundation",
            "mascara",
            "lipstick",
            "serum",
        ),
    ),
    (
        "Toys",
        (
            "toys",
            "games",
            "play",
            "children",
            "kids",
            "lego",
            "puzzle",
            "board game",
            "doll",
            "action figure",
        ),
    ),
    (
        "Sports",
        (
            "sports",
            "fitness",
            "exercise",
            "workout",
            "gym",
            "outdoor",
            "camping",
            "hiking",
            "bike",
            "basketball",
        ),
    ),
    ("Books", ("books", "novel", "textbook", "reading", "kindle")),
    (
        "Grocery",
        (
            "grocery",
            "food",
            "snack",
            "drink",
            "beverage",
            "coffee",
            "tea",
            "water",
            "soda",
            "juice",
        ),
    ),
)

CATEGORY_TABLE: Final[tuple[tuple[str, str], ...]] = tuple(
    (keyword, category)
    for category, keywords in _CATEGORY_KEYWORDS
    for keyword in keywords
)
"""Flattened (keyword, category) pairs; category order is preserved."""

CATEGORIES: Final[tuple[str, ...]] = tuple(
    category for category, _ in _CATEGORY_KEYWORDS
) + (DEFAULT_CATEGORY,)

SECRET_TOKEN_HEADER: Final[str] = "X-Telegram-Bot-Api-Secret-Token"


class PriceRange(NamedTuple):
    """Numeric price bucket used by the message listing filter."""

    low: float | None
    high: float | None
    low_inclusive: bool = False
    high_inclusive: bool = True


PRICE_RANGES: Final[dict[str, PriceRange]] = {
    "under25": PriceRange(None, 25.0, high_inclusive=False),
    "25to50": PriceRange(25.0, 50.0, low_inclusive=True),
    "50to100": PriceRange(50.0, 100.0),
    "over100": PriceRange(100.0, None),
}
