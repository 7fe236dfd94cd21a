"""Menu items, the Supabase-backed menu store, and item lookup by query."""

import logging
from dataclasses import dataclass

import httpx

from kaapi.config import KaapiConfig, get_config

logger = logging.getLogger(__name__)

_MENU_TABLE = "menu_items"

# Minimum score for a query to count as naming an item
_MATCH_THRESHOLD = 5
_EXACT_SCORE = 100
_WORD_SCORE = 10

_DEFAULT_DESCRIPTION = "Made with love using traditional methods!"

_DESCRIPTIONS = {
    "spiced mocha": "A rich blend of coffee, chocolate, and aromatic spices! ☕🍫",
    "filter coffee": "Our signature South Indian filter coffee brewed to perfection! ☕",
    "degree coffee": "Traditional Tanjore-style degree coffee with authentic taste! ☕",
    "coconut cold brew": "Refreshing cold brew with a tropical coconut twist! 🥥",
    "rose cardamom latte": "Aromatic latte with the essence of roses and cardamom! 🌹",
    "mango coffee smoothie": "Tropical mango blended with smooth coffee goodness! 🥭",
}


class MenuStoreError(Exception):
    """Raised when the menu cannot be loaded."""


@dataclass(frozen=True)
class MenuItem:
    id: str | int
    name: str
    price: float

    @classmethod
    def from_row(cls, row: dict) -> "MenuItem":
        return cls(id=row["id"], name=str(row["name"]), price=float(row["price"]))

    @property
    def display_price(self) -> str:
        if float(self.price).is_integer():
            return f"₹{int(self.price)}"
        return f"₹{self.price:.2f}"


@dataclass(frozen=True)
class ItemMatch:
    item: MenuItem | None
    score: int

    @property
    def found(self) -> bool:
        return self.item is not None


def match_item(query: str, items: list[MenuItem]) -> ItemMatch:
    """Find the menu item a query most likely refers to.

    An item whose full name appears in the query scores 100; otherwise each
    word of the item name that overlaps (substring either way) a query word
    adds 10. The first item with the highest score above 5 wins.
    """
    query = query.lower()
    words = query.split()
    best: MenuItem | None = None
    best_score = 0

    for item in items:
        name = item.name.lower()
        if name in query:
            score = _EXACT_SCORE
        else:
            score = sum(
                _WORD_SCORE
                for item_word in name.split()
                if any(item_word in w or w in item_word for w in words)
            )
        if score > best_score and score > _MATCH_THRESHOLD:
            best, best_score = item, score

    return ItemMatch(item=best, score=best_score)


def describe_item(name: str) -> str:
    """Short marketing blurb for an item."""
    return _DESCRIPTIONS.get(name.lower(), _DEFAULT_DESCRIPTION)


class MenuStore:
    """Reads menu items from the Supabase REST API."""

    def __init__(self, config: KaapiConfig | None = None) -> None:
        config = config or get_config()
        self._url = config.supabase_url.rstrip("/")
        self._key = config.supabase_anon_key
        self._timeout = config.menu_timeout

    @property
    def configured(self) -> bool:
        return bool(self._url and self._key)

    def _headers(self) -> dict:
        return {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Accept": "application/json",
        }

    async def fetch_menu(self) -> list[MenuItem]:
        """Return all menu items ordered by name.

        Raises:
            MenuStoreError: When the store is not configured, unreachable,
                or returns something other than a list of rows.
        """
        if not self.configured:
            raise MenuStoreError("Menu store not configured")

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    f"{self._url}/rest/v1/{_MENU_TABLE}",
                    params={"select": "*", "order": "name"},
                    headers=self._headers(),
                )
            response.raise_for_status()
            rows = response.json()
        except httpx.HTTPError as e:
            raise MenuStoreError(f"Menu request failed: {e}") from e
        except ValueError as e:
            raise MenuStoreError(f"Menu response is not JSON: {e}") from e

        if not isinstance(rows, list):
            raise MenuStoreError("Menu response is not a list")

        try:
            items = [MenuItem.from_row(row) for row in rows]
        except (KeyError, TypeError, ValueError) as e:
            raise MenuStoreError(f"Malformed menu row: {e}") from e

        logger.debug("Loaded %d menu items", len(items))
        return items

    async def is_available(self) -> bool:
        try:
            await self.fetch_menu()
            return True
        except MenuStoreError:
            logger.warning("Menu store unavailable", exc_info=True)
            return False
