"""Assistant menu suggestions with loading/result/error status events.

The service is advisory: it never edits the menu. A listener receives a
loading status before the call and exactly one final status after it.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from typing import Any

import anthropic
from pydantic import BaseModel, ConfigDict, Field

from menu_planner.claude_utils import (
    DEFAULT_ASSISTANT_MODEL,
    extract_json_text,
    render_prompt,
    response_text,
)

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTION_PEOPLE = 2
MAX_RECIPE_TITLES = 120
NEW_DISH_PERCENT = 40


class MenuAiStatus(BaseModel):
    """Progress of a suggestion request."""

    model_config = ConfigDict(populate_by_name=True)

    is_loading: bool = Field(default=False, alias="isLoading")
    message: str = ""
    error: bool = False


StatusListener = Callable[[MenuAiStatus], None]


def suggestion_people_count(cell_people_count: dict[str, int]) -> int:
    """Mean of the positive cell people counts, rounded half up.

    Args:
        cell_people_count: Cell key to people count.

    Returns:
        At least 1; the default of 2 when no cell has a positive count.
    """
    values = [v for v in cell_people_count.values() if v > 0]
    if not values:
        return DEFAULT_SUGGESTION_PEOPLE
    return max(1, int(sum(values) / len(values) + 0.5))


def compose_constraints(prompt: str, preferred_products: Iterable[str]) -> str:
    """Join the user's request with the preferred active products."""
    products = ", ".join(p for p in preferred_products if p.strip())
    parts = [prompt.strip(), f"Priority products: {products}." if products else ""]
    return " ".join(p for p in parts if p)


def fallback_message(days: int, people: int) -> str:
    """Generic plan used when the assistant returns nothing usable."""
    return (
        f"Basic plan: {days} day(s), {people} person(s). "
        "Alternate quick dishes with more elaborate ones."
    )


class MenuSuggestionService:
    """Requests menu suggestions from Claude.

    Args:
        anthropic_client: Anthropic SDK client; None disables the service.
        listener: Callback receiving status updates.
        model: Claude model identifier.
    """

    def __init__(
        self,
        anthropic_client: Any = None,
        listener: StatusListener | None = None,
        model: str = DEFAULT_ASSISTANT_MODEL,
    ) -> None:
        """Initialize the service.

        Args:
            anthropic_client: Anthropic SDK client; None disables the service.
            listener: Callback receiving status updates.
            model: Claude model identifier.
        """
        self._client = anthropic_client
        self._listener = listener
        self._model = model

    def _emit(self, status: MenuAiStatus) -> MenuAiStatus:
        if self._listener is not None:
            self._listener(status)
        return status

    def request(
        self,
        cell_people_count: dict[str, int],
        days: int,
        recipe_titles: Iterable[str],
        preferred_products: Iterable[str] = (),
        prompt: str = "",
    ) -> MenuAiStatus:
        """Ask the assistant for a menu for the current period.

        Args:
            cell_people_count: People counts of the active profile.
            days: Number of days in the period.
            recipe_titles: Titles of known recipes, first 120 are sent.
            preferred_products: Active products marked as preferred.
            prompt: Free-form user request.

        Returns:
            The final status, also delivered to the listener.
        """
        self._emit(MenuAiStatus(is_loading=True))
        if self._client is None:
            return self._emit(
                MenuAiStatus(message="Assistant is not configured.", error=True)
            )

        people = suggestion_people_count(cell_people_count)
        days = max(1, days)
        titles = [t for t in recipe_titles if t][:MAX_RECIPE_TITLES]
        formatted = render_prompt(
            "menu_suggestion",
            days=days,
            people_count=people,
            new_dish_percent=NEW_DISH_PERCENT,
            constraints=compose_constraints(prompt, preferred_products) or "none",
            recipes="\n".join(f"- {t}" for t in titles) or "(none)",
        )

        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=2048,
                messages=[{"role": "user", "content": formatted}],
            )
        except anthropic.APIError as exc:
            logger.exception("Menu suggestion call failed")
            return self._emit(
                MenuAiStatus(message=f"Could not get a suggestion: {exc}", error=True)
            )

        message = self._parse_message(response_text(response))
        return self._emit(MenuAiStatus(message=message or fallback_message(days, people)))

    @staticmethod
    def _parse_message(text: str) -> str:
        """Pull ``message`` out of a JSON reply, tolerating plain text."""
        cleaned = extract_json_text(text)
        if not cleaned:
            return ""
        try:
            data = json.loads(cleaned)
        except (json.JSONDecodeError, ValueError):
            logger.warning("Suggestion response was not JSON; using raw text")
            return cleaned
        if isinstance(data, dict) and isinstance(data.get("message"), str):
            return data["message"].strip()
        return ""
