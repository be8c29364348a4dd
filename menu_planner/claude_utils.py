"""Shared helpers for Anthropic clients, prompt templates and replies."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import anthropic

logger = logging.getLogger(__name__)

DEFAULT_ASSISTANT_MODEL = "claude-sonnet-4-20250514"


def extract_json_text(raw: str) -> str:
    """Extract JSON from a Claude response, stripping markdown fences.

    Args:
        raw: Raw text from Claude's response.

    Returns:
        Cleaned string ready for JSON parsing.
    """
    text = raw.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1 :] if first_newline != -1 else ""
    if text.endswith("```"):
        text = text[: -len("```")]
    return text.strip()


def response_text(response: Any) -> str:
    """Concatenate the text blocks of a Messages API response.

    Args:
        response: Object returned by ``client.messages.create``.

    Returns:
        Joined text, empty when the response carries no text block.
    """
    blocks = getattr(response, "content", None) or []
    return "".join(
        str(block.text) for block in blocks if getattr(block, "type", "text") == "text"
    )


def make_anthropic_client(api_key: str) -> anthropic.Anthropic | None:
    """Create an Anthropic client from the given API key.

    Args:
        api_key: Anthropic API key string.

    Returns:
        Anthropic client, or None when no key is configured.
    """
    if not api_key:
        logger.info("ANTHROPIC_API_KEY not set; assistant features disabled")
        return None
    return anthropic.Anthropic(api_key=api_key)


PROMPTS_DIR = Path(__file__).parent / "prompts"


def render_prompt(name: str, **values: object) -> str:
    """Fill a packaged prompt template with ``str.format`` fields.

    Args:
        name: Template file stem under ``prompts/``.
        **values: Field values.

    Returns:
        Rendered prompt.

    Raises:
        FileNotFoundError: If no such template ships with the package.
        KeyError: If the template names a field not supplied.
    """
    path = PROMPTS_DIR / f"{name}.txt"
    if not path.is_file():
        raise FileNotFoundError(f"No prompt template named {name!r} in {PROMPTS_DIR}")
    return path.read_text(encoding="utf-8").format(**values)
