"""Week letter sources — where the weekly school letter comes from."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from urllib.parse import quote

import httpx

if TYPE_CHECKING:
    from schoolbell.config import Child

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "SchoolBell/1.0 (Week Letter Fetcher)"

# Placeholder the school platform shows when no letter was written for a week.
_EMPTY_PLACEHOLDERS = ("der er ikke skrevet nogen ugenoter til denne uge",)


@runtime_checkable
class ContentSource(Protocol):
    """Fetches the week letter for one child and ISO week."""

    async def fetch(self, child: Child, week_number: int, year: int) -> dict[str, Any] | None:
        """Return the letter payload, or None when it is not published yet."""
        ...


def _letters(letter: dict[str, Any] | None) -> list[dict[str, Any]]:
    if not letter:
        return []
    letters = letter.get("ugebreve")
    return letters if isinstance(letters, list) else []


def extract_content(letter: dict[str, Any] | None) -> str:
    """Raw (HTML) body of the first letter in *letter*, or ``""``."""
    for entry in _letters(letter):
        if isinstance(entry, dict):
            return str(entry.get("indhold") or "")
    return ""


def letter_title(letter: dict[str, Any] | None) -> str:
    """``"Uge 42 - 3.A"`` style title, or ``""`` when the payload has none."""
    for entry in _letters(letter):
        if isinstance(entry, dict):
            week = entry.get("uge", "")
            class_name = entry.get("klasseNavn", "")
            return f"Uge {week} - {class_name}".strip(" -")
    return ""


def is_effectively_empty(letter: dict[str, Any] | None) -> bool:
    """True when there is no letter, no body, or only the "nothing written" placeholder."""
    body = extract_content(letter).strip()
    if not body:
        return True
    lowered = body.lower()
    return any(placeholder in lowered for placeholder in _EMPTY_PLACEHOLDERS) and len(
        lowered
    ) < 200


class HttpContentSource:
    """Fetches week letters as JSON from an HTTP endpoint.

    *url_template* is formatted with ``child``, ``week`` and ``year``, e.g.
    ``https://school.example/api/{child}/letters/{year}/{week}``.  A 404
    means the letter is not published yet.
    """

    def __init__(self, url_template: str, *, timeout: float = 20) -> None:
        if not url_template:
            msg = "url_template is required"
            raise ValueError(msg)
        self._url_template = url_template
        self._timeout = timeout

    def url_for(self, child: Child, week_number: int, year: int) -> str:
        return self._url_template.format(
            child=quote(child.name), week=week_number, year=year
        )

    async def fetch(self, child: Child, week_number: int, year: int) -> dict[str, Any] | None:
        url = self.url_for(child, week_number, year)
        async with httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            headers={"User-Agent": DEFAULT_USER_AGENT, "Accept": "application/json"},
        ) as client:
            resp = await client.get(url)

        if resp.status_code == 404:
            logger.info("No week letter yet for %s week %d/%d", child.name, week_number, year)
            return None
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            logger.warning("Unexpected week letter payload for %s: %s", child.name, type(data))
            return None
        return data
